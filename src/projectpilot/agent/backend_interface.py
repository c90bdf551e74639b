"""
Reasoning-backend interface for ProjectPilot.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop,
dispatcher, tools) stays model-agnostic and talks in :class:`BackendRequest` /
:class:`BackendResponse`.

We support three back-ends out of the box, all with native function calling:

1. **Google Gemini** via ``google-genai`` (default).
2. **OpenAI** chat completions.
3. **Anthropic** messages.

Each backend reports rate limiting as :class:`RateLimited` so the retry policy can handle it, and
every other failure as :class:`BackendError`.  Additional providers can be added by subclassing
:class:`BaseBackend` and registering via :func:`register_backend`.
"""

import json
import logging
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Type,
)

from projectpilot.config import settings
from projectpilot.core.errors import (
    BackendError,
    RateLimited,
)
from projectpilot.core.schema import (
    BackendRequest,
    BackendResponse,
    ToolCall,
    ToolDeclaration,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_BACKEND_REGISTRY: dict[str, Type["BaseBackend"]] = {}


def register_backend(name: str) -> Callable:
    """Decorator to register a backend class under *name*."""

    def wrapper(cls: Type["BaseBackend"]) -> Type["BaseBackend"]:
        _BACKEND_REGISTRY[name] = cls
        return cls

    return wrapper


def load_backend(name: str | None = None) -> "BaseBackend":
    """
    Factory that returns an instantiated backend.

    Fallback order:
    1. *name* arg
    2. ``settings.BACKEND`` env option
    3. default: ``"gemini"``
    """

    target = name or getattr(settings, "BACKEND", "gemini")
    cls = _BACKEND_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Backend '{target}' is not registered.")
    return cls()


def available_backends() -> List[str]:
    return sorted(_BACKEND_REGISTRY)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BaseBackend(ABC):
    """Abstract backend that turns one request into function calls or text."""

    default_model: str = ""

    @abstractmethod
    async def generate(self, request: BackendRequest) -> BackendResponse:
        """Send *request* once.  No retrying happens here."""


def _gemini_schema(declaration: ToolDeclaration) -> Dict[str, Any]:
    """Gemini's OpenAPI subset spells types in upper case."""
    schema = declaration.json_schema()
    return {
        "type": "OBJECT",
        "properties": {
            name: {**prop, "type": prop["type"].upper()}
            for name, prop in schema["properties"].items()
        },
        "required": schema["required"],
    }


# ---------------------------------------------------------------------------
# Concrete backends
# ---------------------------------------------------------------------------
@register_backend("gemini")
class GeminiBackend(BaseBackend):
    """Google Gemini backend using the ``google-genai`` async client."""

    default_model = settings.GEMINI_MODEL

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key or settings.GEMINI_API_KEY
        self._client: Any = None

    def _get_client(self) -> Any:
        if self._client is None:
            from google import genai  # pylint: disable=import-outside-toplevel

            if not self._api_key:
                raise BackendError("Gemini API key not set. Configure GEMINI_API_KEY.")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    async def generate(self, request: BackendRequest) -> BackendResponse:
        from google.genai import (  # pylint: disable=import-outside-toplevel
            errors,
            types,
        )

        client = self._get_client()
        tools = []
        if request.config.tools:
            tools = [
                types.Tool(
                    function_declarations=[
                        types.FunctionDeclaration(
                            name=decl.name,
                            description=decl.description,
                            parameters=_gemini_schema(decl),
                        )
                        for decl in request.config.tools
                    ]
                )
            ]

        try:
            response = await client.aio.models.generate_content(
                model=request.model or self.default_model,
                contents=request.contents,
                config=types.GenerateContentConfig(
                    system_instruction=request.config.system_instruction,
                    tools=tools or None,
                    temperature=0.2,
                ),
            )
        except errors.APIError as exc:
            if exc.code == 429:
                raise RateLimited(f"Gemini rate limit: {exc.message}") from exc
            logger.error("Gemini backend error: %s", str(exc))
            raise BackendError(f"Error calling Gemini: {exc}") from exc

        calls = [
            ToolCall(name=fc.name, arguments=dict(fc.args or {}))
            for fc in (response.function_calls or [])
        ]
        if calls:
            logger.debug("Gemini returned %d function calls", len(calls))
            return BackendResponse(function_calls=calls)
        return BackendResponse(text=response.text)


@register_backend("openai")
class OpenAIBackend(BaseBackend):
    """OpenAI chat-completions backend with function tools."""

    default_model = settings.OPENAI_MODEL

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key or settings.OPENAI_API_KEY

    async def generate(self, request: BackendRequest) -> BackendResponse:
        import openai  # pylint: disable=import-outside-toplevel

        if not self._api_key:
            raise BackendError("OpenAI API key not set. Configure OPENAI_API_KEY.")
        client = openai.AsyncOpenAI(api_key=self._api_key)
        tools = [
            {
                "type": "function",
                "function": {
                    "name": decl.name,
                    "description": decl.description,
                    "parameters": decl.json_schema(),
                },
            }
            for decl in request.config.tools
        ]
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools

        try:
            resp = await client.chat.completions.create(
                model=request.model or self.default_model,
                messages=[
                    {"role": "system", "content": request.config.system_instruction},
                    {"role": "user", "content": request.contents},
                ],
                temperature=0.2,
                **kwargs,
            )
        except openai.RateLimitError as exc:
            raise RateLimited(f"OpenAI rate limit: {exc}") from exc
        except openai.OpenAIError as exc:
            logger.error("OpenAI backend error: %s", str(exc))
            raise BackendError(f"Error calling OpenAI: {exc}") from exc

        message = resp.choices[0].message
        calls: List[ToolCall] = []
        for tool_call in message.tool_calls or []:
            try:
                arguments = json.loads(tool_call.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Unparseable arguments for %s", tool_call.function.name)
                arguments = {}
            calls.append(ToolCall(name=tool_call.function.name, arguments=arguments))
        if calls:
            return BackendResponse(function_calls=calls)
        return BackendResponse(text=message.content)


@register_backend("anthropic")
class AnthropicBackend(BaseBackend):
    """Anthropic Claude backend with tool use."""

    default_model = settings.ANTHROPIC_MODEL

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = api_key or settings.ANTHROPIC_API_KEY

    async def generate(self, request: BackendRequest) -> BackendResponse:
        import anthropic  # pylint: disable=import-outside-toplevel

        if not self._api_key:
            raise BackendError("Anthropic API key not set. Configure ANTHROPIC_API_KEY.")
        client = anthropic.AsyncAnthropic(api_key=self._api_key)
        tools = [
            {"name": d.name, "description": d.description, "input_schema": d.json_schema()}
            for d in request.config.tools
        ]
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools

        try:
            response = await client.messages.create(
                model=request.model or self.default_model,
                max_tokens=4096,
                system=request.config.system_instruction,
                messages=[{"role": "user", "content": request.contents}],
                temperature=0.2,
                **kwargs,
            )
        except anthropic.RateLimitError as exc:
            raise RateLimited(f"Anthropic rate limit: {exc}") from exc
        except anthropic.AnthropicError as exc:
            logger.error("Anthropic backend error: %s", str(exc))
            raise BackendError(f"Error calling Anthropic: {exc}") from exc

        calls = [
            ToolCall(name=block.name, arguments=dict(block.input or {}))
            for block in response.content
            if block.type == "tool_use"
        ]
        if calls:
            return BackendResponse(function_calls=calls)
        text = "".join(block.text for block in response.content if block.type == "text")
        return BackendResponse(text=text or None)
