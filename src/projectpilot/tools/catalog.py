"""
Tool catalog for ProjectPilot.

Each tool is a :class:`ToolSpec`: the declaration the reasoning backend sees, the async handler
that runs it, and whether it needs a resolved repository.  Tools are registered with the
:func:`register_tool` decorator, which can be used like this::

    @register_tool(
        "my_tool",
        "Do something useful.",
        {"text": ParameterSpec(type="string", required=True)},
    )
    async def my_tool(call: ToolInvocation) -> str:
        return call.arguments["text"]
"""

import logging
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
)

from projectpilot.core.errors import (
    InvalidArguments,
    UnknownTool,
)
from projectpilot.core.schema import (
    ParameterSpec,
    ToolDeclaration,
)
from projectpilot.tools.context import ToolInvocation

logger = logging.getLogger(__name__)

ToolHandler = Callable[[ToolInvocation], Awaitable[str]]

_PY_TYPES: Dict[str, tuple] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
}


@dataclass(frozen=True)
class ToolSpec:
    """Declaration plus typed handler for one catalog entry."""

    declaration: ToolDeclaration
    handler: ToolHandler
    requires_repository: bool = False

    @property
    def name(self) -> str:
        return self.declaration.name


class ToolCatalog:
    """Name -> :class:`ToolSpec` mapping; a lookup miss is an :class:`UnknownTool`."""

    def __init__(self) -> None:
        self._tools: Dict[str, ToolSpec] = {}

    def add(self, spec: ToolSpec) -> ToolSpec:
        """Add *spec*; names must be unique."""
        if spec.name in self._tools:
            raise ValueError(f"Tool '{spec.name}' is already registered.")
        logger.debug("Registering tool '%s'", spec.name)
        self._tools[spec.name] = spec
        return spec

    def get(self, name: str) -> ToolSpec:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise UnknownTool(name) from exc

    def declarations(self) -> List[ToolDeclaration]:
        """Declarations in registration order, as sent to the backend."""
        return [spec.declaration for spec in self._tools.values()]

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolSpec]:
        return iter(self._tools.values())

    def __len__(self) -> int:
        return len(self._tools)


TOOL_CATALOG = ToolCatalog()
"""Global catalog of built-in tools."""


def register_tool(
    name: str,
    description: str,
    parameters: Mapping[str, ParameterSpec] | None = None,
    *,
    requires_repository: bool = False,
    catalog: Optional[ToolCatalog] = None,
) -> Callable[[ToolHandler], ToolHandler]:
    """
    Register an async tool handler under *name*.

    Parameters
    ----------
    name:
        Unique tool name.  A duplicate raises ``ValueError``.
    description:
        Text the reasoning backend uses to decide when to call the tool.
    parameters:
        Parameter schema, keyed by argument name.
    requires_repository:
        If *True* the dispatcher resolves the ``repo_url`` argument and checks the credential
        before the handler runs.
    catalog:
        Target catalog; defaults to :data:`TOOL_CATALOG`.
    """
    declaration = ToolDeclaration(name=name, description=description, parameters=parameters or {})
    target = catalog if catalog is not None else TOOL_CATALOG

    def wrapper(fn: ToolHandler) -> ToolHandler:
        target.add(ToolSpec(declaration, fn, requires_repository))
        return fn

    return wrapper


def validate_arguments(
    declaration: ToolDeclaration, arguments: Mapping[str, Any]
) -> Dict[str, Any]:
    """
    Check *arguments* against *declaration* and return the cleaned mapping.

    Missing optional parameters come back as ``None``; unknown extras are dropped.

    Raises
    ------
    InvalidArguments
        A required value is missing, has the wrong type, or is outside its enum.
    """
    cleaned: Dict[str, Any] = {}
    problems: List[str] = []

    for param, spec in declaration.parameters.items():
        value = arguments.get(param)
        if value is None or (isinstance(value, str) and not value.strip() and spec.required):
            if spec.required:
                problems.append(f"missing required '{param}'")
            cleaned[param] = None
            continue
        expected = _PY_TYPES[spec.type]
        # bool is an int subclass; keep it out of numeric parameters
        if not isinstance(value, expected) or (spec.type != "boolean" and isinstance(value, bool)):
            problems.append(f"'{param}' must be a {spec.type}")
            continue
        if spec.enum is not None and value not in spec.enum:
            problems.append(f"'{param}' must be one of {', '.join(spec.enum)} (got {value!r})")
            continue
        cleaned[param] = value

    extras = sorted(set(arguments) - set(declaration.parameters))
    if extras:
        logger.debug("Ignoring unknown arguments for '%s': %s", declaration.name, extras)

    if problems:
        raise InvalidArguments(
            f"Invalid arguments for tool '{declaration.name}': " + "; ".join(problems)
        )
    return cleaned
