"""Backend registry and tool-schema rendering."""

import asyncio

import pytest

from projectpilot.agent.backend_interface import (
    GeminiBackend,
    OpenAIBackend,
    _gemini_schema,
    available_backends,
    load_backend,
)
from projectpilot.config import settings
from projectpilot.core.errors import BackendError
from projectpilot.core.schema import (
    BackendRequest,
    GenerationConfig,
)
from projectpilot.tools import TOOL_CATALOG


def test_builtin_backends_are_registered() -> None:
    assert available_backends() == ["anthropic", "gemini", "openai"]
    assert isinstance(load_backend("Gemini"), GeminiBackend)


def test_unknown_backend() -> None:
    with pytest.raises(ValueError):
        load_backend("nope")


def test_catalog_declares_json_schema() -> None:
    schema = TOOL_CATALOG.get("create_task").declaration.json_schema()

    assert schema["required"] == ["title"]
    assert schema["properties"]["priority"]["enum"] == ["high", "medium", "low"]
    assert schema["properties"]["title"]["type"] == "string"


def test_gemini_schema_uses_upper_case_types() -> None:
    schema = _gemini_schema(TOOL_CATALOG.get("list_repo_commits").declaration)

    assert schema["type"] == "OBJECT"
    assert schema["properties"]["limit"]["type"] == "INTEGER"
    assert schema["required"] == ["repo_url"]


def test_missing_api_key_is_backend_error(monkeypatch) -> None:
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    request = BackendRequest(
        model="gpt-test", contents="hi", config=GenerationConfig(system_instruction="")
    )

    with pytest.raises(BackendError):
        asyncio.run(OpenAIBackend().generate(request))
