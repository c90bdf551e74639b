"""
Tests for the tool dispatcher: ordering, fault isolation and argument checks.

Run with:
$ pytest -q
"""

import asyncio

from projectpilot.agent.dispatcher import ToolDispatcher
from projectpilot.core.project import (
    TaskPriority,
    TaskStatus,
)
from projectpilot.core.schema import (
    MessageRole,
    ParameterSpec,
    ToolCall,
)
from projectpilot.tools import (
    ToolCatalog,
    ToolInvocation,
    register_tool,
)

from conftest import TOKEN


def _recording_catalog(log):
    """Catalog of three tiny tools; ``fail`` always raises."""
    catalog = ToolCatalog()

    @register_tool("first", "First step", catalog=catalog)
    async def first(call: ToolInvocation) -> str:
        log.append("first")
        return "one"

    @register_tool("fail", "Always fails", catalog=catalog)
    async def fail(call: ToolInvocation) -> str:
        log.append("fail")
        raise RuntimeError("kaboom")

    @register_tool(
        "pick",
        "Pick a colour",
        {"colour": ParameterSpec(enum=("red", "green"), required=True)},
        catalog=catalog,
    )
    async def pick(call: ToolInvocation) -> str:
        log.append("pick")
        return call.arg("colour")

    return catalog


def test_calls_run_in_order_and_failures_are_isolated(make_context) -> None:
    """Call 2 fails; calls 1 and 3 still succeed and results keep call order."""
    log = []
    dispatcher = ToolDispatcher(_recording_catalog(log))
    calls = [
        ToolCall(name="first"),
        ToolCall(name="fail"),
        ToolCall(name="pick", arguments={"colour": "red"}),
    ]

    results = asyncio.run(dispatcher.execute(calls, make_context()))

    assert log == ["first", "fail", "pick"]
    assert [r.call_name for r in results] == ["first", "fail", "pick"]
    assert [r.succeeded for r in results] == [True, False, True]
    assert "kaboom" in results[1].output_text


def test_unknown_tool_is_a_failed_result(make_context) -> None:
    dispatcher = ToolDispatcher(_recording_catalog([]))

    results = asyncio.run(dispatcher.execute([ToolCall(name="not_a_tool")], make_context()))

    assert not results[0].succeeded
    assert "not_a_tool" in results[0].output_text


def test_invalid_enum_never_reaches_handler(make_context) -> None:
    log = []
    dispatcher = ToolDispatcher(_recording_catalog(log))

    results = asyncio.run(
        dispatcher.execute([ToolCall(name="pick", arguments={"colour": "blue"})], make_context())
    )

    assert log == []
    assert not results[0].succeeded
    assert "Invalid arguments" in results[0].output_text


def test_missing_required_argument(make_context) -> None:
    log = []
    dispatcher = ToolDispatcher(_recording_catalog(log))

    results = asyncio.run(dispatcher.execute([ToolCall(name="pick")], make_context()))

    assert log == []
    assert "missing required 'colour'" in results[0].output_text


def test_cancelled_turn_skips_remaining_calls(make_context) -> None:
    log = []
    dispatcher = ToolDispatcher(_recording_catalog(log))
    context = make_context()
    context.cancel.cancel()

    results = asyncio.run(dispatcher.execute([ToolCall(name="first")], context))

    assert log == []
    assert results[0].output_text == "Cancelled."
    assert not results[0].succeeded


# ---------------------------------------------------------------------------
# Built-in project tools
# ---------------------------------------------------------------------------
def test_create_task_with_high_priority(make_context, store) -> None:
    context = make_context()
    call = ToolCall(
        name="create_task", arguments={"title": "Add login page", "priority": "high"}
    )

    results = asyncio.run(ToolDispatcher().execute([call], context))

    assert results[0].succeeded
    task = context.project.tasks[0]
    assert task.title == "Add login page"
    assert task.priority is TaskPriority.HIGH
    assert task.status is TaskStatus.TODO
    assert task.id in results[0].output_text
    assert store.saves == 1


def test_later_call_sees_task_created_earlier(make_context) -> None:
    """create_task then update_task_status on the ID produced by the first call."""
    context = make_context()
    dispatcher = ToolDispatcher()

    created = asyncio.run(
        dispatcher.execute([ToolCall(name="create_task", arguments={"title": "Ship"})], context)
    )
    task_id = context.project.tasks[0].id
    updated = asyncio.run(
        dispatcher.execute(
            [
                ToolCall(
                    name="update_task_status",
                    arguments={"task_id": task_id, "new_status": "in-progress"},
                )
            ],
            context,
        )
    )

    assert created[0].succeeded and updated[0].succeeded
    assert context.project.find_task(task_id).status is TaskStatus.IN_PROGRESS


def test_update_unknown_task_fails(make_context) -> None:
    call = ToolCall(
        name="update_task_status", arguments={"task_id": "nope", "new_status": "done"}
    )

    results = asyncio.run(ToolDispatcher().execute([call], make_context()))

    assert not results[0].succeeded


# ---------------------------------------------------------------------------
# Repository tools
# ---------------------------------------------------------------------------
def test_repository_tool_without_credential(github, make_context) -> None:
    call = ToolCall(name="list_repo_files", arguments={"repo_url": "webapp"})

    results = asyncio.run(ToolDispatcher().execute([call], make_context(credential=None)))

    assert not results[0].succeeded
    assert "credential" in results[0].output_text
    assert github.requests == []


def test_ambiguous_repository_fails_without_request(github, make_context) -> None:
    context = make_context()
    context.project = context.project.model_copy(
        update={"github_repos": ["https://github.com/acme/web", "https://github.com/acme/webapp2"]}
    )
    call = ToolCall(name="list_repo_files", arguments={"repo_url": "we"})

    results = asyncio.run(ToolDispatcher().execute([call], context))

    assert not results[0].succeeded
    assert "ambiguous" in results[0].output_text
    assert github.requests == []


def test_read_then_commit_in_one_turn(github, make_context) -> None:
    github.seed("README.md", "old")
    calls = [
        ToolCall(name="read_repo_file", arguments={"repo_url": "webapp", "file_path": "README.md"}),
        ToolCall(
            name="commit_changes",
            arguments={
                "repo_url": "webapp",
                "file_path": "README.md",
                "content": "new",
                "message": "Update README",
            },
        ),
    ]

    results = asyncio.run(ToolDispatcher().execute(calls, make_context()))

    assert [r.succeeded for r in results] == [True, True]
    assert "old" in results[0].output_text
    assert github.files["README.md"] == b"new"
    assert github.count("GET", "/contents/README.md") == 1


def test_commit_conflict_is_reported(github, make_context) -> None:
    github.seed("README.md", "v1")
    context = make_context()
    read = ToolCall(
        name="read_repo_file", arguments={"repo_url": "webapp", "file_path": "README.md"}
    )
    asyncio.run(ToolDispatcher().execute([read], context))
    github.seed("README.md", "changed elsewhere")
    commit = ToolCall(
        name="commit_changes",
        arguments={
            "repo_url": "webapp",
            "file_path": "README.md",
            "content": "mine",
            "message": "Edit",
        },
    )

    results = asyncio.run(ToolDispatcher().execute([commit], context))

    assert not results[0].succeeded
    assert github.files["README.md"] == b"changed elsewhere"


def test_list_files_uses_token_and_branch(github, make_context) -> None:
    github.seed("src/app.py", "x")
    call = ToolCall(
        name="list_repo_files", arguments={"repo_url": "acme/webapp", "branch": "dev"}
    )

    results = asyncio.run(ToolDispatcher().execute([call], make_context()))

    assert results[0].succeeded
    assert github.requests[-1].headers["authorization"] == f"Bearer {TOKEN}"
    assert github.requests[-1].url.params["ref"] == "dev"


def test_render_aggregates_results_in_order(make_context) -> None:
    dispatcher = ToolDispatcher(_recording_catalog([]))
    results = asyncio.run(
        dispatcher.execute([ToolCall(name="first"), ToolCall(name="fail")], make_context())
    )

    message = ToolDispatcher.render(results)

    assert message.role is MessageRole.AGENT
    lines = message.content.splitlines()
    assert lines[0] == "[first]: one"
    assert lines[1].startswith("[fail]: Error:")
