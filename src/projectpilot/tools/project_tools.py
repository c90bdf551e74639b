"""Tools that mutate the local project aggregate."""

import logging

from projectpilot.core.project import (
    Documentation,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from projectpilot.core.schema import ParameterSpec
from projectpilot.tools.catalog import register_tool
from projectpilot.tools.context import ToolInvocation

logger = logging.getLogger(__name__)

_PRIORITIES = tuple(p.value for p in TaskPriority)
_STATUSES = tuple(s.value for s in TaskStatus)
_TYPES = tuple(t.value for t in TaskType)


@register_tool(
    "create_task",
    "Create a new task on the project board. Returns the new task's ID.",
    {
        "title": ParameterSpec(description="Task title", required=True),
        "description": ParameterSpec(description="Detailed description"),
        "priority": ParameterSpec(description="Priority (default medium)", enum=_PRIORITIES),
        "type": ParameterSpec(description="Kind of work (default task)", enum=_TYPES),
        "scope": ParameterSpec(description="Subsystem, e.g. Frontend or Backend"),
    },
)
async def create_task(call: ToolInvocation) -> str:
    """Create a task in ``todo`` status."""
    task = Task(
        title=call.arg("title"),
        description=call.arg("description", ""),
        priority=TaskPriority(call.arg("priority", TaskPriority.MEDIUM.value)),
        type=TaskType(call.arg("type", TaskType.TASK.value)),
        scope=call.arg("scope"),
    )
    await call.context.apply(call.context.project.with_task(task))
    logger.info("Created task %s (%s)", task.id, task.title)
    return f"Task created: ID {task.id} - {task.title}"


@register_tool(
    "update_task_status",
    "Move an existing task to a new status.",
    {
        "task_id": ParameterSpec(description="Exact task ID", required=True),
        "new_status": ParameterSpec(description="New status", enum=_STATUSES, required=True),
    },
)
async def update_task_status(call: ToolInvocation) -> str:
    task_id = call.arg("task_id")
    status = TaskStatus(call.arg("new_status"))
    await call.context.apply(call.context.project.with_task_status(task_id, status))
    return f"Task {task_id} status updated to {status.value}."


@register_tool(
    "create_documentation",
    "Create a new specification document (Markdown).",
    {
        "title": ParameterSpec(description="Document title", required=True),
        "content": ParameterSpec(description="Document body in Markdown", required=True),
        "scope": ParameterSpec(description="Optional subsystem"),
    },
)
async def create_documentation(call: ToolInvocation) -> str:
    doc = Documentation(
        title=call.arg("title"),
        content=call.arg("content"),
        scope=call.arg("scope"),
    )
    await call.context.apply(call.context.project.with_doc(doc))
    return f'Document "{doc.title}" created (ID {doc.id}).'


@register_tool(
    "update_project_description",
    "Replace the project's description.",
    {"description": ParameterSpec(description="New project description", required=True)},
)
async def update_project_description(call: ToolInvocation) -> str:
    await call.context.apply(call.context.project.with_description(call.arg("description")))
    return "Project description updated."
