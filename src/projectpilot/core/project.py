"""
Project aggregate.

The aggregate is treated as an immutable value: every mutation helper returns a new
:class:`Project`, which is then handed to the persistence collaborator as a whole.
"""

import time
import uuid
from enum import Enum
from typing import (
    List,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from projectpilot.core.errors import NotFound


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id() -> str:
    return str(uuid.uuid4())


class TaskStatus(str, Enum):
    """Board column a task lives in."""

    TODO = "todo"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class TaskType(str, Enum):
    """Kind of work item."""

    FEATURE = "feature"
    BUG = "bug"
    TASK = "task"


class TaskPriority(str, Enum):
    """Task priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Task(BaseModel):
    """A work item on the project board."""

    id: str = Field(default_factory=_new_id)
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.TODO
    type: TaskType = TaskType.TASK
    priority: TaskPriority = TaskPriority.MEDIUM
    scope: Optional[str] = None  # e.g. 'Frontend', 'Backend'
    role: Optional[str] = None  # e.g. 'Admin', 'Customer'
    created_at: int = Field(default_factory=_now_ms)


class Documentation(BaseModel):
    """A Markdown specification document."""

    id: str = Field(default_factory=_new_id)
    title: str
    content: str
    scope: Optional[str] = None
    last_updated: int = Field(default_factory=_now_ms)


class Project(BaseModel):
    """The project aggregate persisted as one document."""

    id: str = Field(default_factory=_new_id)
    name: str
    description: str = ""
    tasks: List[Task] = Field(default_factory=list)
    docs: List[Documentation] = Field(default_factory=list)
    subsystems: List[str] = Field(default_factory=list)
    roles: List[str] = Field(default_factory=list)
    github_repos: List[str] = Field(default_factory=list, description="Connected repo URLs")
    created_at: int = Field(default_factory=_now_ms)

    # ------------------------------------------------------------------ #
    # Functional updates
    # ------------------------------------------------------------------ #
    def find_task(self, task_id: str) -> Task:
        """Return the task with *task_id* or raise :class:`NotFound`."""
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise NotFound(f"Task {task_id} not found.")

    def with_task(self, task: Task) -> "Project":
        """Return a copy with *task* added at the top of the board."""
        return self.model_copy(update={"tasks": [task, *self.tasks]})

    def with_task_status(self, task_id: str, status: TaskStatus) -> "Project":
        """Return a copy where the task *task_id* has *status*."""
        self.find_task(task_id)
        tasks = [
            t.model_copy(update={"status": status}) if t.id == task_id else t for t in self.tasks
        ]
        return self.model_copy(update={"tasks": tasks})

    def with_doc(self, doc: Documentation) -> "Project":
        """Return a copy with *doc* appended."""
        return self.model_copy(update={"docs": [*self.docs, doc]})

    def with_description(self, description: str) -> "Project":
        """Return a copy with a new project description."""
        return self.model_copy(update={"description": description})

    def summary(self) -> str:
        """Short context block describing the project to the reasoning backend."""
        repos = ", ".join(self.github_repos) or "none"
        open_tasks = sum(1 for t in self.tasks if t.status is not TaskStatus.DONE)
        lines = [
            f"PROJECT: {self.name} (id {self.id})",
            f"CONNECTED REPOSITORIES: {repos}",
            f"TASKS: {len(self.tasks)} ({open_tasks} open)",
        ]
        for task in self.tasks[:20]:
            lines.append(f"- [{task.status.value}] {task.id}: {task.title}")
        return "\n".join(lines)
