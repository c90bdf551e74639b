"""Persist the Project aggregate as whole-object overwrites."""

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import (
    Dict,
    Protocol,
)

from projectpilot.config import settings
from projectpilot.core.errors import NotFound
from projectpilot.core.project import Project

logger = logging.getLogger(__name__)

# Ids become file names; anything else could escape the storage directory
_PROJECT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class ProjectStore(Protocol):
    """External document store: load a project, overwrite it as a whole."""

    async def load(self, project_id: str) -> Project:
        """Return the stored project or raise :class:`NotFound`."""

    async def save(self, project: Project) -> None:
        """Overwrite the stored project with *project*."""


class InMemoryProjectStore:
    """Dict-backed store, handy for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._projects: Dict[str, Project] = {}
        self.saves = 0

    async def load(self, project_id: str) -> Project:
        try:
            return self._projects[project_id]
        except KeyError as exc:
            raise NotFound(f"Project {project_id} not found.") from exc

    async def save(self, project: Project) -> None:
        self._projects[project.id] = project
        self.saves += 1


class JsonProjectStore:
    """
    One JSON document per project under ``<data_dir>/projects``.

    Writes go through a temp file followed by :func:`os.replace`, so readers never see a
    half-written document.
    """

    def __init__(self, data_dir: str | Path | None = None) -> None:
        self._root = Path(data_dir or settings.DATA_DIR) / "projects"

    def _path(self, project_id: str) -> Path:
        if not _PROJECT_ID_RE.match(project_id):
            raise NotFound(f"Project {project_id} not found.")
        return self._root / f"{project_id}.json"

    def init(self) -> None:
        """Ensure the storage directory exists."""
        self._root.mkdir(parents=True, exist_ok=True)

    async def load(self, project_id: str) -> Project:
        path = self._path(project_id)
        if not path.is_file():
            raise NotFound(f"Project {project_id} not found.")
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return Project.model_validate_json(text)

    async def save(self, project: Project) -> None:
        await asyncio.to_thread(self._write, project)
        logger.debug("Saved project %s (%d tasks)", project.id, len(project.tasks))

    def _write(self, project: Project) -> None:
        target = self._path(project.id)
        self.init()
        fd, tmp_name = tempfile.mkstemp(dir=self._root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(project.model_dump_json(indent=2))
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
