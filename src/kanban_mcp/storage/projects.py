"""Read access to the externally managed project registry."""

from __future__ import annotations

import json
from pathlib import Path

from ..errors import ProjectNotFoundError
from .models import Project, ProjectDocument


class ProjectStore:
    """Loads ``projects.json``; projects are owned by the board, not by the engine."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    def load(self) -> ProjectDocument:
        if not self._path.exists():
            return ProjectDocument()
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return ProjectDocument.model_validate(raw)

    def list(self) -> list[Project]:
        return list(self.load().projects)

    def get(self, project_id: str | None) -> Project:
        if project_id:
            for project in self.load().projects:
                if project.id == project_id:
                    return project
        raise ProjectNotFoundError(project_id)

    def add(self, project: Project) -> Project:
        document = self.load()
        if any(existing.id == project.id for existing in document.projects):
            raise ValueError(f"Project '{project.id}' already exists")
        document.projects.append(project)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(
            json.dumps(
                document.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False
            ),
            encoding="utf-8",
        )
        return project


__all__ = ["ProjectStore"]
