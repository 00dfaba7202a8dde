"""Prompt template loading utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import yaml
from pydantic import ValidationError

from ..errors import ConfigurationError
from ..storage.models import TicketType
from .models import Phase, PromptTemplate

BUNDLED_TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"


class PromptLoadError(ConfigurationError):
    """Raised when one or more template files cannot be parsed."""


class PromptLoader:
    """Loads prompt templates from YAML files on disk.

    The bundled templates are always searched first; configured paths override
    them when template ids collide.
    """

    def __init__(self, search_paths: Iterable[Path] | None = None) -> None:
        paths = [BUNDLED_TEMPLATE_DIR, *(Path(path) for path in (search_paths or []))]
        self._search_paths: list[Path] = [path for path in paths if path.exists()]
        self._cache: dict[str, PromptTemplate] | None = None

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def load_all(self) -> dict[str, PromptTemplate]:
        if self._cache is not None:
            return dict(self._cache)

        templates: dict[str, PromptTemplate] = {}
        errors: list[str] = []

        for base in self._search_paths:
            for path in sorted(base.glob("*.yml")) + sorted(base.glob("*.yaml")):
                try:
                    document = yaml.safe_load(path.read_text(encoding="utf-8"))
                except yaml.YAMLError as exc:  # pragma: no cover - library type
                    errors.append(f"Failed to parse YAML in {path}: {exc}")
                    continue

                if document is None:
                    continue

                try:
                    template = PromptTemplate.model_validate(document)
                except ValidationError as exc:
                    errors.append(f"Prompt template validation error in {path}: {exc}")
                    continue

                templates[template.id] = template

        if errors:
            raise PromptLoadError("; ".join(errors))

        self._cache = templates
        return dict(templates)

    def for_phase(self, phase: Phase, ticket_type: TicketType | None = None) -> PromptTemplate:
        """Return the template for a phase; start-phase lookups are keyed by ticket type."""

        candidates = [template for template in self.load_all().values() if template.phase == phase]
        if phase == "start":
            wanted = ticket_type or TicketType.FEATURE
            matches = [template for template in candidates if template.ticket_type == wanted]
            if not matches:
                matches = [
                    template
                    for template in candidates
                    if template.ticket_type == TicketType.FEATURE
                ]
            candidates = matches
        if not candidates:
            raise PromptLoadError(f"No prompt template available for phase '{phase}'")
        return candidates[-1]


__all__ = ["BUNDLED_TEMPLATE_DIR", "PromptLoadError", "PromptLoader"]
