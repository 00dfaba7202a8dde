"""JSON document store for tickets."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from pydantic.alias_generators import to_snake

from ..errors import TicketNotFoundError
from .models import Ticket, TicketDocument, utc_now

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset(
    {
        "project_id",
        "type",
        "title",
        "description",
        "success_criteria",
        "priority",
        "jira_key",
        "jira_project",
    }
)


def editable_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Keep only user-editable fields; workflow fields belong to the state machine."""

    normalized = {to_snake(key): value for key, value in fields.items()}
    return {key: value for key, value in normalized.items() if key in EDITABLE_FIELDS}


class TicketStore:
    """Persist tickets as one JSON document rewritten wholesale on every mutation.

    Every read-modify-write runs under a single store-wide lock, and the document
    is replaced atomically (temp file + rename).
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> TicketDocument:
        if not self._path.exists():
            document = TicketDocument()
            self._write(document)
            return document
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return TicketDocument.model_validate(raw)

    def _write(self, document: TicketDocument) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            document.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False
        )
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".tickets-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def list(self) -> list[Ticket]:
        async with self._lock:
            return list(self.load().tickets)

    async def get(self, ticket_id: str) -> Ticket:
        async with self._lock:
            ticket = self.load().find(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    async def create(self, fields: dict[str, Any]) -> Ticket:
        async with self._lock:
            document = self.load()
            payload = editable_fields(fields)
            now = utc_now()
            ticket = Ticket.model_validate(
                {**payload, "id": document.allocate_id(), "created_at": now, "updated_at": now}
            )
            document.tickets.append(ticket)
            self._write(document)
        logger.info("Created ticket", extra={"ticket_id": ticket.id, "type": ticket.type.value})
        return ticket

    async def create_many(self, items: list[dict[str, Any]]) -> list[Ticket]:
        created: list[Ticket] = []
        async with self._lock:
            document = self.load()
            now = utc_now()
            for fields in items:
                payload = editable_fields(fields)
                ticket = Ticket.model_validate(
                    {**payload, "id": document.allocate_id(), "created_at": now, "updated_at": now}
                )
                document.tickets.append(ticket)
                created.append(ticket)
            if created:
                self._write(document)
        return created

    async def update(self, ticket_id: str, mutate: Callable[[Ticket], None]) -> Ticket:
        """Apply ``mutate`` to the stored ticket and persist the result."""

        async with self._lock:
            document = self.load()
            ticket = document.find(ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            mutate(ticket)
            ticket.touch()
            self._write(document)
            return ticket.model_copy(deep=True)

    async def patch(self, ticket_id: str, changes: dict[str, Any]) -> Ticket:
        def _apply(ticket: Ticket) -> None:
            merged = ticket.model_dump()
            merged.update(editable_fields(changes))
            updated = Ticket.model_validate(merged)
            for name in Ticket.model_fields:
                setattr(ticket, name, getattr(updated, name))

        return await self.update(ticket_id, _apply)

    async def delete(self, ticket_id: str) -> Ticket:
        async with self._lock:
            document = self.load()
            ticket = document.find(ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            document.tickets.remove(ticket)
            self._write(document)
        logger.info("Deleted ticket", extra={"ticket_id": ticket_id})
        return ticket

    async def reset(self) -> None:
        async with self._lock:
            self._write(TicketDocument())


__all__ = ["TicketStore"]
