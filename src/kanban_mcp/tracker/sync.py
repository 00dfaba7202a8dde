"""Best-effort mirroring of ticket status onto the external tracker."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence

logger = logging.getLogger(__name__)

STATUS_ALIASES: Mapping[str, tuple[str, ...]] = {
    "in-progress": ("in progress", "start progress", "진행 중", "진행중"),
    "review": ("review", "in review", "리뷰", "검토", "리뷰 대기"),
    "done": ("done", "completed", "closed", "resolved", "완료", "해결됨", "종료"),
}


class TransitionClient(Protocol):
    async def list_transitions(self, issue_key: str) -> list[dict[str, Any]]:
        ...

    async def execute_transition(self, issue_key: str, transition_id: str) -> None:
        ...


@dataclass(slots=True, frozen=True)
class TransitionOutcome:
    issue_key: str
    transition_id: str
    transition_name: str
    to_status: str | None


def aliases_for(target_status: str) -> tuple[str, ...]:
    return STATUS_ALIASES.get(target_status, (target_status,))


def _destination_name(transition: Mapping[str, Any]) -> str:
    destination = transition.get("to") or {}
    return str(destination.get("name") or "")


def match_transition(
    transitions: Iterable[Mapping[str, Any]],
    target_status: str,
    aliases: Sequence[str] | None = None,
) -> Mapping[str, Any] | None:
    """Return the first transition whose name or destination contains an alias.

    Matching is a case-insensitive substring test against both the transition
    name and the destination status name.
    """

    needles = [alias.lower() for alias in (aliases or aliases_for(target_status))]
    for transition in transitions:
        name = str(transition.get("name") or "").lower()
        haystacks = (name, _destination_name(transition).lower())
        if any(needle in haystack for needle in needles for haystack in haystacks if haystack):
            return transition
    return None


class TrackerSync:
    """Fire-and-forget adapter; failures are logged and never reach the caller."""

    def __init__(self, client: TransitionClient | None) -> None:
        self._client = client
        self._pending: set[asyncio.Task[TransitionOutcome | None]] = set()

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def sync(self, issue_key: str | None, target_status: str) -> TransitionOutcome | None:
        if self._client is None or not issue_key:
            return None
        try:
            transitions = await self._client.list_transitions(issue_key)
            transition = match_transition(transitions, target_status)
            if transition is None:
                logger.info(
                    "No tracker transition matches target status",
                    extra={
                        "issue_key": issue_key,
                        "target_status": target_status,
                        "available": [
                            f"{item.get('name')} -> {_destination_name(item)}"
                            for item in transitions
                        ],
                    },
                )
                return None
            transition_id = str(transition.get("id"))
            await self._client.execute_transition(issue_key, transition_id)
        except Exception as exc:
            logger.warning(
                "Tracker status sync failed",
                extra={"issue_key": issue_key, "target_status": target_status, "error": str(exc)},
            )
            return None

        outcome = TransitionOutcome(
            issue_key=issue_key,
            transition_id=transition_id,
            transition_name=str(transition.get("name") or ""),
            to_status=_destination_name(transition) or None,
        )
        logger.info(
            "Tracker issue transitioned",
            extra={
                "issue_key": issue_key,
                "transition": outcome.transition_name,
                "to_status": outcome.to_status,
            },
        )
        return outcome

    def schedule(self, issue_key: str | None, target_status: str) -> asyncio.Task | None:
        """Run :meth:`sync` in the background and return immediately."""

        if self._client is None or not issue_key:
            return None
        task = asyncio.create_task(self.sync(issue_key, target_status))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


__all__ = [
    "STATUS_ALIASES",
    "TrackerSync",
    "TransitionClient",
    "TransitionOutcome",
    "aliases_for",
    "match_transition",
]
