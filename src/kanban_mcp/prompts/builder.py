"""Assemble agent prompts from tickets, projects and phase templates."""

from __future__ import annotations

from ..storage.models import Project, Ticket
from .loader import PromptLoader
from .models import PromptTemplate


def _project_block(project: Project) -> str:
    return f"Project: {project.display_name}\nPath: {project.path}"


def _jira_block(ticket: Ticket, jira_host: str | None) -> str | None:
    if not ticket.jira_key:
        return None
    lines = ["## Jira ticket", f"- Key: {ticket.jira_key}"]
    if jira_host:
        lines.append(f"- URL: https://{jira_host}/browse/{ticket.jira_key}")
    return "\n".join(lines)


def _instructions_block(template: PromptTemplate, heading: str | None = None) -> str:
    parts = [f"## {heading or template.heading}"]
    if template.preamble:
        parts.append(template.preamble.strip())
    steps = template.render_steps()
    if steps:
        parts.append(steps)
    return "\n".join(parts)


class PromptBuilder:
    """Render start, approve and rework prompts."""

    def __init__(self, loader: PromptLoader, *, jira_host: str | None = None) -> None:
        self._loader = loader
        self._jira_host = jira_host or None

    def _header(self, ticket: Ticket, project: Project) -> list[str]:
        sections = [_project_block(project)]
        jira = _jira_block(ticket, self._jira_host)
        if jira:
            sections.append(jira)
        return sections

    def start(self, ticket: Ticket, project: Project) -> str:
        template = self._loader.for_phase("start", ticket.type)
        request = [
            "## Task request",
            f"Title: {ticket.title}",
            f"Description: {ticket.description or 'None'}",
        ]
        if ticket.success_criteria:
            request.append(f"Success criteria: {ticket.success_criteria}")
        sections = self._header(ticket, project)
        sections.append("\n".join(request))
        sections.append(_instructions_block(template))
        return "\n\n".join(sections).strip()

    def approve(self, ticket: Ticket, project: Project) -> str:
        template = self._loader.for_phase("approve")
        sections = self._header(ticket, project)
        sections.append(
            "\n".join(
                [
                    "## Ticket",
                    f"- Title: {ticket.title}",
                    f"- Description: {ticket.description or 'None'}",
                ]
            )
        )
        sections.append(_instructions_block(template))
        return "\n\n".join(sections).strip()

    def rework(self, ticket: Ticket, project: Project, request: str) -> str:
        """Render the rework prompt; ``ticket.rework_count`` must already be incremented."""

        template = self._loader.for_phase("rework")
        heading = f"{template.heading} (#{ticket.rework_count})"
        sections = self._header(ticket, project)
        sections.append(f"## Requested changes\n{request.strip()}")
        sections.append(
            "\n".join(
                [
                    "## Original ticket",
                    f"Title: {ticket.title}",
                    f"Description: {ticket.description or 'None'}",
                ]
            )
        )
        sections.append(_instructions_block(template, heading=heading))
        return "\n\n".join(sections).strip()


__all__ = ["PromptBuilder"]
