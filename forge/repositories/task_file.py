"""Markdown presentation files for tasks (YAML front matter + body).

These files are for humans and agents reading the workspace. The task index
stays authoritative; :func:`parse_task_file` exists so an index can be rebuilt
from the files after it is lost. Every field is kept in the front matter, so
the rebuild is lossless; the Markdown body is only read for files written by
hand without those fields.
"""

import re
from typing import Any, Dict, List

import yaml

from ..core.task import Task

_FRONT_MATTER = re.compile(r"^---\n(.*?)\n---\n(.*)$", re.DOTALL)
_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_CRITERIA_SECTION = re.compile(
    r"^##\s+Acceptance Criteria\s*\n(.*?)(?=^##\s|\Z)", re.MULTILINE | re.DOTALL
)
_CRITERION = re.compile(r"^\d+\.\s+(.+)$")
_NOTES_SECTION = re.compile(r"^##\s+Notes\s*\n(.*?)(?=^##\s|\Z)", re.MULTILINE | re.DOTALL)


def render_task_file(task: Task) -> str:
    """Render a task as Markdown with YAML front matter."""
    front_matter = {
        key: value
        for key, value in task.to_dict().items()
        if value not in (None, [], "")
    }
    front_matter_str = yaml.dump(
        front_matter, default_flow_style=False, sort_keys=False, allow_unicode=True
    )

    body = f"# {task.description}\n\n"

    if task.acceptance_criteria:
        body += "## Acceptance Criteria\n"
        for index, criterion in enumerate(task.acceptance_criteria, start=1):
            body += f"{index}. {criterion}\n"
        body += "\n"

    if task.notes:
        body += "## Notes\n"
        body += f"{task.notes}\n"

    return f"---\n{front_matter_str}---\n\n{body}"


def parse_task_file(content: str) -> Task:
    """
    Parse a task file produced by :func:`render_task_file`.

    Args:
        content: File content

    Returns:
        Reconstructed Task

    Raises:
        ValueError: If the file has no front matter or fails validation
    """
    match = _FRONT_MATTER.match(content)
    if not match:
        raise ValueError("Invalid task file format: missing YAML front matter")

    front_matter_str, body = match.groups()
    data: Dict[str, Any] = yaml.safe_load(front_matter_str) or {}
    if not isinstance(data, dict):
        raise ValueError("Task front matter must be a YAML mapping")

    if "description" not in data:
        heading = _HEADING.search(body)
        data["description"] = heading.group(1).strip() if heading else ""

    if "acceptanceCriteria" not in data:
        data["acceptanceCriteria"] = _parse_criteria(body)

    if "notes" not in data:
        notes_match = _NOTES_SECTION.search(body)
        data["notes"] = notes_match.group(1).strip() if notes_match else ""

    return Task.from_dict(data)


def _parse_criteria(body: str) -> List[str]:
    criteria: List[str] = []
    criteria_match = _CRITERIA_SECTION.search(body)
    if criteria_match:
        for line in criteria_match.group(1).splitlines():
            item = _CRITERION.match(line.strip())
            if item:
                criteria.append(item.group(1).strip())
    return criteria
