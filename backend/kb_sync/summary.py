"""Render a user's academic payload into the plain-text body indexed by the KB.

The document is assembled from independent section renderers. A renderer that
raises is skipped, so one malformed section never blanks the rest. Limits keep
the body bounded no matter how much user content arrives.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

MAX_ASSIGNMENTS = 200
MAX_COURSES = 50
MAX_EVENTS = 100
EVENT_DESCRIPTION_CHARS = 500
MAX_FILES = 50
FILE_SNIPPET_BUDGET = 16_000
FILE_SNIPPET_FLOOR = 200
FILE_SNIPPET_CEILING = 4_000
MAX_MESSAGES = 200
MESSAGE_CHARS = 1_200
MAX_GRADES = 20
RAW_JSON_CHARS = 24_000
RAW_TEXT_CHARS = 10_000

_WHITESPACE = re.compile(r"\s+")

SectionRenderer = Callable[[Mapping[str, Any]], Optional[str]]


def _squash(value: Any) -> str:
    return _WHITESPACE.sub(" ", str(value or "")).strip()


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_timestamp(value: Any) -> Optional[str]:
    """Render epoch milliseconds or ISO strings as UTC ISO-8601."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return _iso(datetime.fromtimestamp(value / 1000, tz=timezone.utc))
        except (OverflowError, OSError, ValueError):
            return str(value)
    text = str(value)
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return _iso(parsed)


def _items(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _profile(payload: Mapping[str, Any]) -> Optional[str]:
    user = payload.get("user")
    if not isinstance(user, Mapping):
        return None
    fields = [f"{key}: {user[key]}" for key in ("name", "year", "major", "institution") if user.get(key)]
    return f"Profile: {', '.join(fields)}" if fields else None


def _assignments(payload: Mapping[str, Any]) -> Optional[str]:
    assignments = payload.get("assignments")
    if not assignments:
        return None
    overdue = _items(assignments.get("overdue"))
    upcoming = _items(assignments.get("upcoming"))
    lines = [f"Assignments: {len(overdue)} overdue, {len(upcoming)} upcoming."]
    details = []
    for item in (overdue + upcoming)[:MAX_ASSIGNMENTS]:
        title = item.get("title") or item.get("name") or item.get("id") or "untitled"
        course = item.get("course") or item.get("courseId") or ""
        due = _as_timestamp(item.get("dueDate")) or (str(item["due"]) if item.get("due") else "unknown")
        status = item.get("status") or ""
        line = f"- {title}{f' ({course})' if course else ''} due {due}"
        if status:
            line += f" status:{status}"
        details.append(line)
    if details:
        lines.append("Assignment details:\n" + "\n".join(details))
    return "\n\n".join(lines)


def _courses(payload: Mapping[str, Any]) -> Optional[str]:
    courses = _items(payload.get("courses"))
    if not courses:
        return None
    lines = []
    for course in courses[:MAX_COURSES]:
        code = course.get("code") or course.get("courseCode") or course.get("name") or "course"
        instructor = course.get("instructor") or "instructor unknown"
        semester = course.get("semester") or ""
        lines.append(f"- {code} by {instructor}{f' ({semester})' if semester else ''}")
    return "Courses:\n" + "\n".join(lines)


def _events(payload: Mapping[str, Any]) -> Optional[str]:
    events = _items(payload.get("events"))
    if not events:
        return None
    lines = []
    for event in events[:MAX_EVENTS]:
        title = event.get("title") or event.get("name") or "event"
        when = _as_timestamp(event.get("startTime"))
        location = f" at {event['location']}" if event.get("location") else ""
        description = ""
        if event.get("description"):
            description = f" - {_squash(event['description'])[:EVENT_DESCRIPTION_CHARS]}"
        lines.append(f"- {title}{f' ({when})' if when else ''}{location}{description}")
    return "Events:\n" + "\n".join(lines)


def file_snippets(files: Sequence[Any], budget: int = FILE_SNIPPET_BUDGET) -> List[str]:
    """Allocate ``budget`` characters of extracted text across the listed files.

    Each file gets its share of what is left (floor/ceiling applied, never more
    than the remaining budget); listing stops once the budget is spent.
    """
    listed = list(files[:MAX_FILES])
    snippets: List[str] = []
    remaining = budget
    for index, item in enumerate(listed):
        if not isinstance(item, Mapping):
            continue
        name = item.get("name") or item.get("originalName") or item.get("storageId") or "file"
        text = _squash(item.get("extractedText") or item.get("text") or "")
        if not text:
            snippets.append(f"{name}: <no extracted text>")
            continue
        share = remaining // max(len(listed) - index, 1)
        take = min(max(FILE_SNIPPET_FLOOR, share), FILE_SNIPPET_CEILING, remaining)
        excerpt = text[:take]
        snippets.append(f"{name}: {excerpt}")
        remaining -= len(excerpt)
        if remaining <= 0:
            break
    return snippets


def _files(payload: Mapping[str, Any]) -> Optional[str]:
    files = _items(payload.get("recentFiles"))
    if not files:
        return None
    parts = [f"Files: {len(files)} recent. Listing up to {MAX_FILES} with snippets."]
    snippets = file_snippets(files)
    if snippets:
        parts.append("File snippets:\n" + "\n\n".join(snippets))
    return "\n\n".join(parts)


def _messages(payload: Mapping[str, Any]) -> Optional[str]:
    chat = payload.get("chat")
    messages = _items(chat.get("recentMessages")) if isinstance(chat, Mapping) else []
    if not messages:
        messages = _items(payload.get("recentMessages"))
    if not messages:
        return None
    lines = []
    for message in messages[:MAX_MESSAGES]:
        role = f"{message['role']}: " if message.get("role") else ""
        body = _squash(message.get("message") or message.get("text") or message.get("body"))[:MESSAGE_CHARS]
        lines.append(f"- {role}{body}")
    return "Recent messages:\n" + "\n".join(lines)


def _performance(payload: Mapping[str, Any]) -> Optional[str]:
    performance = payload.get("performance")
    if not isinstance(performance, Mapping):
        return None
    parts = []
    if performance.get("currentGPA"):
        parts.append(f"GPA: {performance['currentGPA']}")
    grades = _items(performance.get("recentGrades"))
    if grades:
        rendered = "; ".join(
            f"{grade.get('assignment') or grade.get('title') or ''}:{grade.get('grade')}"
            for grade in grades[:MAX_GRADES]
        )
        parts.append(f"Recent grades: {rendered}")
    return f"Performance: {' | '.join(parts)}" if parts else None


def _schedule(payload: Mapping[str, Any]) -> Optional[str]:
    schedule = payload.get("schedule")
    if not isinstance(schedule, Mapping):
        return None
    parts = []
    today = schedule.get("today")
    if isinstance(today, Mapping) and today.get("classes"):
        parts.append(f"today classes: {len(today['classes'])}")
    if schedule.get("college"):
        parts.append(f"college schedule items: {len(schedule['college'])}")
    return f"Schedule summary: {', '.join(parts)}" if parts else None


def _plan(payload: Mapping[str, Any]) -> Optional[str]:
    settings = payload.get("userSettings")
    if not isinstance(settings, Mapping) or not settings.get("planType"):
        return None
    expires = settings.get("planExpiresAt")
    return f"Plan: {settings['planType']}{f' (expires {expires})' if expires else ''}"


def _statistics(payload: Mapping[str, Any]) -> Optional[str]:
    stats = payload.get("statistics")
    if not isinstance(stats, Mapping):
        return None
    return (
        f"Statistics: courses={stats.get('totalCourses') or 0} "
        f"upcomingAssignments={stats.get('upcomingAssignments') or 0} "
        f"recentFiles={stats.get('recentFiles') or 0}"
    )


SECTIONS: List[SectionRenderer] = [
    _profile,
    _assignments,
    _courses,
    _events,
    _files,
    _messages,
    _performance,
    _schedule,
    _plan,
    _statistics,
]


def fallback_text(payload: Any) -> str:
    if isinstance(payload, str):
        return payload[:RAW_JSON_CHARS]
    try:
        return json.dumps(payload, indent=2)[:RAW_JSON_CHARS]
    except (TypeError, ValueError):
        return str(payload)[:RAW_TEXT_CHARS]


def render_summary(user_id: str, payload: Any, *, now: Optional[datetime] = None) -> str:
    if not isinstance(payload, Mapping):
        return fallback_text(payload)

    moment = now or datetime.now(timezone.utc)
    parts = [f"User sync summary for {user_id} at {_iso(moment)}"]
    for renderer in SECTIONS:
        try:
            section = renderer(payload)
        except Exception as exc:  # noqa: BLE001
            logger.debug("Summary section %s skipped for %s: %s", renderer.__name__, user_id, exc)
            continue
        if section:
            parts.append(section)
    return "\n\n".join(parts)


__all__ = [
    "FILE_SNIPPET_BUDGET",
    "FILE_SNIPPET_CEILING",
    "FILE_SNIPPET_FLOOR",
    "SECTIONS",
    "fallback_text",
    "file_snippets",
    "render_summary",
]
