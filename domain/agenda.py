"""
Agenda template parsing, validation and structure comparison.

Templates arrive as loosely-typed JSON documents (``meetings.template_data``
or ``meeting_types.template_structure``). They are parsed once, here, into
AgendaTemplate so the rest of the service never shape-checks at runtime.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from domain.models import AgendaTemplate, Meeting, MeetingType, StructuredNotes
from shared_utils.constants import Defaults, LogScope
from shared_utils.error_handler import ValidationError
from shared_utils.logging_utils import get_scoped_logger


logger = get_scoped_logger(LogScope.VALIDATION)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_template(raw: Any) -> AgendaTemplate:
    """Parse a raw template document.

    Args:
        raw: dict, JSON text, AgendaTemplate or None (empty template).

    Returns:
        AgendaTemplate

    Raises:
        ValidationError: If the document is malformed.
    """
    if raw is None:
        return AgendaTemplate()
    if isinstance(raw, AgendaTemplate):
        return raw
    if isinstance(raw, str):
        if not raw.strip():
            return AgendaTemplate()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValidationError("Template is not valid JSON", context={"error": str(exc)}) from exc
    try:
        return AgendaTemplate.model_validate(raw)
    except PydanticValidationError as exc:
        logger.warning("template_parse_failed", error_count=exc.error_count())
        raise ValidationError(
            "Template document is malformed",
            context={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
        ) from exc


def resolve_template(meeting: Meeting, meeting_type: Optional[MeetingType] = None) -> AgendaTemplate:
    """The meeting's own template, else its type's default, else empty."""
    if meeting.template_data is not None and not meeting.template_data.is_empty:
        return meeting.template_data
    if meeting_type is not None and meeting_type.template_structure is not None:
        return meeting_type.template_structure
    return AgendaTemplate()


# ---------------------------------------------------------------------------
# Validation (template editor rules)
# ---------------------------------------------------------------------------


class IssuePriority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_PRIORITY_SCORE = {
    IssuePriority.CRITICAL: 4,
    IssuePriority.HIGH: 3,
    IssuePriority.MEDIUM: 2,
    IssuePriority.LOW: 1,
}


class TemplateIssue(BaseModel):
    type: str  # "error" | "warning"
    field: str
    message: str
    section_index: Optional[int] = None
    priority: IssuePriority


class TemplateValidationResult(BaseModel):
    is_valid: bool
    errors: List[TemplateIssue] = []
    warnings: List[TemplateIssue] = []


def _error(field: str, message: str, priority: IssuePriority, section_index: Optional[int] = None) -> TemplateIssue:
    return TemplateIssue(type="error", field=field, message=message, section_index=section_index, priority=priority)


def _warning(field: str, message: str, priority: IssuePriority, section_index: Optional[int] = None) -> TemplateIssue:
    return TemplateIssue(type="warning", field=field, message=message, section_index=section_index, priority=priority)


def validate_template(template: AgendaTemplate) -> TemplateValidationResult:
    """Check a template against the editor rules.

    Errors make the template invalid; warnings are advisory. Both lists are
    ordered most severe first.
    """
    errors: List[TemplateIssue] = []
    warnings: List[TemplateIssue] = []

    if "key_messages" in template.model_fields_set:
        if not template.key_messages:
            warnings.append(_warning(
                "key_messages", "Consider adding key messages to guide the meeting", IssuePriority.LOW
            ))
        for index, message in enumerate(template.key_messages):
            if not message or not message.strip():
                warnings.append(_warning("key_messages", f"Key message {index + 1} is empty", IssuePriority.LOW))

    if not template.agenda_sections:
        errors.append(_error("agenda_sections", "At least one agenda section is required", IssuePriority.CRITICAL))
    else:
        total_minutes = 0
        seen_names = set()

        for index, section in enumerate(template.agenda_sections):
            name = section.section.strip()
            if not name:
                errors.append(_error("section", "Section name is required", IssuePriority.CRITICAL, index))
            else:
                normalized = name.lower()
                if normalized in seen_names:
                    warnings.append(_warning(
                        "section",
                        f'Section name "{section.section}" appears to be duplicated',
                        IssuePriority.MEDIUM,
                        index,
                    ))
                seen_names.add(normalized)

            if not section.purpose.strip():
                warnings.append(_warning("purpose", "Section purpose is recommended", IssuePriority.HIGH, index))

            if section.time_minutes < 1:
                errors.append(_error(
                    "time_minutes", "Section time must be at least 1 minute", IssuePriority.MEDIUM, index
                ))
            elif section.time_minutes > Defaults.MAX_SECTION_MINUTES:
                warnings.append(_warning(
                    "time_minutes",
                    "Section time is quite long - consider breaking it down",
                    IssuePriority.MEDIUM,
                    index,
                ))

            if name and section.purpose.strip():
                if not section.questions and not section.talking_points and not section.checklist:
                    warnings.append(_warning(
                        "content",
                        "Consider adding questions, talking points, or checklist items",
                        IssuePriority.LOW,
                        index,
                    ))

            total_minutes += section.time_minutes

        if total_minutes > Defaults.MAX_TOTAL_MINUTES:
            warnings.append(_warning(
                "total_time",
                f"Total meeting time is {total_minutes} minutes - consider if this is realistic",
                IssuePriority.MEDIUM,
            ))

    if isinstance(template.setup, dict) and not template.setup:
        warnings.append(_warning("setup", "Meeting setup is empty", IssuePriority.LOW))

    if "expected_outputs" in template.model_fields_set and not template.expected_outputs:
        warnings.append(_warning("expected_outputs", "Consider defining expected meeting outputs", IssuePriority.LOW))

    # stable sort keeps discovery order within a priority
    errors.sort(key=lambda issue: _PRIORITY_SCORE[issue.priority], reverse=True)
    warnings.sort(key=lambda issue: _PRIORITY_SCORE[issue.priority], reverse=True)

    return TemplateValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


# ---------------------------------------------------------------------------
# Structure comparison
# ---------------------------------------------------------------------------


StructureSignature = Tuple[Tuple[str, int, int], ...]


def structure_signature(template: AgendaTemplate) -> StructureSignature:
    """Section order plus prompt counts per section.

    Two templates with equal signatures differ only in content (prompt
    wording, purposes, timings, guidance lists), never in shape.
    """
    return tuple(
        (section.section.strip().lower(), len(section.questions), len(section.talking_points))
        for section in template.agenda_sections
    )


def is_structural_change(before: AgendaTemplate, after: AgendaTemplate) -> bool:
    return structure_signature(before) != structure_signature(after)


class OrphanedPrompt(BaseModel):
    """An answered prompt whose text is no longer in the template."""

    section_index: int
    prompt_kind: str  # "question" | "talking_point"
    text: str


def find_orphaned_prompts(template: AgendaTemplate, notes: StructuredNotes) -> List[OrphanedPrompt]:
    """Report responses keyed by prompt text the template no longer contains.

    Responses are matched to prompts by exact text, so editing a prompt's
    wording detaches its earlier answer. Nothing is repaired here.
    """
    orphans: List[OrphanedPrompt] = []
    sections = template.agenda_sections

    for index, entry in enumerate(notes.agenda_sections):
        if entry is None:
            continue
        section = sections[index] if index < len(sections) else None
        questions = set(section.questions) if section else set()
        points = set(section.talking_points) if section else set()

        for response in entry.questions or []:
            if response.question_text not in questions:
                orphans.append(OrphanedPrompt(
                    section_index=index, prompt_kind="question", text=response.question_text
                ))
        for note in entry.talking_points or []:
            if note.point_text not in points:
                orphans.append(OrphanedPrompt(
                    section_index=index, prompt_kind="talking_point", text=note.point_text
                ))

    return orphans
