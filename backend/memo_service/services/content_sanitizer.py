"""Coerce loosely-typed AI output into the strict memo document model.

Completions are parsed JSON, so any field can turn out to be a number, a
nested object, null, or missing. Everything in this module is total: it
never raises on odd input. Unusable values become empty strings or empty
lists, and a WARNING naming the offending path (e.g.
``sections[2].highlights[0].metric``) is logged instead.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from memo_service.models.memo import (
    Emphasis,
    Highlight,
    Narrative,
    Paragraph,
    QuickTake,
    ReadinessLevel,
    Section,
    StructuredDocument,
    VCQuestion,
    VCReflection,
)
from memo_service.models.quality import (
    CompletenessSuggestion,
    ConsistencyFlag,
    FlagSeverity,
)

logger = logging.getLogger(__name__)

# Nested {"text": {"value": ...}} wrappers deeper than this are dropped
MAX_DEPTH = 8

_TEXT_KEYS = ("text", "value")
_EMPHASIS_VALUES = {e.value for e in Emphasis}
_READINESS_VALUES = {r.value for r in ReadinessLevel}


class SanitizationWarning(UserWarning):
    """A value was coerced or dropped during sanitization."""


def _warn(path: str, detail: str) -> None:
    logger.warning(
        f"{SanitizationWarning.__name__}: {detail} at {path}",
        extra={"step": "sanitize"},
    )


def to_safe_string(value: Any, path: str = "value", _depth: int = 0) -> str:
    """Render any parsed-JSON value as display text.

    Strings pass through, null becomes "", booleans become "true"/"false",
    numbers become decimal text (integral floats without ".0"), and mappings
    carrying a ``text`` or ``value`` key are unwrapped. Anything else becomes
    "" with a warning.
    """
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return to_safe_string(value.value, path, _depth)
    if isinstance(value, int):
        try:
            return str(value)
        except ValueError:
            # Past sys.get_int_max_str_digits()
            _warn(path, "integer too large, value dropped")
            return ""
    if isinstance(value, float):
        if not math.isfinite(value):
            _warn(path, "non-finite number dropped")
            return ""
        if value.is_integer():
            return str(int(value))
        return str(value)
    if isinstance(value, Mapping):
        if _depth >= MAX_DEPTH:
            _warn(path, "nesting too deep, value dropped")
            return ""
        for key in _TEXT_KEYS:
            if key in value:
                return to_safe_string(value[key], f"{path}.{key}", _depth + 1)
        _warn(path, "object without text or value dropped")
        return ""

    _warn(path, f"{type(value).__name__} dropped")
    return ""


def _as_list(value: Any, path: str) -> list:
    if isinstance(value, (list, tuple)):
        return list(value)
    if value is not None:
        _warn(path, f"expected a list, got {type(value).__name__}")
    return []


def to_string_list(value: Any, path: str = "value") -> list[str]:
    """Coerce a parsed-JSON value into a list of display strings."""
    return [to_safe_string(item, f"{path}[{i}]") for i, item in enumerate(_as_list(value, path))]


def _emphasis(value: Any, path: str) -> Optional[Emphasis]:
    text = to_safe_string(value, path).strip().lower()
    if not text:
        return None
    if text not in _EMPHASIS_VALUES:
        _warn(path, f"unknown emphasis {text!r} dropped")
        return None
    return Emphasis(text)


def _readiness(value: Any, path: str) -> ReadinessLevel:
    text = to_safe_string(value, path).strip().upper()
    if text not in _READINESS_VALUES:
        if text:
            _warn(path, f"unknown readiness {text!r} defaulted to MEDIUM")
        return ReadinessLevel.MEDIUM
    return ReadinessLevel(text)


def _paragraph(value: Any, path: str) -> Paragraph:
    if isinstance(value, Mapping):
        return Paragraph(
            text=to_safe_string(value.get("text"), f"{path}.text"),
            emphasis=_emphasis(value.get("emphasis"), f"{path}.emphasis"),
        )
    return Paragraph(text=to_safe_string(value, path))


def _paragraphs(value: Any, path: str) -> list[Paragraph]:
    if isinstance(value, str):
        return [Paragraph(text=value)]
    return [_paragraph(item, f"{path}[{i}]") for i, item in enumerate(_as_list(value, path))]


def _highlight(value: Any, path: str) -> Highlight:
    if isinstance(value, Mapping):
        return Highlight(
            metric=to_safe_string(value.get("metric"), f"{path}.metric"),
            label=to_safe_string(value.get("label"), f"{path}.label"),
        )
    return Highlight(metric=to_safe_string(value, path), label="")


def _highlights(value: Any, path: str) -> list[Highlight]:
    return [_highlight(item, f"{path}[{i}]") for i, item in enumerate(_as_list(value, path))]


def _narrative(value: Any, path: str) -> Optional[Narrative]:
    if value is None:
        return None
    if isinstance(value, str):
        return Narrative(paragraphs=[Paragraph(text=value)])
    if isinstance(value, (list, tuple)):
        return Narrative(paragraphs=_paragraphs(value, f"{path}.paragraphs"))
    if isinstance(value, Mapping):
        return Narrative(
            paragraphs=_paragraphs(value.get("paragraphs"), f"{path}.paragraphs"),
            highlights=_highlights(value.get("highlights"), f"{path}.highlights"),
            keyPoints=to_string_list(value.get("keyPoints"), f"{path}.keyPoints"),
        )
    _warn(path, f"narrative of type {type(value).__name__} dropped")
    return None


def _question(value: Any, path: str) -> VCQuestion:
    if isinstance(value, Mapping):
        return VCQuestion(
            question=to_safe_string(value.get("question"), f"{path}.question"),
            vcRationale=to_safe_string(value.get("vcRationale"), f"{path}.vcRationale"),
            whatToPrepare=to_safe_string(value.get("whatToPrepare"), f"{path}.whatToPrepare"),
        )
    return VCQuestion(question=to_safe_string(value, path))


def _reflection(value: Any, path: str) -> Optional[VCReflection]:
    if value is None:
        return None
    if isinstance(value, str):
        return VCReflection(analysis=value)
    if not isinstance(value, Mapping):
        _warn(path, f"vcReflection of type {type(value).__name__} dropped")
        return None
    questions = _as_list(value.get("questions"), f"{path}.questions")
    return VCReflection(
        analysis=to_safe_string(value.get("analysis"), f"{path}.analysis"),
        questions=[_question(q, f"{path}.questions[{i}]") for i, q in enumerate(questions)],
        benchmarking=to_safe_string(value.get("benchmarking"), f"{path}.benchmarking"),
        conclusion=to_safe_string(value.get("conclusion"), f"{path}.conclusion"),
    )


def _section(value: Any, path: str, fallback_title: str) -> Section:
    if not isinstance(value, Mapping):
        text = to_safe_string(value, path)
        return Section(
            title=fallback_title,
            paragraphs=[Paragraph(text=text)] if text else [],
        )

    title = to_safe_string(value.get("title"), f"{path}.title") or fallback_title
    return Section(
        title=title,
        paragraphs=_paragraphs(value.get("paragraphs"), f"{path}.paragraphs"),
        highlights=_highlights(value.get("highlights"), f"{path}.highlights"),
        keyPoints=to_string_list(value.get("keyPoints"), f"{path}.keyPoints"),
        narrative=_narrative(value.get("narrative"), f"{path}.narrative"),
        vcReflection=_reflection(value.get("vcReflection"), f"{path}.vcReflection"),
    )


def _sections(value: Any) -> list[Section]:
    # Older payloads keyed sections by title instead of listing them
    if isinstance(value, Mapping):
        sections = []
        for i, (title, content) in enumerate(value.items()):
            title_text = to_safe_string(title, f"sections[{i}]") or f"Section {i + 1}"
            sections.append(_section(content, f"sections[{i}]", title_text))
        return sections

    return [
        _section(item, f"sections[{i}]", f"Section {i + 1}")
        for i, item in enumerate(_as_list(value, "sections"))
    ]


def sanitize_quick_take(value: Any, path: str = "quickTake") -> Optional[QuickTake]:
    """Coerce a quick take object, or None if there is nothing usable."""
    if value is None:
        return None
    if not isinstance(value, Mapping):
        _warn(path, f"quick take of type {type(value).__name__} dropped")
        return None
    return QuickTake(
        verdict=to_safe_string(value.get("verdict"), f"{path}.verdict"),
        concerns=to_string_list(value.get("concerns"), f"{path}.concerns"),
        strengths=to_string_list(value.get("strengths"), f"{path}.strengths"),
        readinessLevel=_readiness(value.get("readinessLevel"), f"{path}.readinessLevel"),
        readinessRationale=to_safe_string(value.get("readinessRationale"), f"{path}.readinessRationale"),
    )


def sanitize(raw: Any) -> Optional[StructuredDocument]:
    """Turn a raw memo payload into a StructuredDocument.

    Accepts the assembled generation output, a stored memo, or an already
    sanitized document (sanitizing twice yields the same result). Returns
    None only when the top level is not an object.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json", exclude_none=True)

    if not isinstance(raw, Mapping):
        _warn("$", f"document of type {type(raw).__name__} rejected")
        return None

    quick_take_raw = raw.get("quickTake")
    if quick_take_raw is None:
        quick_take_raw = raw.get("vcQuickTake")

    generated_at = raw.get("generatedAt")
    if isinstance(generated_at, datetime):
        generated_at = generated_at.isoformat()
    elif generated_at is not None:
        generated_at = to_safe_string(generated_at, "generatedAt")

    return StructuredDocument(
        sections=_sections(raw.get("sections")),
        quickTake=sanitize_quick_take(quick_take_raw),
        generatedAt=generated_at,
    )


def sanitize_consistency_flags(value: Any) -> list[ConsistencyFlag]:
    """Coerce the flags array of a consistency check response."""
    flags = []
    for i, item in enumerate(_as_list(value, "flags")):
        path = f"flags[{i}]"
        if not isinstance(item, Mapping):
            _warn(path, f"flag of type {type(item).__name__} dropped")
            continue
        severity = to_safe_string(item.get("severity"), f"{path}.severity").strip().lower()
        flags.append(
            ConsistencyFlag(
                severity=FlagSeverity(severity) if severity in FlagSeverity.__members__ else FlagSeverity.warning,
                field1=to_safe_string(item.get("field1"), f"{path}.field1"),
                field2=to_safe_string(item.get("field2"), f"{path}.field2"),
                description=to_safe_string(item.get("description"), f"{path}.description"),
                suggestion=to_safe_string(item.get("suggestion"), f"{path}.suggestion"),
            )
        )
    return flags


def sanitize_suggestions(value: Any, limit: int = 3) -> list[CompletenessSuggestion]:
    """Coerce the suggestions array of a completeness check response."""
    suggestions = []
    for i, item in enumerate(_as_list(value, "suggestions")[:limit]):
        path = f"suggestions[{i}]"
        if isinstance(item, Mapping):
            suggestions.append(
                CompletenessSuggestion(
                    element=to_safe_string(item.get("element"), f"{path}.element"),
                    prompt=to_safe_string(item.get("prompt"), f"{path}.prompt"),
                    example=to_safe_string(item.get("example"), f"{path}.example"),
                )
            )
        else:
            suggestions.append(CompletenessSuggestion(prompt=to_safe_string(item, path)))
    return suggestions
