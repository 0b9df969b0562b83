from __future__ import annotations

import re
from dataclasses import dataclass, field

# Best-effort scraping of free-form model text. Every function returns an
# empty value when nothing matches and never raises on a miss.

_FOLLOW_UP_RE = re.compile(
    r"(?:\*\*)?\s*follow[- ]?up\s+questions?\s*(?:\*\*)?\s*:\s*(?:\*\*)?(.*?)(?=\n[ \t]*#|\Z)",
    flags=re.IGNORECASE | re.DOTALL,
)
_BULLET_RE = re.compile(r"^[•\-*]\s*")

_DIAGNOSIS_RE = re.compile(r"(?:primary diagnosis|most likely|diagnosis):?\s*([^\n.]+)", flags=re.IGNORECASE)
_CONFIDENCE_RE = re.compile(r"(\d+(?:\.\d+)?\s*%)")
_LEADING_INT_RE = re.compile(r"\s*([+-]?\d+)")

_RECOMMENDATIONS_RE = re.compile(
    r"recommendations?[:\s]+(.+?)(?:\n\s*\n|\n#|\Z)",
    flags=re.IGNORECASE | re.DOTALL,
)
_LIST_ITEM_RE = re.compile(r"(?:^|\n)\s*(?:[-*•]|\d+\.)\s*")
_SECTION_RE = re.compile(r"\n\d+\.|(?:\n|\A)#+\s")


@dataclass
class StructuredDiagnosis:
    full_text: str
    sections: list[str] = field(default_factory=list)
    primary_diagnosis: str = ""
    confidence_level: str = ""
    recommendations: list[str] = field(default_factory=list)


def extract_suggestions(text: str, min_length: int = 11, max_length: int = 149) -> list[str]:
    """
    Pull follow-up questions out of the closing "Follow-up Questions:" section.

    Lines are stripped of bullet markers and kept only when their length
    falls inside [min_length, max_length].
    """
    m = _FOLLOW_UP_RE.search(text or "")
    if not m:
        return []

    suggestions: list[str] = []
    for line in m.group(1).split("\n"):
        line = _BULLET_RE.sub("", line.strip())
        if min_length <= len(line) <= max_length:
            suggestions.append(line)
    return suggestions


def extract_diagnosis(text: str) -> str:
    m = _DIAGNOSIS_RE.search(text or "")
    return m.group(1).strip(" \t*") if m else ""


def extract_confidence(text: str) -> str:
    m = _CONFIDENCE_RE.search(text or "")
    return m.group(1) if m else ""


def coerce_confidence(value: str) -> int:
    m = _LEADING_INT_RE.match(value or "")
    return int(m.group(1)) if m else 0


def extract_recommendations(text: str) -> list[str]:
    m = _RECOMMENDATIONS_RE.search(text or "")
    if not m:
        return []
    items = _LIST_ITEM_RE.split(m.group(1))
    return [item.strip() for item in items if item.strip()]


def split_sections(text: str) -> list[str]:
    parts = _SECTION_RE.split(text or "")
    return [p.strip() for p in parts if p and p.strip()]


def parse_diagnosis_response(text: str) -> StructuredDiagnosis:
    return StructuredDiagnosis(
        full_text=text,
        sections=split_sections(text),
        primary_diagnosis=extract_diagnosis(text),
        confidence_level=extract_confidence(text),
        recommendations=extract_recommendations(text),
    )
