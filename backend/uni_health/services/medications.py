"""Best-effort parsing of free-text prescriptions.

Doctors type the medications of a completion report as free text, one per
line. Nothing here rejects input: unrecognised parts fall back to defaults.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta

from uni_health.core.settings import settings

DEFAULT_DOSAGE = "As directed"
DEFAULT_INSTRUCTIONS = "As directed by doctor"
DEFAULT_FREQUENCY = "As directed"

_BULLET = re.compile(r"^\s*(?:[-*•]+|\d+[.)])\s*")
_PARENTHESISED = re.compile(r"^(?P<name>[^()]+?)\s*\((?P<dosage>[^()]*)\)\s*(?P<rest>.*)$")
_DURATION = re.compile(r"\bfor\s+(?P<count>\d+)\s*(?P<unit>day|days|week|weeks)\b", re.IGNORECASE)
_FREQUENCIES = (
    (re.compile(r"\bonce\s+(?:a\s+)?daily\b|\bonce\s+a\s+day\b|\bod\b", re.IGNORECASE), "Once daily"),
    (re.compile(r"\btwice\s+(?:a\s+)?daily\b|\btwice\s+a\s+day\b|\bbid\b|\bbd\b", re.IGNORECASE), "Twice daily"),
    (
        re.compile(r"\bthree\s+times\s+(?:a\s+)?(?:daily|day)\b|\btid\b|\btds\b", re.IGNORECASE),
        "Three times daily",
    ),
    (re.compile(r"\bfour\s+times\s+(?:a\s+)?(?:daily|day)\b|\bqid\b", re.IGNORECASE), "Four times daily"),
    (re.compile(r"\bas\s+needed\b|\bprn\b", re.IGNORECASE), "As needed"),
    (re.compile(r"\bat\s+(?:bed\s*time|night)\b", re.IGNORECASE), "At bedtime"),
)
_EVERY_HOURS = re.compile(r"\bevery\s+(\d+)\s*(?:h|hr|hrs|hours?)\b", re.IGNORECASE)


@dataclass
class ParsedMedication:
    name: str
    dosage: str
    instructions: str
    frequency: str
    start_date: date
    end_date: date


def _split_fields(line: str) -> tuple[str, str | None, str | None]:
    match = _PARENTHESISED.match(line)
    if match:
        return match.group("name"), match.group("dosage"), match.group("rest")
    for delimiter in (" - ", ", "):
        if delimiter in line:
            parts = [part.strip() for part in line.split(delimiter)]
            name = parts[0]
            dosage = parts[1] if len(parts) > 1 else None
            instructions = delimiter.join(parts[2:]) if len(parts) > 2 else None
            return name, dosage, instructions
    return line, None, None


def detect_frequency(text: str) -> str:
    every = _EVERY_HOURS.search(text)
    if every:
        return f"Every {every.group(1)} hours"
    for pattern, label in _FREQUENCIES:
        if pattern.search(text):
            return label
    return DEFAULT_FREQUENCY


def detect_duration_days(text: str) -> int | None:
    match = _DURATION.search(text)
    if not match:
        return None
    count = int(match.group("count"))
    if match.group("unit").lower().startswith("week"):
        count *= 7
    return count or None


def parse_medication_line(line: str, start_date: date) -> ParsedMedication | None:
    cleaned = _BULLET.sub("", line).strip()
    if not cleaned:
        return None
    name, dosage, instructions = _split_fields(cleaned)
    name = (name or "").strip() or cleaned
    dosage = (dosage or "").strip() or DEFAULT_DOSAGE
    instructions = (instructions or "").strip() or DEFAULT_INSTRUCTIONS
    days = detect_duration_days(cleaned) or settings.default_prescription_days
    return ParsedMedication(
        name=name,
        dosage=dosage,
        instructions=instructions,
        frequency=detect_frequency(cleaned),
        start_date=start_date,
        end_date=start_date + timedelta(days=days),
    )


def parse_medications(text: str | None, start_date: date) -> list[ParsedMedication]:
    if not text or not text.strip():
        return []
    parsed: list[ParsedMedication] = []
    for line in re.split(r"[\r\n;]+", text):
        medication = parse_medication_line(line, start_date)
        if medication is not None:
            parsed.append(medication)
    return parsed
