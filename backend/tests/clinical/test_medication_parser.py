from datetime import date

import pytest

from uni_health.services.medications import (
    DEFAULT_DOSAGE,
    DEFAULT_FREQUENCY,
    DEFAULT_INSTRUCTIONS,
    detect_duration_days,
    detect_frequency,
    parse_medication_line,
    parse_medications,
)

START = date(2026, 3, 2)


def test_dash_form():
    med = parse_medication_line("Paracetamol - 500mg - twice daily", START)

    assert med.name == "Paracetamol"
    assert med.dosage == "500mg"
    assert med.instructions == "twice daily"
    assert med.frequency == "Twice daily"
    assert med.start_date == START
    assert med.end_date == date(2026, 3, 9)


def test_parenthesised_dosage():
    med = parse_medication_line("Amoxicillin (250mg) with food for 2 weeks", START)

    assert med.name == "Amoxicillin"
    assert med.dosage == "250mg"
    assert med.instructions == "with food for 2 weeks"
    assert med.end_date == date(2026, 3, 16)


def test_comma_form():
    med = parse_medication_line("Cetirizine, 10mg, at night", START)

    assert (med.name, med.dosage, med.instructions) == ("Cetirizine", "10mg", "at night")
    assert med.frequency == "At bedtime"


def test_bare_name_gets_defaults():
    med = parse_medication_line("Vitamin D", START)

    assert med.name == "Vitamin D"
    assert med.dosage == DEFAULT_DOSAGE
    assert med.instructions == DEFAULT_INSTRUCTIONS
    assert med.frequency == DEFAULT_FREQUENCY


@pytest.mark.parametrize(
    "text,expected",
    [
        ("take once daily", "Once daily"),
        ("one tablet bid", "Twice daily"),
        ("three times a day", "Three times daily"),
        ("every 8 hours", "Every 8 hours"),
        ("four times daily after meals", "Four times daily"),
        ("prn for pain", "As needed"),
        ("with water", DEFAULT_FREQUENCY),
    ],
)
def test_detect_frequency(text, expected):
    assert detect_frequency(text) == expected


@pytest.mark.parametrize(
    "text,days",
    [("for 5 days", 5), ("for 1 week", 7), ("For 3 Weeks", 21), ("for 0 days", None), ("daily", None)],
)
def test_detect_duration_days(text, days):
    assert detect_duration_days(text) == days


def test_multi_line_text_with_bullets_and_blanks():
    text = "- Paracetamol - 500mg\n\n* Ibuprofen (200mg) every 6 hours\n1. Omeprazole, 20mg; Vitamin C"

    parsed = parse_medications(text, START)

    assert [med.name for med in parsed] == ["Paracetamol", "Ibuprofen", "Omeprazole", "Vitamin C"]
    assert parsed[1].frequency == "Every 6 hours"


@pytest.mark.parametrize("text", [None, "", "   \n  "])
def test_empty_text_parses_to_nothing(text):
    assert parse_medications(text, START) == []
