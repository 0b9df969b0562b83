import pytest

from medassist.tools.extraction import (
    coerce_confidence,
    extract_confidence,
    extract_diagnosis,
    extract_recommendations,
    extract_suggestions,
    parse_diagnosis_response,
    split_sections,
)


def _follow_up(*lines: str) -> str:
    return "Some answer.\n\n**Follow-up Questions:**\n" + "\n".join(lines)


def test_suggestions_strip_bullet_markers():
    text = _follow_up(
        "- How long does the flu last?",
        "* Can I take ibuprofen for it?",
        "• Should I stay home from work?",
    )
    assert extract_suggestions(text) == [
        "How long does the flu last?",
        "Can I take ibuprofen for it?",
        "Should I stay home from work?",
    ]


def test_suggestions_length_boundaries():
    eleven = "q" * 11
    hundred_forty_nine = "w" * 149
    text = _follow_up("- " + "x" * 10, "- " + eleven, "- " + hundred_forty_nine, "- " + "y" * 150)
    assert extract_suggestions(text) == [eleven, hundred_forty_nine]


def test_suggestions_bounds_are_configurable():
    text = _follow_up("- short one", "- a somewhat longer question?")
    assert extract_suggestions(text, min_length=5, max_length=12) == ["short one"]


def test_suggestions_heading_variants():
    plain = "Follow-up Questions:\n- Is this contagious to others?"
    lower = "**follow-up question:**\n- Is this contagious to others?"
    heading = "## Follow-up Questions:\n- Is this contagious to others?"
    for text in (plain, lower, heading):
        assert extract_suggestions(text) == ["Is this contagious to others?"]


def test_suggestions_stop_at_next_heading():
    text = _follow_up("- What foods should I avoid?", "## Sources", "- https://example.org/flu-facts")
    assert extract_suggestions(text) == ["What foods should I avoid?"]


@pytest.mark.parametrize("text", ["", "No questions here at all.", "**Follow-up Questions:**"])
def test_suggestions_missing_section_is_empty(text):
    assert extract_suggestions(text) == []


def test_confidence_extraction():
    assert extract_confidence("...diagnosis with 87% confidence...") == "87%"
    assert extract_confidence("roughly 62.5 % likely") == "62.5 %"
    assert extract_confidence("no numbers here") == ""


@pytest.mark.parametrize(
    "value,expected",
    [("87%", 87), ("62.5 %", 62), ("", 0), ("n/a", 0)],
)
def test_coerce_confidence(value, expected):
    assert coerce_confidence(value) == expected


def test_diagnosis_extraction():
    assert extract_diagnosis("Primary Diagnosis: Influenza. Rest is advised.") == "Influenza"
    assert extract_diagnosis("The most likely cause is a tension headache\nmore") == "cause is a tension headache"
    assert extract_diagnosis("**Diagnosis:** Migraine with aura") == "Migraine with aura"
    assert extract_diagnosis("Nothing useful") == ""


def test_recommendations_extraction():
    text = (
        "Assessment above.\n\n"
        "Recommendations:\n"
        "- Drink plenty of fluids\n"
        "* Rest for 3-5 days\n"
        "1. Follow-up in one week\n"
        "\n"
        "Unrelated closing paragraph."
    )
    assert extract_recommendations(text) == [
        "Drink plenty of fluids",
        "Rest for 3-5 days",
        "Follow-up in one week",
    ]


def test_recommendations_missing_is_empty():
    assert extract_recommendations("Nothing to recommend") == []
    assert extract_recommendations("") == []


def test_split_sections():
    text = "## Findings\nClear lungs\n1. First item\n2. Second item"
    assert split_sections(text) == ["Findings\nClear lungs", "First item", "Second item"]


def test_parse_diagnosis_response_on_empty_text():
    structured = parse_diagnosis_response("")
    assert structured.full_text == ""
    assert structured.sections == []
    assert structured.primary_diagnosis == ""
    assert structured.confidence_level == ""
    assert structured.recommendations == []
