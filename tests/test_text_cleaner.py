import pytest

from config import CleaningOptions
from harvester.extractors import TextCleaner, enforce_length


@pytest.fixture
def cleaner():
    return TextCleaner(CleaningOptions())


def test_whitespace_and_line_breaks(cleaner):
    raw = "  Hello\t\tworld  \r\n\r\n\r\n\r\nNext   line  "

    assert cleaner.clean(raw) == "Hello world\n\nNext line"


def test_blank_lines_with_spaces_collapse(cleaner):
    assert cleaner.clean("a\n   \n \nb") == "a\n\nb"


@pytest.mark.parametrize("raw", [
    "  Hello\t\tworld  \r\n\r\n\r\n\r\nNext   line  ",
    "Title\r\rAbstract  text\t\n\n\n\n  Body \r\n",
    "\n\n\n   only whitespace lines   \n\n\n",
    "x = a + b; % 50 <> [1, 2]",
])
def test_clean_is_idempotent(cleaner, raw):
    once = cleaner.clean(raw)

    assert cleaner.clean(once) == once


def test_special_characters_kept_by_default(cleaner):
    assert cleaner.clean("E = mc^2 (α-helix) © 2024") == "E = mc^2 (α-helix) © 2024"


def test_special_character_removal():
    cleaner = TextCleaner(CleaningOptions(remove_special_chars=True))

    assert cleaner.clean("α-helix © 2024 ★ test") == "α-helix 2024 test"


def test_empty_input(cleaner):
    assert cleaner.clean("") == ""
    assert cleaner.clean("   \n\t ") == ""


def test_no_truncation_under_limit():
    assert enforce_length("short text", 100) == ("short text", False)


def test_truncates_at_late_space():
    text = "a" * 95 + " " + "b" * 54

    result, truncated = enforce_length(text, 100)

    assert truncated is True
    assert result == "a" * 95


def test_hard_cut_without_space():
    result, truncated = enforce_length("a" * 150, 100)

    assert truncated is True
    assert len(result) == 100


def test_hard_cut_when_space_is_too_early():
    text = "a" * 50 + " " + "b" * 99

    result, truncated = enforce_length(text, 100)

    assert truncated is True
    assert result == text[:100]
