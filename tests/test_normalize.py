"""NUL stripping and the tolerant numeric parser."""
import pytest

from classification.entities import ExpenseEntity, LineItem, TaskEntity, sanitize_entity
from classification.normalize import parse_number, sanitize_labels, sanitize_nullable, sanitize_text


def test_sanitize_text_strips_nul_and_is_idempotent():
    raw = "Invoice\u0000 #12\u0000\u0000"
    once = sanitize_text(raw)
    assert once == "Invoice #12"
    assert sanitize_text(once) == once
    assert "\u0000" not in once


def test_sanitize_nullable_and_labels():
    assert sanitize_nullable(None) is None
    assert sanitize_nullable("a\u0000b") == "ab"
    assert sanitize_labels(None) == []
    assert sanitize_labels(["x\u0000", "y"]) == ["x", "y"]


def test_sanitize_entity_cleans_nested_strings():
    task = TaskEntity(title="Fix\u0000 pump", labels=["ur\u0000gent"])
    expense = ExpenseEntity(description="Parts\u0000", line_items=[LineItem(description="Valve\u0000")])

    clean_task = sanitize_entity(task)
    clean_expense = sanitize_entity(expense)

    assert clean_task.title == "Fix pump"
    assert clean_task.labels == ["urgent"]
    assert clean_expense.description == "Parts"
    assert clean_expense.line_items[0].description == "Valve"


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, None),
        (12, 12.0),
        (3.5, 3.5),
        ("$540.00", 540.0),
        ("1,540.25 USD", 1540.25),
        ("-12.5", -12.5),
        ("abc", None),
        ("", None),
        ("1,234,567.00", 1234.0),
        (float("inf"), None),
    ],
)
def test_parse_number(value, expected):
    assert parse_number(value) == expected
