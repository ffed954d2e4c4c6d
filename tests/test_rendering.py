"""Tests for terminal rendering of search hits and saved plans."""

from pathlib import Path

import pytest
from rich.console import Console

from saber_code.plans import Plan, Step
from saber_code.rendering import render_plan_list, render_search


@pytest.fixture
def console():
    return Console(record=True, width=120, color_system=None)


def test_search_paths_with_brackets_are_literal(console):
    render_search(console, {
        "pattern": "[a-z]+",
        "total": 1,
        "matches": [{"path": "docs/[draft]/notes.md", "line_number": 3,
                     "line": "see [bold]", "match": "see"}],
    })
    text = console.export_text()
    assert "docs/[draft]/notes.md:3" in text
    assert "see [bold]" in text


def test_search_without_matches_shows_pattern(console):
    render_search(console, {"pattern": "[unclosed", "total": 0, "matches": []})
    assert "No matches for: [unclosed" in console.export_text()


def test_plan_list_shows_details_latest_first(console):
    older = Plan(goal="Read the readme", steps=[Step("read", {"path": "README.md"})],
                 created_at="2024-03-05T14:30:00+00:00")
    newer = Plan(goal="Tidy", steps=[Step("list"), Step("glob")],
                 created_at="2024-03-06T09:00:00+00:00")
    render_plan_list(console, [
        (Path("read-the-readme-20240305-143000.json"), older, None),
        (Path("tidy-20240306-090000.json"), newer, None),
    ])
    lines = [line.strip() for line in console.export_text().splitlines() if line.strip()]
    assert lines[0] == "tidy-20240306-090000.json (latest)"
    assert lines[1] == "Tidy · 2 step(s) · created 2024-03-06 09:00:00"
    assert lines[3] == "Read the readme · 1 step(s) · created 2024-03-05 14:30:00"


def test_plan_list_flags_unreadable_file(console):
    render_plan_list(console, [
        (Path("broken-20240101-000000.json"), None, "Invalid plan file: Expecting value"),
    ])
    text = console.export_text()
    assert "broken-20240101-000000.json" in text
    assert "✗ Invalid plan file: Expecting value" in text


def test_plan_list_empty(console):
    render_plan_list(console, [])
    assert "No saved plans." in console.export_text()
