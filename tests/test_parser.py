#!/usr/bin/env python3
"""
Tests for task line parsing and formatting.
"""

from datetime import date, datetime, timezone

import pytest

from todo_sync.core.models import (
    ChecklistItem,
    DisplayOptions,
    Importance,
    TaskRecord,
    TaskStatus,
    records_equal,
)
from todo_sync.document.parser import find_anchor, format_task, line_indent, parse_task_line


class TestParseTaskLine:
    """Test parsing document lines into task records."""

    def test_plain_unchecked_line(self):
        record = parse_task_line("- [ ] Buy milk")

        assert record.title == "Buy milk"
        assert record.status == TaskStatus.NOT_STARTED
        assert record.importance == Importance.NORMAL
        assert record.anchor is None
        assert record.list_name is None
        assert record.due_date is None

    def test_full_line(self):
        lookup = {"MSTDabcd00001": "remote-1"}
        line = "- [x] Call Bob ⏫ +Work 📅 2025-03-01 ^MSTDabcd00001"

        record = parse_task_line(line, resolve=lookup.get)

        assert record.title == "Call Bob"
        assert record.status == TaskStatus.COMPLETED
        assert record.importance == Importance.HIGH
        assert record.list_name == "Work"
        assert record.due_date == date(2025, 3, 1)
        assert record.anchor == "MSTDabcd00001"
        assert record.remote_id == "remote-1"

    def test_unknown_anchor_resolves_to_none(self):
        record = parse_task_line("- [ ] Orphan ^MSTDzzzz00009", resolve={}.get)

        assert record.anchor == "MSTDzzzz00009"
        assert record.remote_id is None
        assert record.has_anchor
        assert not record.is_tracked

    def test_anchor_glued_to_title(self):
        record = parse_task_line("- [ ] Task^MSTDabcd00001", resolve={"MSTDabcd00001": "remote-1"}.get)

        assert record.anchor == "MSTDabcd00001"
        assert record.remote_id == "remote-1"
        assert record.title == "Task"

    def test_doubled_caret_is_not_an_anchor(self):
        record = parse_task_line("- [ ] escaped ^^MSTDabcd00001")

        assert record.anchor is None
        assert find_anchor("a ^^b") is None

    def test_last_anchor_wins(self):
        assert find_anchor("- [ ] a ^first b ^second") == "second"
        assert find_anchor("no anchor here") is None

    def test_in_progress_box_parses_as_not_started(self):
        record = parse_task_line("- [/] Halfway there")

        assert record.status == TaskStatus.NOT_STARTED
        assert record.title == "Halfway there"

    def test_quoted_list_name(self):
        record = parse_task_line('- [ ] Plan trip +"Holiday Plans"')

        assert record.list_name == "Holiday Plans"
        assert record.title == "Plan trip"

    def test_single_quoted_list_name(self):
        record = parse_task_line("- [ ] Plan trip +'Holiday Plans'")

        assert record.list_name == "Holiday Plans"

    def test_created_date_and_wikilink_due_date(self):
        record = parse_task_line("- [ ] Pay rent 📅 [[2025-04-01]] 🔎2025-03-20")

        assert record.title == "Pay rent"
        assert record.due_date == date(2025, 4, 1)
        assert record.created_date == datetime(2025, 3, 20, tzinfo=timezone.utc)

    def test_low_importance(self):
        record = parse_task_line("- [ ] Someday 🔽")

        assert record.importance == Importance.LOW
        assert record.title == "Someday"

    def test_high_beats_low(self):
        record = parse_task_line("- [ ] Confused 🔽 ⏫")

        assert record.importance == Importance.HIGH
        assert record.title == "Confused"

    def test_normal_glyph_is_stripped(self):
        record = parse_task_line("- [ ] Regular 🔼")

        assert record.importance == Importance.NORMAL
        assert record.title == "Regular"

    def test_blockquote_and_emphasis_are_stripped(self):
        record = parse_task_line("> - [ ] **Bold** idea")

        assert record.title == "Bold idea"

    def test_heading_decoration_is_stripped(self):
        record = parse_task_line("## [ ] Heading task")

        assert record.title == "Heading task"

    def test_indented_line(self):
        line = "    - [ ] Nested"

        assert parse_task_line(line).title == "Nested"
        assert line_indent(line) == "    "

    def test_title_strip_pattern(self):
        options = DisplayOptions(title_strip_pattern=r"#\w+")

        record = parse_task_line("- [ ] Tagged #errand task", options)

        assert record.title == "Tagged task"

    def test_invalid_title_strip_pattern_is_ignored(self, caplog):
        options = DisplayOptions(title_strip_pattern="(")

        record = parse_task_line("- [ ] Still fine", options)

        assert record.title == "Still fine"
        assert "invalid title strip pattern" in caplog.text

    def test_custom_symbols(self):
        options = DisplayOptions(status_completed="X", list_indicator="@")

        record = parse_task_line("- [X] Done @Home", options)

        assert record.status == TaskStatus.COMPLETED
        assert record.list_name == "Home"
        assert record.title == "Done"

    def test_garbage_never_raises(self):
        record = parse_task_line("[[[ ^ 📅 🔎 +\"")

        assert isinstance(record, TaskRecord)


class TestFormatTask:
    """Test rendering task records back into document text."""

    def test_minimal(self):
        assert format_task(TaskRecord(title="Buy milk")) == "- [ ] Buy milk"

    def test_full(self):
        record = TaskRecord(
            title="Call Bob",
            status=TaskStatus.COMPLETED,
            importance=Importance.HIGH,
            list_name="Work",
            due_date=date(2025, 3, 1),
            created_date=datetime(2025, 2, 1, 12, 30, tzinfo=timezone.utc),
            anchor="MSTDabcd00001",
        )

        assert format_task(record) == "- [x] Call Bob ⏫ +Work 📅2025-03-01 🔎2025-02-01 ^MSTDabcd00001"

    def test_list_name_with_spaces_is_quoted(self):
        record = TaskRecord(title="Plan", list_name="Holiday Plans")

        assert format_task(record) == '- [ ] Plan +"Holiday Plans"'
        single = DisplayOptions(list_indicator_use_single_quotes=True)
        assert format_task(record, single) == "- [ ] Plan +'Holiday Plans'"

    def test_in_progress_symbol(self):
        record = TaskRecord(title="Working", status=TaskStatus.IN_PROGRESS)

        assert format_task(record) == "- [/] Working"

    def test_custom_template(self):
        options = DisplayOptions(replacement_format="* {{TASK}}[{{STATUS_SYMBOL}}]")

        assert format_task(TaskRecord(title="Odd"), options) == "* Odd [ ]"

    def test_multi_line_block(self):
        record = TaskRecord(
            title="Pack",
            anchor="A1",
            body="Bring passport\n\nCheck visa",
            checklist_items=[ChecklistItem("Socks", True), ChecklistItem("Charger")],
        )

        assert format_task(record, single_line=False) == (
            "- [ ] Pack ^A1\n"
            "  Bring passport\n"
            "  Check visa\n"
            "  - [x] Socks\n"
            "  - [ ] Charger"
        )

    @pytest.mark.parametrize("line", [
        "- [ ] Buy milk",
        "- [x] Call Bob ⏫ +Work 📅2025-03-01 ^MSTDabcd00001",
        '- [ ] Plan trip 🔽 +"Holiday Plans" 📅2025-07-01 🔎2025-06-01',
    ])
    def test_formatted_lines_parse_back_to_equal_records(self, line):
        record = parse_task_line(line)

        assert format_task(record) == line
        assert records_equal(parse_task_line(format_task(record)), record)


class TestRecordsEqual:
    """Test the equality used to skip no-op writes."""

    def test_presentation_fields_are_ignored(self):
        a = TaskRecord(title="Same", list_name="One", anchor="A", body="x")
        b = TaskRecord(title="Same", list_name="Two", created_date=datetime(2025, 1, 1, tzinfo=timezone.utc))

        assert records_equal(a, b)

    @pytest.mark.parametrize("changes", [
        {"title": "Other"},
        {"status": TaskStatus.COMPLETED},
        {"importance": Importance.LOW},
        {"due_date": date(2025, 1, 2)},
    ])
    def test_synced_fields_are_compared(self, changes):
        base = TaskRecord(title="Same", due_date=date(2025, 1, 1))
        other = TaskRecord(**{"title": "Same", "due_date": date(2025, 1, 1), **changes})

        assert not records_equal(base, other)
