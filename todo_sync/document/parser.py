"""
Markdown task line parsing and formatting.

Parsing consumes tokens from a working title in a fixed order (anchor,
status box, list tag, created/due dates, importance glyph, decoration) so
that later steps see a cleaner string. Neither direction ever raises.
"""

import logging
import re
from datetime import datetime, time, timezone
from typing import Callable, Optional

from ..core.models import DisplayOptions, Importance, TaskRecord, TaskStatus
from ..utils.date import format_date, parse_date


logger = logging.getLogger(__name__)

# Regular expressions for parsing tasks
ANCHOR_RE = re.compile(r'(?<!\^)\^([A-Za-z0-9]+)(?!.*\^)')
STATUS_RE = re.compile(r'\[(.)\]')
INDENT_RE = re.compile(r'^(\s*)')
BLOCKQUOTE_RE = re.compile(r'^(?:>\s?)+')
HEADING_RE = re.compile(r'^#+\s+')
BULLET_RE = re.compile(r'^[-*+]\s+')
SPACES_RE = re.compile(r'\s{2,}')

_DATE = r'\d{4}-\d{2}-\d{2}'

PLACEHOLDER_STATUS = '{{STATUS_SYMBOL}}'
PLACEHOLDER_TASK = '{{TASK}}'
PLACEHOLDER_IMPORTANCE = '{{IMPORTANCE}}'
PLACEHOLDER_LIST = '{{TASK_LIST_NAME}}'
PLACEHOLDER_DUE = '{{DUE_DATE}}'
PLACEHOLDER_CREATED = '{{CREATED_DATE}}'


def _list_patterns(indicator: str):
    ind = re.escape(indicator)
    quoted = re.compile(r'(?<![^\s])' + ind + r'([\'"])([^\'"]*)\1')
    bare = re.compile(r'(?<![^\s])' + ind + r'([^\s\'"]+)')
    return quoted, bare


def _date_pattern(prefix: str):
    return re.compile(re.escape(prefix) + r' ?(?:\[\[(' + _DATE + r')\]\]|(' + _DATE + r'))')


def _strip(pattern, text: str) -> str:
    return pattern.sub('', text, count=1)


def find_anchor(line: str) -> Optional[str]:
    """Return the anchor token on a line, if any."""
    match = ANCHOR_RE.search(line)
    return match.group(1) if match else None


def line_indent(line: str) -> str:
    return INDENT_RE.match(line).group(1)


def parse_task_line(
    line: str,
    options: Optional[DisplayOptions] = None,
    resolve: Optional[Callable[[str], Optional[str]]] = None,
) -> TaskRecord:
    """
    Parse a document line into a TaskRecord.

    Args:
        line: Raw document line
        options: On-page syntax; defaults apply when omitted
        resolve: Maps an anchor to its remote id (usually IdentityRegistry.resolve)

    Returns:
        TaskRecord with every unmatched field left at its default
    """
    options = options or DisplayOptions()
    record = TaskRecord()
    title = line.strip()

    # Anchor
    anchor_match = ANCHOR_RE.search(title)
    if anchor_match:
        record.anchor = anchor_match.group(1)
        title = title[:anchor_match.start()] + title[anchor_match.end():]
        if resolve is not None:
            record.remote_id = resolve(record.anchor)

    # Status box
    status_match = STATUS_RE.search(title)
    if status_match:
        if status_match.group(1) == options.status_completed:
            record.status = TaskStatus.COMPLETED
        title = title[:status_match.start()] + title[status_match.end():]

    # List name tag, quoted form first
    if options.list_indicator:
        quoted_re, bare_re = _list_patterns(options.list_indicator)
        list_match = quoted_re.search(title)
        if list_match:
            record.list_name = list_match.group(2).strip() or None
        else:
            list_match = bare_re.search(title)
            if list_match:
                record.list_name = list_match.group(1)
        if list_match:
            title = title[:list_match.start()] + title[list_match.end():]

    # Created and due dates
    if options.task_created_prefix:
        created_re = _date_pattern(options.task_created_prefix)
        created_match = created_re.search(title)
        if created_match:
            created = parse_date(created_match.group(1) or created_match.group(2))
            if created:
                record.created_date = datetime.combine(created, time(), tzinfo=timezone.utc)
            title = _strip(created_re, title)

    if options.task_due_prefix:
        due_re = _date_pattern(options.task_due_prefix)
        due_match = due_re.search(title)
        if due_match:
            record.due_date = parse_date(due_match.group(1) or due_match.group(2))
            title = _strip(due_re, title)

    # Importance; high wins when both glyphs are present
    if options.importance_low and options.importance_low in title:
        record.importance = Importance.LOW
    if options.importance_high and options.importance_high in title:
        record.importance = Importance.HIGH
    for glyph in (options.importance_low, options.importance_normal, options.importance_high):
        if glyph:
            title = title.replace(glyph, '')

    # Leftover list decoration
    title = BLOCKQUOTE_RE.sub('', title.strip())
    title = HEADING_RE.sub('', title)
    title = BULLET_RE.sub('', title)
    title = title.replace('*', '')

    if options.title_strip_pattern:
        try:
            title = re.sub(options.title_strip_pattern, '', title)
        except re.error as exc:
            logger.warning("Ignoring invalid title strip pattern %r: %s", options.title_strip_pattern, exc)

    record.title = SPACES_RE.sub(' ', title).strip()
    return record


def _format_list_name(name: str, options: DisplayOptions) -> str:
    if re.search(r'\s', name):
        quote = "'" if options.list_indicator_use_single_quotes else '"'
        name = f"{quote}{name}{quote}"
    return f"{options.list_indicator}{name}"


def format_task(record: TaskRecord, options: Optional[DisplayOptions] = None, single_line: bool = True) -> str:
    """
    Render a TaskRecord back into document text.

    Args:
        record: Task to render
        options: On-page syntax; defaults apply when omitted
        single_line: When False, body and checklist lines follow the task line

    Returns:
        The task line, or the task line plus indented children
    """
    options = options or DisplayOptions()

    importance = ''
    if record.importance != Importance.NORMAL:
        importance = options.importance_glyph(record.importance) + ' '

    list_tag = ''
    if record.list_name:
        list_tag = _format_list_name(record.list_name, options) + ' '

    due = ''
    if record.due_date:
        due = f"{options.task_due_prefix}{format_date(record.due_date)} "

    created = ''
    if record.created_date:
        created = f"{options.task_created_prefix}{format_date(record.created_date.date())} "

    output = (
        options.replacement_format
        .replace(PLACEHOLDER_STATUS, options.status_symbol(record.status))
        .replace(PLACEHOLDER_TASK, record.title + ' ')
        .replace(PLACEHOLDER_IMPORTANCE, importance)
        .replace(PLACEHOLDER_LIST, list_tag)
        .replace(PLACEHOLDER_DUE, due)
        .replace(PLACEHOLDER_CREATED, created)
    ).strip()

    if record.anchor:
        output = f"{output} ^{record.anchor}"

    if single_line:
        return output

    lines = [output]
    for body_line in record.body.splitlines():
        if body_line.strip():
            lines.append(f"  {body_line.strip()}")
    for item in record.checklist_items:
        mark = 'x' if item.checked else ' '
        lines.append(f"  - [{mark}] {item.text}")
    return '\n'.join(lines)
