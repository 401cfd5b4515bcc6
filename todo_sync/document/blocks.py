"""
Grouping of a task line with its indented children.

A task line followed by indented sub-lines forms one block: indented
checklist lines become checklist items, any other indented text joins the
body. Grouping is purely textual, so a line indented no deeper than the
task line ends the block just like a blank line does.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..core.models import ChecklistItem


CHECKLIST_RE = re.compile(r'^\s+[-*+] \[(.)\]\s?(.*)$')


class BlockState(Enum):
    IN_BODY = "in_body"
    IN_CHECKLIST = "in_checklist"
    DONE = "done"


@dataclass
class TaskBlock:
    """A task line plus the children detected beneath it.

    ``end`` is exclusive, so ``lines[start:end]`` is the whole block.
    """

    start: int
    end: int
    task_line: str
    body_lines: List[str] = field(default_factory=list)
    checklist_items: List[ChecklistItem] = field(default_factory=list)

    @property
    def body(self) -> str:
        return '\n'.join(self.body_lines)


def ends_block(line: str) -> bool:
    """A blank line always closes the block."""
    return not line.strip()


def indent_width(line: str) -> int:
    return len(line) - len(line.lstrip())


def next_state(line: str, parent_indent: int = 0) -> BlockState:
    """Children must be indented deeper than the task line that owns them."""
    if ends_block(line) or indent_width(line) <= parent_indent:
        return BlockState.DONE
    if CHECKLIST_RE.match(line):
        return BlockState.IN_CHECKLIST
    return BlockState.IN_BODY


def scan_block(lines: Sequence[str], start: int) -> Optional[TaskBlock]:
    """
    Collect the block that begins at ``lines[start]``.

    Args:
        lines: Document lines without trailing newlines
        start: Zero-based index of the task line

    Returns:
        TaskBlock, or None when ``start`` is out of range
    """
    if start < 0 or start >= len(lines):
        return None

    block = TaskBlock(start=start, end=start + 1, task_line=lines[start])
    parent_indent = indent_width(lines[start])
    index = start + 1
    while index < len(lines):
        line = lines[index]
        state = next_state(line, parent_indent)
        if state is BlockState.DONE:
            break
        if state is BlockState.IN_CHECKLIST:
            match = CHECKLIST_RE.match(line)
            block.checklist_items.append(
                ChecklistItem(text=match.group(2).strip(), checked=match.group(1).lower() == 'x')
            )
        else:
            block.body_lines.append(line.strip())
        index += 1

    block.end = index
    return block
