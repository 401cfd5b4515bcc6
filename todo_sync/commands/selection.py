"""Selection commands - push, pull or reconcile chosen lines of one document."""

import asyncio
import logging
from typing import List

from ..core.exceptions import TodoSyncError
from ..sync.reconciler import Mode
from .context import CommandContext, format_changes


def parse_line_range(value: str) -> List[int]:
    """
    Parse ``N`` or ``N-M`` (zero-based, inclusive) into line numbers.

    Raises:
        ValueError: if the range is malformed
    """
    start, sep, end = value.partition("-")
    first = int(start)
    last = int(end) if sep else first
    if first < 0 or last < first:
        raise ValueError(f"invalid line range: {value}")
    return list(range(first, last + 1))


class SelectionCommand:
    """Reconcile a range of lines."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    def run(self, doc_id: str, lines: List[int], mode: Mode = Mode.SYNC) -> bool:
        try:
            reconciler = self.context.reconciler()
            changes = asyncio.run(reconciler.reconcile_selection(doc_id, lines, mode))
        except TodoSyncError as e:
            print(f"Could not {mode.value} {doc_id}: {e}")
            return False

        print(f"{doc_id}: {format_changes(changes)}")
        return changes["failed"] == 0


class BlockCommand:
    """Push or pull one task together with its indented body and checklist."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    def run(self, doc_id: str, line: int, push: bool = True) -> bool:
        try:
            reconciler = self.context.reconciler()
            if push:
                changes = asyncio.run(reconciler.push_block(doc_id, line))
            else:
                changes = asyncio.run(reconciler.pull_block(doc_id, line))
        except TodoSyncError as e:
            print(f"Could not {'push' if push else 'pull'} block at {doc_id}:{line}: {e}")
            return False

        print(f"{doc_id}:{line}: {format_changes(changes)}")
        return changes["failed"] == 0
