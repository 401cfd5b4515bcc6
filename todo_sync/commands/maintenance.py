"""Maintenance commands - anchor cleanup, cache reset, task links."""

import asyncio
import logging

from ..core.exceptions import TodoSyncError
from ..document.parser import parse_task_line
from ..document.vault import split_lines
from ..remote.gateway import task_url
from .context import CommandContext


class CleanupCommand:
    """Forget anchors that no document mentions any more."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def run(self) -> bool:
        try:
            reconciler = self.context.reconciler(with_gateway=False)
            removed = asyncio.run(reconciler.cleanup())
        except TodoSyncError as e:
            print(f"Cleanup failed: {e}")
            return False

        print(f"Removed {len(removed)} unused anchor(s).")
        if self.verbose:
            for anchor in removed:
                print(f"  - {anchor}")
        return True


class ResetCacheCommand:
    """Delete the delta cache so the next run does a full sync."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose

    def run(self) -> bool:
        try:
            self.context.cache().reset()
        except TodoSyncError as e:
            print(f"Could not reset cache: {e}")
            return False
        print("Delta cache cleared; the next sync fetches everything.")
        return True


class OpenCommand:
    """Print the link that opens a tracked line's remote task."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose

    def run(self, doc_id: str, line: int) -> bool:
        try:
            text = asyncio.run(self.context.vault().read(doc_id))
        except TodoSyncError as e:
            print(f"Could not read {doc_id}: {e}")
            return False

        lines = split_lines(text)
        if not 0 <= line < len(lines):
            print(f"Line {line} is outside {doc_id}")
            return False

        registry = self.context.registry()
        record = parse_task_line(lines[line], self.context.store.settings.display, registry.resolve)
        if not record.remote_id:
            print("That line is not linked to a remote task.")
            return False

        print(task_url(record.remote_id, self.context.store.settings.open_using_app_protocol))
        return True
