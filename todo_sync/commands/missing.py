"""Commands that bring remote-only tasks into a document."""

import asyncio
import logging
from typing import Optional

from ..core.exceptions import TodoSyncError
from .context import CommandContext


class AddMissingCommand:
    """Write a line for every open remote task that has no anchor yet."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    def run(self, doc_id: str, line: Optional[int] = None) -> bool:
        try:
            reconciler = self.context.reconciler()
            added = asyncio.run(reconciler.add_missing_tasks(doc_id, insert_at=line))
        except TodoSyncError as e:
            print(f"Could not add missing tasks: {e}")
            return False

        if not added:
            print("No missing tasks.")
        else:
            print(f"Added {len(added)} task(s) to {doc_id}")
        return True


class SummaryCommand:
    """Print or insert each remote list's open tasks and those finished today."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    def run(self, doc_id: Optional[str] = None, line: Optional[int] = None) -> bool:
        try:
            reconciler = self.context.reconciler()
            text = asyncio.run(reconciler.summary(doc_id, insert_at=line))
        except TodoSyncError as e:
            print(f"Could not build the summary: {e}")
            return False

        if text and doc_id is None:
            print(text)
        elif text:
            print(f"Inserted summary into {doc_id}")
        return True
