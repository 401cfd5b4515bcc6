"""Sync command - reconcile every tracked task in the vault."""

import asyncio
import logging

from ..core.exceptions import TodoSyncError
from .context import CommandContext, format_changes


class SyncCommand:
    """Command for whole-vault reconciliation."""

    def __init__(self, context: CommandContext, verbose: bool = False):
        self.context = context
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)
        if verbose:
            self.logger.setLevel(logging.DEBUG)

    def run(self) -> bool:
        """Run the sync command."""
        try:
            reconciler = self.context.reconciler()
            print(f"\n🔄 Syncing vault: {reconciler.host.name}")
            changes = asyncio.run(reconciler.sync_vault())
        except TodoSyncError as e:
            print(f"Sync failed: {e}")
            self.logger.debug("Sync failed", exc_info=True)
            return False

        print(f"✅ {format_changes(changes)}")
        return changes["failed"] == 0
