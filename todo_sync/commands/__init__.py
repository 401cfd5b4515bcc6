"""
Command implementations for todo-sync.
"""

from .context import CommandContext, load_gateway
from .sync import SyncCommand
from .selection import SelectionCommand, BlockCommand, parse_line_range
from .missing import AddMissingCommand, SummaryCommand
from .maintenance import CleanupCommand, ResetCacheCommand, OpenCommand

__all__ = [
    'CommandContext',
    'load_gateway',
    'SyncCommand',
    'SelectionCommand',
    'BlockCommand',
    'parse_line_range',
    'AddMissingCommand',
    'SummaryCommand',
    'CleanupCommand',
    'ResetCacheCommand',
    'OpenCommand',
]
