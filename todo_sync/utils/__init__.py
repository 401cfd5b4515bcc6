"""
Utility functions for todo-sync.
"""

from .io import safe_read_json, safe_write_json, atomic_write, remove_file
from .date import parse_date, format_date, parse_timestamp, timestamp_from_epoch, dates_equal

__all__ = [
    'safe_read_json', 'safe_write_json', 'atomic_write', 'remove_file',
    'parse_date', 'format_date', 'parse_timestamp', 'timestamp_from_epoch', 'dates_equal'
]
