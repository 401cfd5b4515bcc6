"""
Document layer - task line syntax, block grouping and the host interface.
"""

from .parser import parse_task_line, format_task, find_anchor, line_indent
from .blocks import TaskBlock, BlockState, scan_block
from .vault import DocumentHost, FolderVault, split_lines, join_lines

__all__ = [
    'parse_task_line',
    'format_task',
    'find_anchor',
    'line_indent',
    'TaskBlock',
    'BlockState',
    'scan_block',
    'DocumentHost',
    'FolderVault',
    'split_lines',
    'join_lines'
]
