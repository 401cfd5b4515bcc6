"""
Sync layer - identity registry, delta cache, direction resolution and the reconciler.
"""

from .registry import IdentityRegistry
from .delta_cache import DeltaCache, ListDelta, merge_tasks
from .resolver import ConflictResolver, Direction
from .reconciler import Reconciler, Mode

__all__ = [
    'IdentityRegistry',
    'DeltaCache',
    'ListDelta',
    'merge_tasks',
    'ConflictResolver',
    'Direction',
    'Reconciler',
    'Mode'
]
