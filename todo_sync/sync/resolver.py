"""Direction resolution for tracked tasks whose two copies disagree."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
import logging

from ..utils.date import parse_timestamp


class Direction(Enum):
    PUSH = "push"    # local copy wins, write to the remote service
    PULL = "pull"    # remote copy wins, rewrite the document line


class ConflictResolver:
    """Last-writer-wins between a remote task and the document holding it.

    The local side only has the document's modification time, so any edit
    elsewhere in the same document makes every task in it look newer.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def resolve(self, remote_modified: Optional[Union[str, datetime]],
                local_modified: Optional[Union[str, datetime]]) -> Direction:
        """Pull only when the remote copy is strictly newer; ties push."""
        remote_time = parse_timestamp(remote_modified)
        local_time = parse_timestamp(local_modified)

        if remote_time and local_time:
            direction = Direction.PULL if remote_time > local_time else Direction.PUSH
        elif remote_time:
            direction = Direction.PULL
        else:
            direction = Direction.PUSH

        self.logger.debug("remote=%s local=%s -> %s", remote_time, local_time, direction.value)
        return direction
