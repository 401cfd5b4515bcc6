"""Identity registry mapping local anchors to remote task ids."""

import logging
import random
from typing import Dict, Iterator, List, Optional

from ..core.config import SettingsStore


ANCHOR_PREFIX = "MSTD"
SUFFIX_ALPHABET = "0123456789abcdefghij"
SUFFIX_LENGTH = 4
COUNTER_WIDTH = 5


class IdentityRegistry:
    """Persistent ``anchor -> remote id`` lookup.

    Lives inside the settings blob (``taskIdLookup`` / ``taskIdIndex``).
    Anchors compare case-insensitively; entries are only ever added by
    ``generate`` and removed by ``forget``.
    """

    def __init__(self, store: SettingsStore, logger: Optional[logging.Logger] = None,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self._rng = rng or random.Random()
        self._folded: Dict[str, str] = {}
        self._reindex()

    @property
    def _lookup(self) -> Dict[str, str]:
        return self.store.settings.task_id_lookup

    def _reindex(self) -> None:
        self._folded = {anchor.lower(): anchor for anchor in self._lookup}

    def __len__(self) -> int:
        return len(self._lookup)

    def __contains__(self, anchor: str) -> bool:
        return anchor.lower() in self._folded

    def anchors(self) -> List[str]:
        return list(self._lookup)

    def items(self) -> Iterator:
        return iter(list(self._lookup.items()))

    def _new_anchor(self, counter: int) -> str:
        suffix = "".join(self._rng.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
        return f"{ANCHOR_PREFIX}{suffix}{counter:0{COUNTER_WIDTH}d}"

    def generate(self, remote_id: str) -> str:
        """Mint a new anchor for ``remote_id`` and persist it before returning.

        Raises:
            ConfigurationError: if the settings could not be saved
        """
        settings = self.store.settings
        while True:
            settings.task_id_index += 1
            anchor = self._new_anchor(settings.task_id_index)
            if anchor.lower() not in self._folded:
                break
            self.logger.warning("Anchor %s already registered, drawing another", anchor)

        self._lookup[anchor] = remote_id
        self._folded[anchor.lower()] = anchor
        self.store.save()
        self.logger.debug("Registered anchor %s for remote task %s", anchor, remote_id)
        return anchor

    def resolve(self, anchor: Optional[str]) -> Optional[str]:
        if not anchor:
            return None
        key = self._folded.get(anchor.lower())
        if key is None:
            return None
        return self._lookup.get(key)

    def has_remote_id(self, remote_id: str) -> bool:
        return self.find_anchor(remote_id) is not None

    def find_anchor(self, remote_id: str) -> Optional[str]:
        for anchor, known_id in self._lookup.items():
            if known_id == remote_id:
                return anchor
        return None

    def forget(self, anchor: str, save: bool = True) -> bool:
        key = self._folded.pop(anchor.lower(), None)
        if key is None:
            return False
        self._lookup.pop(key, None)
        if save:
            self.store.save()
        self.logger.debug("Forgot anchor %s", key)
        return True
