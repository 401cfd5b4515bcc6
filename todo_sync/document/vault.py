"""
Host document interface and a vault backed by a folder of markdown files.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import DocumentError
from ..utils.date import timestamp_from_epoch
from ..utils.io import atomic_write


def split_lines(text: str) -> List[str]:
    return text.split('\n')


def join_lines(lines: List[str]) -> str:
    return '\n'.join(lines)


class DocumentHost(ABC):
    """Where task lines live.

    Documents are identified by an opaque string id. Line numbers are
    zero-based throughout.
    """

    @abstractmethod
    async def list_documents(self) -> List[str]:
        """Ids of every document that may contain tasks."""

    @abstractmethod
    async def read(self, doc_id: str) -> str:
        """Whole document text."""

    @abstractmethod
    async def write(self, doc_id: str, text: str) -> None:
        """Replace the whole document text."""

    @abstractmethod
    async def modified_at(self, doc_id: str) -> datetime:
        """Host-reported modification time of the whole document."""

    async def replace_range(self, doc_id: str, start_line: int, end_line: int, text: str) -> None:
        """Replace lines ``[start_line, end_line)`` with ``text``.

        An empty range inserts ``text`` before ``start_line``.
        """
        lines = split_lines(await self.read(doc_id))
        if start_line < 0 or start_line > len(lines) or end_line < start_line:
            raise DocumentError(f"Line range {start_line}-{end_line} is outside {doc_id}")
        lines[start_line:end_line] = split_lines(text)
        await self.write(doc_id, join_lines(lines))


class FolderVault(DocumentHost):
    """Markdown files under a root directory, ids are relative posix paths."""

    SKIP_DIRS = {'.obsidian', '.trash', '.git', 'node_modules'}

    def __init__(self, root: str, logger: Optional[logging.Logger] = None):
        self.root = Path(os.path.expanduser(root))
        self.logger = logger or logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return self.root.name

    def _path(self, doc_id: str) -> Path:
        path = (self.root / doc_id).resolve()
        if self.root.resolve() not in path.parents:
            raise DocumentError(f"Document {doc_id} is outside the vault")
        return path

    def _iter_markdown_files(self) -> List[str]:
        documents = []
        for root, dirs, files in os.walk(self.root):
            dirs[:] = sorted(d for d in dirs if d not in self.SKIP_DIRS and not d.startswith('.'))
            for name in sorted(files):
                if name.endswith('.md'):
                    full = Path(root) / name
                    documents.append(full.relative_to(self.root).as_posix())
        return documents

    async def list_documents(self) -> List[str]:
        return await asyncio.to_thread(self._iter_markdown_files)

    def _read_text(self, doc_id: str) -> str:
        try:
            with open(self._path(doc_id), 'r', encoding='utf-8') as handle:
                return handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise DocumentError(f"Could not read {doc_id}: {exc}") from exc

    async def read(self, doc_id: str) -> str:
        return await asyncio.to_thread(self._read_text, doc_id)

    async def write(self, doc_id: str, text: str) -> None:
        path = self._path(doc_id)
        written = await asyncio.to_thread(atomic_write, str(path), text)
        if not written:
            raise DocumentError(f"Could not write {doc_id}")
        self.logger.debug("Wrote %s", doc_id)

    async def modified_at(self, doc_id: str) -> datetime:
        try:
            stat = await asyncio.to_thread(os.stat, self._path(doc_id))
        except OSError as exc:
            raise DocumentError(f"Could not stat {doc_id}: {exc}") from exc
        return timestamp_from_epoch(stat.st_mtime)
