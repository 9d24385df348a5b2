"""Persisted source -> target conversion ledger."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from obsidian_docusaurus.core.models import LedgerEntry, StateError

log = logging.getLogger(__name__)


def write_json_atomic(path: Path, data: Any) -> None:
    """Write ``data`` as pretty-printed JSON, replacing ``path`` atomically."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json_list(path: Path) -> List[Any]:
    """Read a JSON array; a missing file reads as an empty list.

    Raises:
        StateError: If the file exists but is not a readable JSON array
    """
    path = Path(path)
    if not path.exists():
        return []
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise StateError(f"Failed to load {path}: {e}") from e
    if not isinstance(data, list):
        raise StateError(f"Expected a JSON array in {path}")
    return data


class ConversionLedger:
    """The record of which target was produced from which source.

    The ledger is the only bridge between a deleted source and the output
    it must remove. It holds at most one entry per source and per target.
    """

    def __init__(self, path: Path, entries: Iterable[LedgerEntry] = ()):
        self.path = Path(path)
        self._entries: List[LedgerEntry] = list(entries)

    @property
    def entries(self) -> Tuple[LedgerEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> "ConversionLedger":
        try:
            self._entries = [LedgerEntry.from_dict(item) for item in read_json_list(self.path)]
        except (KeyError, TypeError) as e:
            raise StateError(f"Malformed ledger entry in {self.path}: {e}") from e
        log.debug("Loaded %d ledger entries from %s", len(self._entries), self.path)
        return self

    def save(self) -> None:
        write_json_atomic(self.path, [e.to_dict() for e in self._entries])
        log.debug("Saved %d ledger entries to %s", len(self._entries), self.path)

    def find_by_target(self, target_path: str) -> Optional[LedgerEntry]:
        for entry in self._entries:
            if entry.target_path == target_path:
                return entry
        return None

    def find_by_source(self, source_path: str) -> Optional[LedgerEntry]:
        for entry in self._entries:
            if entry.source_path == source_path:
                return entry
        return None

    def record(self, source_path: str, target_path: str) -> LedgerEntry:
        """Add an entry, replacing any entry for the same source or target."""
        entry = LedgerEntry(source_path=source_path, target_path=target_path)
        self._entries = [
            e for e in self._entries
            if e.source_path != source_path and e.target_path != target_path
        ] + [entry]
        return entry

    def discard(self, entry: LedgerEntry) -> None:
        self._entries = [e for e in self._entries if e != entry]

    def replace_all(self, entries: Iterable[LedgerEntry]) -> None:
        self._entries = list(entries)
