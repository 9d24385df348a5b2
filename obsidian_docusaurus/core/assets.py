"""Asset registry tracking attachment size variants and their users."""

import logging
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from obsidian_docusaurus.core.ledger import read_json_list, write_json_atomic
from obsidian_docusaurus.core.models import AssetRecord, MissingAssetSource, ReleasedAsset, SizeVariant, StateError

log = logging.getLogger(__name__)

STANDARD_SIZE = "standard"


def canonical_asset_name(file_name: str) -> Tuple[str, str]:
    """Split an attachment file name into canonical name and extension.

    Spaces and encoded spaces become underscores. ``Drawing.excalidraw.md``
    is an excalidraw drawing, not a markdown file.

    Returns:
        Tuple of (canonical name, extension without dot)
    """
    name = file_name
    if name.lower().endswith('.excalidraw.md'):
        name = name[:-len('.md')]
    stem, dot, ext = name.rpartition('.')
    if not dot:
        stem, ext = name, ''
    stem = stem.replace(' ', '_').replace('%20', '_')
    return stem, ext.lower()


class AssetRegistry:
    """Persisted registry of attachments, their size variants and users.

    All mutations hold a lock: conversion tasks referencing the same
    attachment may register concurrently.
    """

    def __init__(self, path: Path, records: Iterable[AssetRecord] = ()):
        self.path = Path(path)
        self._records: List[AssetRecord] = list(records)
        self._lock = threading.Lock()

    @property
    def records(self) -> Tuple[AssetRecord, ...]:
        return tuple(self._records)

    def load(self) -> "AssetRegistry":
        try:
            records = [AssetRecord.from_dict(item) for item in read_json_list(self.path)]
        except (KeyError, TypeError) as e:
            raise StateError(f"Malformed asset entry in {self.path}: {e}") from e
        with self._lock:
            self._records = records
        return self

    def save(self) -> None:
        with self._lock:
            data = [r.to_dict() for r in self._records]
        write_json_atomic(self.path, data)

    def get(self, file_name: str) -> Optional[AssetRecord]:
        for record in self._records:
            if record.file_name == file_name:
                return record
        return None

    def find_variant(self, file_name: str, size: str) -> Optional[SizeVariant]:
        record = self.get(file_name)
        return record.get_size(size) if record else None

    def record_usage(
        self,
        file_name: str,
        original_file_name: str,
        file_extension: str,
        source_path: Optional[str],
        size: str,
        document: str,
        outputs: Iterable[str] = (),
    ) -> SizeVariant:
        """Register that ``document`` uses ``file_name`` at ``size``.

        Re-registering the same document/size pair is a no-op apart from
        merging new output names.

        Args:
            file_name: Canonical asset name
            original_file_name: File name as found in the vault
            file_extension: Extension without dot
            source_path: Vault-relative path, None if the attachment is unknown
            size: Size tag (``standard``, ``300`` or ``300x200``)
            document: Identity of the referencing document
            outputs: Output file names produced for this size

        Returns:
            The SizeVariant now holding the reference

        Raises:
            MissingAssetSource: If ``source_path`` is None
        """
        if source_path is None:
            raise MissingAssetSource(original_file_name)

        size = size or STANDARD_SIZE
        with self._lock:
            record = self.get(file_name)
            if record is None:
                record = AssetRecord(
                    file_name=file_name,
                    original_file_name=original_file_name,
                    file_extension=file_extension,
                    source_path=source_path,
                )
                self._records.append(record)
            else:
                record.source_path = source_path

            variant = record.get_size(size)
            if variant is None:
                variant = SizeVariant(size=size)
                record.sizes.append(variant)

            if document not in variant.documents:
                variant.documents.append(document)
            for name in outputs:
                if name not in variant.outputs:
                    variant.outputs.append(name)

        log.debug("Registered asset %s (%s) for %s", file_name, size, document)
        return variant

    def release_reference(self, file_name: str, size: str, document: str) -> Optional[ReleasedAsset]:
        """Remove one document's reference to an asset size.

        Returns:
            ReleasedAsset if the variant lost its last reference, else None
        """
        with self._lock:
            return self._release(file_name, size, document)

    def release_document(self, document: str) -> List[ReleasedAsset]:
        """Release every reference held by ``document``."""
        released = []
        with self._lock:
            pairs = [
                (record.file_name, variant.size)
                for record in self._records
                for variant in record.sizes
                if document in variant.documents
            ]
            for file_name, size in pairs:
                item = self._release(file_name, size, document)
                if item is not None:
                    released.append(item)
        return released

    def _release(self, file_name: str, size: str, document: str) -> Optional[ReleasedAsset]:
        record = self.get(file_name)
        variant = record.get_size(size) if record else None
        if variant is None or document not in variant.documents:
            return None

        variant.documents = [d for d in variant.documents if d != document]
        if variant.documents:
            return None

        record.sizes = [s for s in record.sizes if s.size != size]
        dropped = not record.sizes
        if dropped:
            self._records = [r for r in self._records if r.file_name != file_name]

        log.debug("Released asset %s (%s), record dropped: %s", file_name, size, dropped)
        return ReleasedAsset(
            file_name=file_name,
            file_extension=record.file_extension,
            size=size,
            outputs=tuple(variant.outputs),
            source_path=record.source_path,
            record_dropped=dropped,
        )
