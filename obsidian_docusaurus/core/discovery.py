"""Inventory discovery for vault and site trees."""

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional, Tuple

from obsidian_docusaurus.core.config import MirrorConfig
from obsidian_docusaurus.core.models import Category, ConfigurationError, DocumentRecord, Origin
from obsidian_docusaurus.transforms.links import FLATTEN_MARKER, normalize_target_segments

log = logging.getLogger(__name__)

LANGUAGE_SUFFIX_PATTERN = re.compile(r'__([a-z]{2})$', re.IGNORECASE)

DOCUMENT_EXTENSIONS = ('.md', '.yml')

SITE_CATEGORY_FOLDERS = ('docs', 'blog', 'i18n')


@dataclass(frozen=True)
class ScanEntry:
    """A stat result for one path below a scanned root."""
    path: Path
    is_dir: bool
    modified: float
    size: int


def scan_tree(root: Path, is_recognized: Callable[[str], bool]) -> List[ScanEntry]:
    """Walk ``root``, entering only recognized top-level folders.

    Args:
        root: Tree root
        is_recognized: Predicate on top-level folder names

    Returns:
        ScanEntry for every file and folder found, in walk order
    """
    root = Path(root)
    if not root.exists():
        return []

    entries = []
    for top in sorted(root.iterdir()):
        if not top.is_dir() or not is_recognized(top.name):
            continue
        for dirpath, dirnames, filenames in os.walk(top):
            dirnames.sort()
            current = Path(dirpath)
            try:
                stat = current.stat()
            except FileNotFoundError:
                log.debug("Skipping %s, removed during scan", current)
                continue
            entries.append(ScanEntry(current, True, stat.st_mtime, 0))
            for name in sorted(filenames):
                file_path = current / name
                try:
                    stat = file_path.stat()
                except FileNotFoundError:
                    log.debug("Skipping %s, removed during scan", file_path)
                    continue
                entries.append(ScanEntry(file_path, False, stat.st_mtime, stat.st_size))
    return entries


def parse_file_name(file_name: str, main_language: Optional[str]) -> Tuple[str, str, str]:
    """Split a file name into clean name, extension and language.

    Args:
        file_name: Base name such as ``Intro__de.md``
        main_language: Language of files without a suffix

    Returns:
        Tuple of (clean name, extension, language)

    Raises:
        ConfigurationError: If the file has no suffix and no main language is set
    """
    stem, ext = os.path.splitext(file_name)
    clean = stem
    language = None

    match = LANGUAGE_SUFFIX_PATTERN.search(stem)
    if match:
        clean = stem.split('__')[0]
        language = match.group(1).lower()

    if language is None:
        if not main_language:
            raise ConfigurationError("Main language not defined in the configuration")
        language = main_language

    return clean.strip(), ext, language


class Inventory:
    """Lookup index over the vault's documents and attachments."""

    def __init__(
        self,
        documents: List[DocumentRecord],
        attachments: List[DocumentRecord],
        main_language: str,
        conflicts: Optional[List[str]] = None,
    ):
        self.documents = documents
        self.attachments = attachments
        self.main_language = main_language
        # Sources skipped because another source already owns their target
        self.conflicts = conflicts or []
        self._by_source = {r.relative_path: r for r in documents}
        self._by_name: Dict[str, List[DocumentRecord]] = {}
        for record in documents:
            for key in {record.clean_name.lower(), Path(record.file_name).stem.lower()}:
                self._by_name.setdefault(key, []).append(record)
        self._attachments: Dict[str, DocumentRecord] = {}
        for record in attachments:
            self._attachments.setdefault(record.file_name, record)
            self._attachments.setdefault(record.file_name.lower(), record)

    def by_source(self, identity: str) -> Optional[DocumentRecord]:
        return self._by_source.get(identity)

    def resolve_document(self, name: str, language: Optional[str] = None) -> Optional[DocumentRecord]:
        """Find a document by clean name, case-insensitive.

        Prefers a document in ``language``, then one in the main language.
        """
        key = name[:-3] if name.lower().endswith('.md') else name
        candidates = self._by_name.get(key.strip().lower())
        if not candidates:
            return None
        for wanted in (language, self.main_language):
            for record in candidates:
                if record.language == wanted:
                    return record
        return candidates[0]

    def find_attachment(self, file_name: str) -> Optional[DocumentRecord]:
        return self._attachments.get(file_name) or self._attachments.get(file_name.lower())


class InventoryBuilder:
    """Builds document and attachment records from the vault and the site."""

    def __init__(self, config: MirrorConfig, scanner: Callable[..., List[ScanEntry]] = scan_tree):
        """Initialize InventoryBuilder.

        Args:
            config: Mirror configuration
            scanner: Directory walker; ``scan_tree`` unless a test supplies one
        """
        self.config = config
        self.scanner = scanner

    def build_sources(self) -> Inventory:
        """Scan the vault into documents and attachments.

        Returns:
            Inventory of all VAULT records with target paths computed
        """
        vault = self.config.vault_path
        if not vault.exists():
            raise FileNotFoundError(f"Vault directory not found: {vault}")

        documents = []
        attachments = []
        conflicts = []
        claimed: Dict[str, DocumentRecord] = {}
        for entry in self.scanner(vault, lambda name: self.config.classify_folder(name) is not None):
            if entry.is_dir:
                continue
            record = self._source_record(entry)
            if record is None:
                continue
            if record.category is Category.ASSETS:
                attachments.append(record)
                continue

            # Two sources must never share one output
            owner = claimed.setdefault(record.target_relative, record)
            if owner is not record:
                message = (
                    f"Skipping {record.relative_path}: {record.target_relative} "
                    f"is already produced from {owner.relative_path}"
                )
                log.warning(message)
                conflicts.append(message)
                continue
            documents.append(record)

        log.debug("Found %d documents and %d attachments in %s", len(documents), len(attachments), vault)
        return Inventory(documents, attachments, self.config.main_language, conflicts)

    def build_targets(self) -> List[DocumentRecord]:
        """Scan the site for previously produced documents."""
        site = self.config.site_path
        records = []
        for entry in self.scanner(site, self._is_site_folder):
            if entry.is_dir or entry.path.suffix not in DOCUMENT_EXTENSIONS:
                continue
            relative = PurePosixPath(entry.path.relative_to(site)).as_posix()
            main_folder = relative.split('/', 1)[0]
            records.append(DocumentRecord(
                path=entry.path,
                relative_path=relative,
                file_name=entry.path.name,
                clean_name=entry.path.stem,
                extension=entry.path.suffix,
                language=self.config.main_language,
                category=Category.BLOG if self.config.is_blog_folder(main_folder) else Category.DOCS,
                main_folder=main_folder,
                parent_folder=entry.path.parent.name,
                modified=entry.modified,
                size=entry.size,
                origin=Origin.GENERIC,
                target_path=entry.path,
                target_relative=relative,
            ))
        return records

    def _is_site_folder(self, name: str) -> bool:
        return name in SITE_CATEGORY_FOLDERS or name in (self.config.docs_folder, self.config.blog_folder) \
            or name.endswith(self.config.multi_blog_suffix)

    def _source_record(self, entry: ScanEntry) -> Optional[DocumentRecord]:
        vault = self.config.vault_path
        relative = PurePosixPath(entry.path.relative_to(vault)).as_posix()
        main_folder = relative.split('/', 1)[0]
        category = self.config.classify_folder(main_folder)
        if category is None:
            return None

        if category is not Category.ASSETS and entry.path.suffix not in DOCUMENT_EXTENSIONS:
            log.debug("Skipping non-document file %s", relative)
            return None

        file_name = entry.path.name
        clean_name, extension, language = parse_file_name(file_name, self.config.main_language)

        record = DocumentRecord(
            path=entry.path,
            relative_path=relative,
            file_name=file_name,
            clean_name=clean_name,
            extension=extension,
            language=language,
            category=category,
            main_folder=main_folder,
            parent_folder=entry.path.parent.name,
            modified=entry.modified,
            size=entry.size,
            origin=Origin.VAULT,
        )
        target_relative, link_path = target_path_for(record, self.config)
        record.target_relative = target_relative
        record.target_path = self.config.site_path / target_relative
        record.link_path = link_path
        return record


def target_path_for(record: DocumentRecord, config: MirrorConfig) -> Tuple[str, str]:
    """Compute where a vault file lands in the site.

    Args:
        record: Source record (category, language and relative path are used)
        config: Layout configuration

    Returns:
        Tuple of (site-relative target path, link path). The link path is
        the vault-relative path without language suffixes; link
        normalization turns it into a route.
    """
    parts = record.relative_path.split('/')
    main_folder, inner = parts[0], parts[1:]
    language = record.language
    blog = record.category.is_blog
    link_path = PurePosixPath(main_folder, *(_strip_language(p, language) for p in inner)).as_posix()

    flattened = record.parent_folder.endswith(FLATTEN_MARKER) and len(inner) >= 2
    if flattened:
        inner = inner[:-1]
        inner[-1] = inner[-1][:-len(FLATTEN_MARKER)] + record.extension

    inner = [_strip_language(p, language) for p in inner]
    if inner and inner[-1].endswith('.yml.md'):
        inner[-1] = inner[-1][:-len('.md')]

    if record.category is Category.ASSETS:
        target = PurePosixPath('static', config.asset_subfolder, *inner)
        return target.as_posix(), target.as_posix()

    if config.normalize_segments:
        inner = normalize_target_segments(inner, blog)
    elif flattened:
        inner[-1:] = normalize_target_segments(inner[-1:], blog)

    if language == config.main_language:
        return PurePosixPath(main_folder, *inner).as_posix(), link_path

    prefix = _i18n_prefix(record.category, language, main_folder)
    return PurePosixPath(prefix, *inner).as_posix(), link_path


def _strip_language(part: str, language: str) -> str:
    stem, ext = os.path.splitext(part)
    if stem.lower().endswith(f"__{language}"):
        stem = stem[:-len(language) - 2]
    return stem + ext


def _i18n_prefix(category: Category, language: str, main_folder: str) -> str:
    if category is Category.DOCS:
        return f"i18n/{language}/docusaurus-plugin-content-docs/current"
    if category is Category.BLOG:
        return f"i18n/{language}/docusaurus-plugin-content-blog/current"
    return f"i18n/{language}/docusaurus-plugin-content-blog-{main_folder}"
