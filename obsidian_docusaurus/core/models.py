"""Data models for Obsidian Docusaurus."""

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class MirrorError(Exception):
    """Base class for errors that abort a mirror run."""


class ConfigurationError(MirrorError):
    """Raised when the configuration is missing a required setting."""


class StateError(MirrorError):
    """Raised when a persisted ledger or registry cannot be read."""


class ConversionError(MirrorError):
    """Raised when a document could not be transformed or written."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Failed to convert {source}: {message}")
        self.source = source


class MissingAssetSource(MirrorError):
    """Raised when an attachment is not part of the known attachment inventory."""

    def __init__(self, file_name: str):
        super().__init__(f"Could not find source for asset: {file_name}")
        self.file_name = file_name


class UnsupportedCalloutError(MirrorError):
    """Raised when a callout starts while another block is still open."""


class UnresolvedReferenceWarning(UserWarning):
    """Category for wikilinks that resolve to neither a note nor an attachment."""


class Origin(enum.Enum):
    VAULT = "vault"
    GENERIC = "generic"


class Category(enum.Enum):
    DOCS = "docs"
    BLOG = "blog"
    BLOG_MULTI = "blogMulti"
    ASSETS = "assets"

    @property
    def is_blog(self) -> bool:
        return self in (Category.BLOG, Category.BLOG_MULTI)


class Reason(str, enum.Enum):
    ORPHANED = "orphaned"
    STALE = "stale"
    SOURCE_MISSING = "source-missing"
    VANISHED = "vanished"
    NEW = "new"
    MODIFIED = "modified"
    MISSING_OUTPUT = "missing-output"


@dataclass
class DocumentRecord:
    """A scanned file with identity and modification metadata.

    Vault records carry a computed target; generic records (scanned from
    the site) are their own target. ``relative_path`` is the identity.
    """
    path: Path
    relative_path: str
    file_name: str
    clean_name: str
    extension: str
    language: str
    category: Category
    main_folder: str
    parent_folder: str
    modified: float
    size: int
    origin: Origin = Origin.VAULT
    target_path: Optional[Path] = None
    target_relative: Optional[str] = None
    link_path: Optional[str] = None

    def read_raw(self) -> str:
        """Read file contents on demand."""
        return self.path.read_text(encoding='utf-8')

    @property
    def is_markdown(self) -> bool:
        return self.extension == '.md' and not self.file_name.endswith('.yml.md')


@dataclass(frozen=True)
class LedgerEntry:
    """Records that ``target_path`` was produced from ``source_path``."""
    source_path: str
    target_path: str

    def to_dict(self) -> Dict[str, str]:
        return {"sourcePath": self.source_path, "targetPath": self.target_path}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEntry":
        return cls(source_path=str(data["sourcePath"]), target_path=str(data["targetPath"]))


@dataclass
class SizeVariant:
    """One rendered size of an attachment and the documents using it."""
    size: str
    documents: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "inDocuments": list(self.documents),
            "newName": list(self.outputs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SizeVariant":
        return cls(
            size=str(data.get("size", "standard")),
            documents=list(data.get("inDocuments", [])),
            outputs=list(data.get("newName", [])),
        )


@dataclass
class AssetRecord:
    """A logical attachment, keyed by its canonical file name."""
    file_name: str
    original_file_name: str
    file_extension: str
    source_path: str
    sizes: List[SizeVariant] = field(default_factory=list)

    def get_size(self, size: str) -> Optional[SizeVariant]:
        for variant in self.sizes:
            if variant.size == size:
                return variant
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "originalFileName": self.original_file_name,
            "fileExtension": self.file_extension,
            "sourcePathRelative": self.source_path,
            "sizes": [s.to_dict() for s in self.sizes],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetRecord":
        return cls(
            file_name=str(data["fileName"]),
            original_file_name=str(data.get("originalFileName", data["fileName"])),
            file_extension=str(data.get("fileExtension", "")),
            source_path=str(data.get("sourcePathRelative", "")),
            sizes=[SizeVariant.from_dict(s) for s in data.get("sizes", [])],
        )


@dataclass(frozen=True)
class ReleasedAsset:
    """A size variant whose last reference was released."""
    file_name: str
    file_extension: str
    size: str
    outputs: Tuple[str, ...]
    source_path: str
    record_dropped: bool


@dataclass(frozen=True)
class PlanItem:
    identity: str
    reason: Reason


@dataclass
class ReconciliationPlan:
    """Ordered delete-set and convert-set for one run. Never persisted."""
    deletions: List[PlanItem] = field(default_factory=list)
    conversions: List[PlanItem] = field(default_factory=list)
    vanished: List[LedgerEntry] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.deletions and not self.conversions


@dataclass
class ProcessedDocument:
    """Result of running the rewrite pipeline over one document."""
    record: DocumentRecord
    content: str
    unresolved_links: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class NoteError:
    """An error that occurred while handling a file.

    Used for non-fatal failures such as a target that could not be deleted.
    """
    path: str
    error: str


@dataclass
class RunResult:
    """Result of a mirror run."""
    converted: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    failures: List[NoteError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    unresolved_links: List[str] = field(default_factory=list)
    removed_asset_paths: List[Path] = field(default_factory=list)
    parked_assets: List[Path] = field(default_factory=list)
    rendered_assets: List[Path] = field(default_factory=list)
    dry_run: bool = False

    @property
    def nothing_to_do(self) -> bool:
        return not self.converted and not self.deleted and not self.failures
