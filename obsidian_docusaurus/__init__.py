"""
Obsidian Docusaurus - Mirror an Obsidian vault into a Docusaurus site

An incremental converter from Obsidian notes and attachments to a
Docusaurus site tree with support for:
- Ledger-driven reconciliation (only new or modified notes are converted)
- Wikilink and embed conversion
- Callout to admonition conversion
- Attachment tracking, rendering and cleanup
"""

from obsidian_docusaurus.core.models import (
    ConfigurationError,
    ConversionError,
    DocumentRecord,
    MirrorError,
    RunResult,
)
from obsidian_docusaurus.core.config import MirrorConfig, load_config
from obsidian_docusaurus.core.discovery import InventoryBuilder
from obsidian_docusaurus.core.processor import ContentProcessor
from obsidian_docusaurus.core.reconciler import Reconciler, create_reconciler_from_config

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConversionError",
    "DocumentRecord",
    "MirrorError",
    "RunResult",
    "MirrorConfig",
    "load_config",
    "InventoryBuilder",
    "ContentProcessor",
    "Reconciler",
    "create_reconciler_from_config",
]
