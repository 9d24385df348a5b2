"""Core components for Obsidian Docusaurus."""

from obsidian_docusaurus.core.models import (
    AssetRecord,
    ConfigurationError,
    ConversionError,
    DocumentRecord,
    LedgerEntry,
    MirrorError,
    MissingAssetSource,
    ReconciliationPlan,
    RunResult,
    SizeVariant,
)
from obsidian_docusaurus.core.config import MirrorConfig, load_config
from obsidian_docusaurus.core.discovery import Inventory, InventoryBuilder
from obsidian_docusaurus.core.ledger import ConversionLedger
from obsidian_docusaurus.core.assets import AssetRegistry
from obsidian_docusaurus.core.processor import ContentProcessor
from obsidian_docusaurus.core.reconciler import Reconciler, create_reconciler_from_config

__all__ = [
    "AssetRecord",
    "ConfigurationError",
    "ConversionError",
    "DocumentRecord",
    "LedgerEntry",
    "MirrorError",
    "MissingAssetSource",
    "ReconciliationPlan",
    "RunResult",
    "SizeVariant",
    "MirrorConfig",
    "load_config",
    "Inventory",
    "InventoryBuilder",
    "ConversionLedger",
    "AssetRegistry",
    "ContentProcessor",
    "Reconciler",
    "create_reconciler_from_config",
]
