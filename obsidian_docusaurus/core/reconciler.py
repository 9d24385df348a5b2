"""Incremental reconciliation of the vault against the site."""

import errno
import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from obsidian_docusaurus.core.assets import AssetRegistry
from obsidian_docusaurus.core.config import MirrorConfig
from obsidian_docusaurus.core.discovery import Inventory, InventoryBuilder
from obsidian_docusaurus.core.ledger import ConversionLedger
from obsidian_docusaurus.core.models import (
    ConversionError,
    DocumentRecord,
    LedgerEntry,
    MirrorError,
    NoteError,
    PlanItem,
    ProcessedDocument,
    Reason,
    ReconciliationPlan,
    ReleasedAsset,
    RunResult,
)
from obsidian_docusaurus.core.processor import ContentProcessor
from obsidian_docusaurus.images.renderer import AssetRenderer, asset_output_path

log = logging.getLogger(__name__)

Notifier = Callable[[str], None]
ProcessorFactory = Callable[[Inventory, AssetRegistry, MirrorConfig], ContentProcessor]


def remove_empty_parents(directory: Path, root: Path) -> None:
    """Remove ``directory`` and its empty ancestors, stopping below ``root``.

    A directory that is not empty (or became non-empty meanwhile) ends
    the walk without error.
    """
    while directory != root and root in directory.parents:
        try:
            directory.rmdir()
            log.info("Deleted empty directory %s", directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
                log.warning("Failed to delete directory %s: %s", directory, e)
            return
        directory = directory.parent


def delete_output(path: Path, root: Path) -> Optional[str]:
    """Delete one produced file and any directories it leaves empty.

    A file that is already gone counts as deleted.

    Returns:
        None on success, otherwise the error message
    """
    try:
        path.unlink()
        log.info("Deleted %s", path)
    except FileNotFoundError:
        log.info("%s was not found, considered as deleted", path)
    except OSError as e:
        log.error("Failed to delete %s: %s", path, e)
        return str(e)
    remove_empty_parents(path.parent, root)
    return None


class Reconciler:
    """Decides what to delete and convert, and carries it out.

    Handles:
    - Pruning outputs whose source is gone, newer, or unknown to the ledger
    - Converting new and modified documents
    - Releasing and collecting attachments no document uses anymore
    - Persisting the ledger and asset registry at the end of a run
    """

    def __init__(
        self,
        config: MirrorConfig,
        ledger: ConversionLedger,
        registry: AssetRegistry,
        inventory_builder: Optional[InventoryBuilder] = None,
        processor_factory: Optional[ProcessorFactory] = None,
        renderer: Optional[AssetRenderer] = None,
        notify: Notifier = print,
    ):
        """Initialize Reconciler.

        Args:
            config: Mirror configuration
            ledger: Conversion ledger store
            registry: Asset registry store
            inventory_builder: Scanner for vault and site (default: from config)
            processor_factory: Builds the content processor for a run
            renderer: Optional asset renderer run after conversion
            notify: Sink for human-readable progress and summary messages
        """
        self.config = config
        self.ledger = ledger
        self.registry = registry
        self.inventory_builder = inventory_builder or InventoryBuilder(config)
        self.processor_factory = processor_factory or ContentProcessor
        self.renderer = renderer
        self.notify = notify

    def plan(self, inventory: Inventory, targets: List[DocumentRecord]) -> ReconciliationPlan:
        """Compute the delete-set and convert-set without side effects.

        Args:
            inventory: Current vault inventory
            targets: Current site documents

        Returns:
            ReconciliationPlan, deletions before conversions
        """
        sources = {r.relative_path: r for r in inventory.documents}
        target_ids = {t.relative_path: t for t in targets}
        plan = ReconciliationPlan()
        dropped: Dict[LedgerEntry, Reason] = {}

        for target in targets:
            entry = self.ledger.find_by_target(target.relative_path)
            if entry is None:
                plan.deletions.append(PlanItem(target.relative_path, Reason.ORPHANED))
                continue

            source = sources.get(entry.source_path)
            if source is None:
                plan.deletions.append(PlanItem(target.relative_path, Reason.SOURCE_MISSING))
                dropped[entry] = Reason.SOURCE_MISSING
            elif source.modified > target.modified or source.target_relative != entry.target_path:
                plan.deletions.append(PlanItem(target.relative_path, Reason.STALE))
                dropped[entry] = Reason.STALE

        for entry in self.ledger.entries:
            if entry.target_path not in target_ids and entry.source_path not in sources:
                plan.vanished.append(entry)
                dropped[entry] = Reason.VANISHED

        for source in inventory.documents:
            entry = self.ledger.find_by_source(source.relative_path)
            if entry is None or entry in dropped:
                reason = Reason.MODIFIED if dropped.get(entry) is Reason.STALE else Reason.NEW
                plan.conversions.append(PlanItem(source.relative_path, reason))
                continue

            target = target_ids.get(entry.target_path)
            if target is None:
                plan.conversions.append(PlanItem(source.relative_path, Reason.MISSING_OUTPUT))
            elif source.modified > target.modified:
                plan.conversions.append(PlanItem(source.relative_path, Reason.MODIFIED))

        for item in plan.deletions:
            log.debug("To delete: %s (%s)", item.identity, item.reason.value)
        for item in plan.conversions:
            log.debug("To convert: %s (%s)", item.identity, item.reason.value)
        return plan

    def run(self, dry_run: bool = False) -> RunResult:
        """Run one reconciliation.

        Args:
            dry_run: Only compute and report the plan

        Returns:
            RunResult describing what changed

        Raises:
            ConversionError: If a document fails to convert; nothing is persisted
        """
        self.ledger.load()
        self.registry.load()

        inventory = self.inventory_builder.build_sources()
        targets = self.inventory_builder.build_targets()
        plan = self.plan(inventory, targets)

        if dry_run:
            result = RunResult(
                converted=[i.identity for i in plan.conversions],
                deleted=[i.identity for i in plan.deletions],
                dry_run=True,
            )
            self._report(result)
            return result

        result = RunResult(warnings=list(inventory.conflicts))
        released = self._prune(plan, targets, result)

        to_convert = [inventory.by_source(item.identity) for item in plan.conversions]
        for record in to_convert:
            released.extend(self.registry.release_document(record.relative_path))

        if to_convert:
            self.notify(f"Processing {len(to_convert)} files")
        processor = self.processor_factory(inventory, self.registry, self.config)
        for processed in self._convert_all(processor, to_convert):
            record = processed.record
            self.ledger.record(record.relative_path, record.target_relative)
            result.converted.append(record.relative_path)
            result.unresolved_links.extend(processed.unresolved_links)
            result.warnings.extend(processed.warnings)

        self._collect_garbage(released, result)

        if self.renderer is not None:
            rendered, warnings = self.renderer.render_all(self.registry)
            result.rendered_assets.extend(rendered)
            result.warnings.extend(warnings)

        self.ledger.save()
        self.registry.save()
        self._report(result)
        return result

    def _prune(self, plan: ReconciliationPlan, targets: List[DocumentRecord], result: RunResult) -> List[ReleasedAsset]:
        target_ids = {t.relative_path: t for t in targets}
        removed: Set[LedgerEntry] = set(plan.vanished)
        released: List[ReleasedAsset] = []

        # Most recent first, so earlier indices stay valid
        for item in reversed(plan.deletions):
            target = target_ids[item.identity]
            error = delete_output(target.path, self.config.site_path)
            if error is not None:
                result.failures.append(NoteError(path=item.identity, error=error))
                continue
            result.deleted.append(item.identity)
            log.info("Deleted %s as %s", item.identity, item.reason.value)

            entry = self.ledger.find_by_target(item.identity)
            if entry is not None:
                removed.add(entry)

        for entry in removed:
            released.extend(self.registry.release_document(entry.source_path))

        self.ledger.replace_all(e for e in self.ledger.entries if e not in removed)
        return released

    def _convert_all(self, processor: ContentProcessor, records: List[DocumentRecord]) -> List[ProcessedDocument]:
        if not records:
            return []

        processed: List[ProcessedDocument] = []
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            futures = {executor.submit(self._convert, processor, r): r for r in records}
            for future in as_completed(futures):
                record = futures[future]
                try:
                    processed.append(future.result())
                except (MirrorError, OSError, UnicodeDecodeError) as e:
                    for pending in futures:
                        pending.cancel()
                    log.error("Failed to convert %s: %s", record.relative_path, e)
                    raise ConversionError(record.relative_path, str(e)) from e
        return processed

    def _convert(self, processor: ContentProcessor, record: DocumentRecord) -> ProcessedDocument:
        processed = processor.process(record)
        record.target_path.parent.mkdir(parents=True, exist_ok=True)
        record.target_path.write_text(processed.content, encoding='utf-8')
        log.info("Converted %s to %s", record.relative_path, record.target_relative)
        return processed

    def _collect_garbage(self, released: List[ReleasedAsset], result: RunResult) -> None:
        for item in released:
            if self.registry.find_variant(item.file_name, item.size) is not None:
                continue
            for output_name in item.outputs:
                path = asset_output_path(self.config, item.file_extension, output_name)
                if delete_output(path, self.config.site_path) is None:
                    result.removed_asset_paths.append(path)

            if item.record_dropped and self.registry.get(item.file_name) is None:
                parked = self._park_attachment(item.source_path)
                if parked is not None:
                    result.parked_assets.append(parked)

    def _park_attachment(self, source_path: str) -> Optional[Path]:
        """Move an attachment nobody references into the unused-assets folder."""
        source = self.config.vault_path / source_path
        if not source.exists():
            return None

        holding = self.config.unused_assets_dir
        holding.mkdir(parents=True, exist_ok=True)
        destination = holding / source.name
        counter = 1
        while destination.exists():
            destination = holding / f"{source.stem}_{counter}{source.suffix}"
            counter += 1

        shutil.move(str(source), str(destination))
        log.info("Moved unused attachment %s to %s", source_path, destination)
        return destination

    def _report(self, result: RunResult) -> None:
        if result.nothing_to_do:
            self.notify("Nothing to do")
            return

        if result.dry_run:
            parts = [f"Would convert {len(result.converted)} files", f"would delete {len(result.deleted)} files"]
        else:
            parts = [f"Converted {len(result.converted)} files", f"deleted {len(result.deleted)} files"]
        if result.failures:
            parts.append(f"skipped {len(result.failures)} files")
        message = ", ".join(parts)

        warnings = len(result.warnings) + len(result.unresolved_links)
        if warnings:
            message += f" ({warnings} warnings)"
        self.notify(message)


def create_reconciler_from_config(config: MirrorConfig, notify: Notifier = print) -> Reconciler:
    """Wire a Reconciler with the stores and renderer named by ``config``."""
    return Reconciler(
        config=config,
        ledger=ConversionLedger(config.ledger_path),
        registry=AssetRegistry(config.registry_path),
        inventory_builder=InventoryBuilder(config),
        renderer=AssetRenderer(config),
        notify=notify,
    )

