"""Tests for the incremental reconciler."""

import os
import time

import pytest

from obsidian_docusaurus.core import reconciler as reconciler_module
from obsidian_docusaurus.core.assets import STANDARD_SIZE, AssetRegistry
from obsidian_docusaurus.core.config import MirrorConfig
from obsidian_docusaurus.core.ledger import ConversionLedger
from obsidian_docusaurus.core.models import ConversionError, LedgerEntry, NoteError, PlanItem, Reason
from obsidian_docusaurus.core.processor import ContentProcessor
from obsidian_docusaurus.core.reconciler import (
    Reconciler,
    create_reconciler_from_config,
    delete_output,
    remove_empty_parents,
)

PAST = time.time() - 1000


def write(path, content, mtime=PAST):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    os.utime(path, (mtime, mtime))


class TestReconciler:
    """End-to-end runs against a temporary vault and site."""

    @pytest.fixture
    def config(self, tmp_path):
        vault = tmp_path / "vault"
        site = tmp_path / "site"
        vault.mkdir()
        site.mkdir()
        return MirrorConfig(vault_path=vault, site_path=site, main_language="en", max_workers=4)

    @pytest.fixture
    def messages(self):
        return []

    @pytest.fixture
    def reconciler(self, config, messages):
        return Reconciler(
            config=config,
            ledger=ConversionLedger(config.ledger_path),
            registry=AssetRegistry(config.registry_path),
            notify=messages.append,
        )

    def load_ledger(self, config):
        return ConversionLedger(config.ledger_path).load()

    def load_registry(self, config):
        return AssetRegistry(config.registry_path).load()

    def test_first_run_converts_everything(self, config, reconciler, messages):
        write(config.vault_path / "docs/intro.md", "# Intro")
        write(config.vault_path / "docs/02-guide/03-setup.md", "# Setup")

        result = reconciler.run()

        assert sorted(result.converted) == ["docs/02-guide/03-setup.md", "docs/intro.md"]
        assert (config.site_path / "docs/intro.md").read_text() == "# Intro\n"
        assert (config.site_path / "docs/guide/setup.md").exists()
        assert len(self.load_ledger(config)) == 2
        assert messages == ["Processing 2 files", "Converted 2 files, deleted 0 files"]

    def test_second_run_does_nothing(self, config, reconciler, messages):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()

        result = reconciler.run()

        assert result.converted == []
        assert result.deleted == []
        assert messages[-1] == "Nothing to do"

    def test_equal_timestamps_do_nothing(self, config, reconciler, messages):
        source = config.vault_path / "docs/intro.md"
        write(source, "# Intro")
        reconciler.run()
        target = config.site_path / "docs/intro.md"
        mtime = source.stat().st_mtime
        os.utime(target, (mtime, mtime))

        reconciler.run()

        assert messages[-1] == "Nothing to do"

    def test_deleted_source_removes_target_and_empty_dirs(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        write(config.vault_path / "docs/02-guide/03-setup.md", "# Setup")
        reconciler.run()

        (config.vault_path / "docs/02-guide/03-setup.md").unlink()
        result = reconciler.run()

        assert result.deleted == ["docs/guide/setup.md"]
        assert not (config.site_path / "docs/guide").exists()
        assert (config.site_path / "docs/intro.md").exists()
        assert [e.source_path for e in self.load_ledger(config).entries] == ["docs/intro.md"]

    def test_site_root_is_kept(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()

        (config.vault_path / "docs/intro.md").unlink()
        reconciler.run()

        assert not (config.site_path / "docs").exists()
        assert config.site_path.exists()

    def test_touched_source_reconverted_once(self, config, reconciler):
        source = config.vault_path / "docs/intro.md"
        write(source, "# Intro")
        reconciler.run()

        future = time.time() + 100
        write(source, "# Intro v2", mtime=future)
        result = reconciler.run()

        assert result.converted == ["docs/intro.md"]
        assert result.deleted == ["docs/intro.md"]
        assert (config.site_path / "docs/intro.md").read_text() == "# Intro v2\n"
        assert self.load_ledger(config).entries == (LedgerEntry("docs/intro.md", "docs/intro.md"),)

    def test_orphaned_output_deleted(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        write(config.site_path / "docs/stray.md", "stray")

        result = reconciler.run()

        assert result.deleted == ["docs/stray.md"]
        assert not (config.site_path / "docs/stray.md").exists()

    def test_lost_ledger_rebuilds_outputs(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()
        config.ledger_path.unlink()

        result = reconciler.run()

        assert result.deleted == ["docs/intro.md"]
        assert result.converted == ["docs/intro.md"]
        assert (config.site_path / "docs/intro.md").exists()
        assert len(self.load_ledger(config)) == 1

    def test_translated_document(self, config, reconciler):
        write(config.vault_path / "docs/intro__de.md", "# Einleitung")

        reconciler.run()

        target = config.site_path / "i18n/de/docusaurus-plugin-content-docs/current/intro.md"
        assert target.read_text() == "# Einleitung\n"

    def test_conversion_failure_persists_nothing(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()
        ledger_before = config.ledger_path.read_text()

        write(config.vault_path / "docs/bad.md", "> [!note] Outer\n> [!warning] Inner\n")
        with pytest.raises(ConversionError) as exc_info:
            reconciler.run()

        assert exc_info.value.source == "docs/bad.md"
        assert config.ledger_path.read_text() == ledger_before

    def test_failed_deletion_keeps_ledger_entry(self, config, reconciler, messages, monkeypatch):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()
        (config.vault_path / "docs/intro.md").unlink()

        monkeypatch.setattr(reconciler_module, "delete_output", lambda path, root: "Permission denied")
        result = reconciler.run()

        assert result.failures == [NoteError(path="docs/intro.md", error="Permission denied")]
        assert result.deleted == []
        assert self.load_ledger(config).find_by_target("docs/intro.md") is not None
        assert messages[-1] == "Converted 0 files, deleted 0 files, skipped 1 files"

    def test_processor_factory(self, config, messages):
        class FailingProcessor(ContentProcessor):
            def process(self, record):
                raise OSError("disk full")

        reconciler = Reconciler(
            config=config,
            ledger=ConversionLedger(config.ledger_path),
            registry=AssetRegistry(config.registry_path),
            processor_factory=FailingProcessor,
            notify=messages.append,
        )
        write(config.vault_path / "docs/intro.md", "# Intro")

        with pytest.raises(ConversionError, match="disk full"):
            reconciler.run()

        assert not config.ledger_path.exists()

    def test_corrupt_attachment_does_not_block_run(self, config, messages):
        write(config.vault_path / "docs/intro.md", "![[photo.png]]")
        write(config.vault_path / "assets/photo.png", "not an image")
        reconciler = create_reconciler_from_config(config, notify=messages.append)

        result = reconciler.run()

        assert result.converted == ["docs/intro.md"]
        assert len(result.warnings) == 1
        assert len(self.load_ledger(config)) == 1
        assert self.load_registry(config).get("photo") is not None
        assert messages[-1] == "Converted 1 files, deleted 0 files (1 warnings)"

        reconciler.run()
        assert (config.site_path / "docs/intro.md").exists()
        assert self.load_ledger(config).find_by_source("docs/intro.md") is not None

    def test_sources_sharing_a_target_settle(self, config, reconciler, messages):
        write(config.vault_path / "docs/01-intro.md", "# Numbered")
        write(config.vault_path / "docs/intro.md", "# Plain")

        result = reconciler.run()

        assert result.converted == ["docs/01-intro.md"]
        assert len(result.warnings) == 1
        assert "docs/intro.md" in result.warnings[0]
        assert (config.site_path / "docs/intro.md").read_text() == "# Numbered\n"
        assert messages[-1] == "Converted 1 files, deleted 0 files (1 warnings)"

        result = reconciler.run()

        assert result.converted == []
        assert result.deleted == []
        assert messages[-1] == "Nothing to do"

    def test_vanished_entry_dropped(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        ledger = ConversionLedger(config.ledger_path)
        ledger.record("docs/gone.md", "docs/gone.md")
        ledger.save()

        reconciler.run()

        sources = [e.source_path for e in self.load_ledger(config).entries]
        assert sources == ["docs/intro.md"]

    def test_unresolved_links_counted_as_warnings(self, config, reconciler, messages):
        write(config.vault_path / "docs/intro.md", "See [[Nowhere]]")

        result = reconciler.run()

        assert result.unresolved_links == ["Nowhere"]
        assert messages[-1] == "Converted 1 files, deleted 0 files (1 warnings)"

    def test_dry_run_changes_nothing(self, config, reconciler, messages):
        write(config.vault_path / "docs/intro.md", "# Intro")
        write(config.site_path / "docs/stray.md", "stray")

        result = reconciler.run(dry_run=True)

        assert result.dry_run
        assert result.converted == ["docs/intro.md"]
        assert result.deleted == ["docs/stray.md"]
        assert messages == ["Would convert 1 files, would delete 1 files"]
        assert (config.site_path / "docs/stray.md").exists()
        assert not (config.site_path / "docs/intro.md").exists()
        assert not config.ledger_path.exists()

    def test_shared_asset_survives_until_last_reference(self, config, reconciler):
        write(config.vault_path / "assets/diagram.png", "png")
        write(config.vault_path / "docs/a.md", "![[diagram.png]]")
        write(config.vault_path / "docs/b.md", "![[diagram.png]]")
        reconciler.run()

        variant = self.load_registry(config).find_variant("diagram", STANDARD_SIZE)
        assert sorted(variant.documents) == ["docs/a.md", "docs/b.md"]

        output = config.asset_output_dir / "diagram.webp"
        write(output, "webp", mtime=time.time())

        (config.vault_path / "docs/a.md").unlink()
        reconciler.run()

        variant = self.load_registry(config).find_variant("diagram", STANDARD_SIZE)
        assert variant.documents == ["docs/b.md"]
        assert output.exists()

        (config.vault_path / "docs/b.md").unlink()
        result = reconciler.run()

        assert self.load_registry(config).records == ()
        assert not output.exists()
        assert result.removed_asset_paths == [output]
        assert not (config.vault_path / "assets/diagram.png").exists()
        assert (config.unused_assets_dir / "diagram.png").exists()
        assert result.parked_assets == [config.unused_assets_dir / "diagram.png"]

    def test_modified_document_keeps_its_asset(self, config, reconciler):
        write(config.vault_path / "assets/diagram.png", "png")
        write(config.vault_path / "docs/a.md", "![[diagram.png]]")
        reconciler.run()

        write(config.vault_path / "docs/a.md", "Still here: ![[diagram.png]]", mtime=time.time() + 100)
        result = reconciler.run()

        assert result.parked_assets == []
        assert (config.vault_path / "assets/diagram.png").exists()
        assert self.load_registry(config).find_variant("diagram", STANDARD_SIZE).documents == ["docs/a.md"]

    def test_dropped_reference_parks_asset(self, config, reconciler):
        write(config.vault_path / "assets/diagram.png", "png")
        write(config.vault_path / "docs/a.md", "![[diagram.png]]")
        reconciler.run()

        write(config.vault_path / "docs/a.md", "No more pictures", mtime=time.time() + 100)
        result = reconciler.run()

        assert result.parked_assets == [config.unused_assets_dir / "diagram.png"]
        assert self.load_registry(config).get("diagram") is None

    def test_concurrent_documents_share_asset(self, config, reconciler):
        write(config.vault_path / "assets/diagram.png", "png")
        for i in range(20):
            write(config.vault_path / f"docs/note-{i}.md", "![[diagram.png]]")

        result = reconciler.run()

        assert len(result.converted) == 20
        variant = self.load_registry(config).find_variant("diagram", STANDARD_SIZE)
        assert len(variant.documents) == 20


class TestPlan:
    """Tests for Reconciler.plan decisions."""

    @pytest.fixture
    def config(self, tmp_path):
        (tmp_path / "vault").mkdir()
        (tmp_path / "site").mkdir()
        return MirrorConfig(vault_path=tmp_path / "vault", site_path=tmp_path / "site", main_language="en")

    @pytest.fixture
    def reconciler(self, config):
        return Reconciler(
            config=config,
            ledger=ConversionLedger(config.ledger_path),
            registry=AssetRegistry(config.registry_path),
            notify=lambda message: None,
        )

    def plan(self, reconciler):
        reconciler.ledger.load()
        builder = reconciler.inventory_builder
        return reconciler.plan(builder.build_sources(), builder.build_targets())

    def test_new_source(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")

        plan = self.plan(reconciler)

        assert plan.conversions == [PlanItem("docs/intro.md", Reason.NEW)]
        assert plan.deletions == []

    def test_missing_output(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        reconciler.run()
        (config.site_path / "docs/intro.md").unlink()

        plan = self.plan(reconciler)

        assert plan.conversions == [PlanItem("docs/intro.md", Reason.MISSING_OUTPUT)]
        assert plan.deletions == []

    def test_orphaned(self, config, reconciler):
        write(config.site_path / "docs/stray.md", "stray")

        plan = self.plan(reconciler)

        assert plan.deletions == [PlanItem("docs/stray.md", Reason.ORPHANED)]

    def test_source_missing(self, config, reconciler):
        write(config.site_path / "docs/gone.md", "gone", mtime=time.time())
        ledger = ConversionLedger(config.ledger_path)
        ledger.record("docs/gone.md", "docs/gone.md")
        ledger.save()

        plan = self.plan(reconciler)

        assert plan.deletions == [PlanItem("docs/gone.md", Reason.SOURCE_MISSING)]
        assert plan.conversions == []

    def test_changed_layout_is_stale(self, config, reconciler):
        write(config.vault_path / "docs/intro.md", "# Intro")
        write(config.site_path / "docs/old-intro.md", "old", mtime=time.time())
        ledger = ConversionLedger(config.ledger_path)
        ledger.record("docs/intro.md", "docs/old-intro.md")
        ledger.save()

        plan = self.plan(reconciler)

        assert plan.deletions == [PlanItem("docs/old-intro.md", Reason.STALE)]
        assert plan.conversions == [PlanItem("docs/intro.md", Reason.MODIFIED)]

    def test_vanished(self, config, reconciler):
        ledger = ConversionLedger(config.ledger_path)
        ledger.record("docs/gone.md", "docs/gone.md")
        ledger.save()

        plan = self.plan(reconciler)

        assert plan.vanished == [LedgerEntry("docs/gone.md", "docs/gone.md")]
        assert plan.is_empty


class TestFileHelpers:
    def test_remove_empty_parents_stops_at_root(self, tmp_path):
        deep = tmp_path / "a" / "b" / "c"
        deep.mkdir(parents=True)

        remove_empty_parents(deep, tmp_path)

        assert not (tmp_path / "a").exists()
        assert tmp_path.exists()

    def test_remove_empty_parents_keeps_non_empty(self, tmp_path):
        deep = tmp_path / "a" / "b"
        deep.mkdir(parents=True)
        (tmp_path / "a" / "keep.md").write_text("x")

        remove_empty_parents(deep, tmp_path)

        assert not deep.exists()
        assert (tmp_path / "a").exists()

    def test_delete_missing_output_counts_as_deleted(self, tmp_path):
        assert delete_output(tmp_path / "missing.md", tmp_path) is None
