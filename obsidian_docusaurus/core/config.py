"""Configuration loading for Obsidian Docusaurus."""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from obsidian_docusaurus.core.models import Category, ConfigurationError


@dataclass
class MirrorConfig:
    """Settings for mirroring a vault into a Docusaurus site.

    Attributes:
        vault_path: Root of the Obsidian vault
        site_path: Root of the Docusaurus site
        main_language: Language of files without a ``__xx`` suffix
        docs_folder: Top-level vault folder holding docs
        blog_folder: Top-level vault folder holding the main blog
        multi_blog_suffix: Suffix marking additional blog folders
        asset_folder: Top-level vault folder holding attachments
        asset_subfolder: Folder below ``static/`` receiving images
        download_subfolder: Folder below ``static/`` receiving downloads
        converted_image_type: Extension raster images are converted to
        unused_assets_folder: Vault folder unreferenced attachments are moved to
        state_dir: Folder holding the ledger and asset registry
        normalize_segments: Strip ordering prefixes / split blog slugs in target paths
        max_workers: Number of conversion threads
    """
    vault_path: Path
    site_path: Path
    main_language: str
    docs_folder: str = "docs"
    blog_folder: str = "blog"
    multi_blog_suffix: str = "__blog"
    asset_folder: str = "assets"
    asset_subfolder: str = "assets"
    download_subfolder: str = "assets"
    converted_image_type: str = "webp"
    unused_assets_folder: str = "_unused_assets"
    state_dir: Optional[Path] = None
    normalize_segments: bool = True
    max_workers: int = 4

    def __post_init__(self):
        if not self.main_language:
            raise ConfigurationError("Main language not defined in the configuration")
        self.vault_path = Path(self.vault_path)
        self.site_path = Path(self.site_path)
        if self.state_dir is None:
            self.state_dir = self.vault_path / ".obsidian-docusaurus"
        self.state_dir = Path(self.state_dir)
        self.converted_image_type = self.converted_image_type.lstrip('.')
        if self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {self.max_workers}")

    @property
    def ledger_path(self) -> Path:
        return self.state_dir / "conversion_ledger.json"

    @property
    def registry_path(self) -> Path:
        return self.state_dir / "asset_registry.json"

    @property
    def asset_output_dir(self) -> Path:
        return self.site_path / "static" / self.asset_subfolder

    @property
    def download_output_dir(self) -> Path:
        return self.site_path / "static" / self.download_subfolder

    @property
    def unused_assets_dir(self) -> Path:
        return self.vault_path / self.unused_assets_folder

    def classify_folder(self, name: str) -> Optional[Category]:
        """Map a top-level vault folder name to its category.

        Returns:
            The category, or None for folders that are not mirrored
        """
        if name.endswith(self.multi_blog_suffix):
            return Category.BLOG_MULTI
        if name == self.blog_folder:
            return Category.BLOG
        if name == self.docs_folder:
            return Category.DOCS
        if name == self.asset_folder:
            return Category.ASSETS
        return None

    def is_blog_folder(self, name: str) -> bool:
        return name == self.blog_folder or name.endswith(self.multi_blog_suffix)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Optional[Path] = None) -> "MirrorConfig":
        """Build a config from a plain mapping.

        Args:
            data: Parsed configuration values
            base_dir: Folder relative paths are resolved against

        Returns:
            Validated MirrorConfig

        Raises:
            ConfigurationError: If required keys are missing or unknown keys are present
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        for required in ("vault_path", "site_path"):
            if not data.get(required):
                raise ConfigurationError(f"Missing required setting: {required}")
        if not data.get("main_language"):
            raise ConfigurationError("Main language not defined in the configuration")

        values = dict(data)
        base = Path(base_dir) if base_dir else Path.cwd()
        for key in ("vault_path", "site_path", "state_dir"):
            if values.get(key):
                path = Path(values[key]).expanduser()
                values[key] = path if path.is_absolute() else (base / path)
        return cls(**values)


def load_config(path: Path) -> MirrorConfig:
    """Load a YAML configuration file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated MirrorConfig
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        raise ConfigurationError(f"Configuration file not found: {path}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML in {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path.name} must be a mapping")

    return MirrorConfig.from_dict(data, base_dir=path.parent)
