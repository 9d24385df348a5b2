"""Asset renderer producing published files for registered attachments."""

import logging
import shutil
from pathlib import Path
from typing import List, Optional, Tuple

from PIL import Image

from obsidian_docusaurus.core.assets import STANDARD_SIZE, AssetRegistry
from obsidian_docusaurus.core.config import MirrorConfig
from obsidian_docusaurus.core.models import AssetRecord

log = logging.getLogger(__name__)

RASTER_EXTENSIONS = ("jpg", "jpeg", "png", "webp", "bmp")

PIL_FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "bmp": "BMP",
}


def parse_size(size: str) -> Optional[Tuple[int, Optional[int]]]:
    """Parse a size tag.

    Returns:
        (width, height or None), or None for the standard size
    """
    if not size or size == STANDARD_SIZE:
        return None
    width, _, height = size.partition("x")
    return int(width), int(height) if height else None


def asset_output_path(config: MirrorConfig, extension: str, output_name: str) -> Path:
    """Where a produced asset file lives in the site."""
    if extension in RASTER_EXTENSIONS + ("gif", "svg", "excalidraw"):
        return config.asset_output_dir / output_name
    return config.download_output_dir / output_name


class AssetRenderer:
    """Produces output files for every registered attachment variant.

    Raster images are converted to the configured type and resized for
    explicit size tags; other formats are copied. An output is rebuilt when
    it is missing or older than its source attachment.
    """

    def __init__(self, config: MirrorConfig, quality: int = 85):
        """Initialize AssetRenderer.

        Args:
            config: Mirror configuration (vault, output folders, image type)
            quality: Encoder quality for lossy formats
        """
        self.config = config
        self.quality = quality

    def render_all(self, registry: AssetRegistry) -> Tuple[List[Path], List[str]]:
        """Render missing or stale outputs for every registered variant.

        Returns:
            Tuple of (written output paths, warning messages)
        """
        written: List[Path] = []
        warnings: List[str] = []

        for record in registry.records:
            source = self.config.vault_path / record.source_path
            if not source.exists():
                message = f"Source attachment missing for {record.file_name}: {record.source_path}"
                log.warning(message)
                warnings.append(message)
                continue

            for variant in record.sizes:
                for output_name in variant.outputs:
                    output = self.output_path(record, output_name)
                    if output.exists() and output.stat().st_mtime >= source.stat().st_mtime:
                        continue
                    try:
                        rendered = self.render(record, source, variant.size, output)
                    except (OSError, ValueError, Image.DecompressionBombError) as e:
                        log.warning("Failed to render %s: %s", output_name, e)
                        output.unlink(missing_ok=True)
                        rendered = False
                    if rendered:
                        written.append(output)
                    else:
                        message = f"Could not render {output_name} from {record.source_path}"
                        log.warning(message)
                        warnings.append(message)

        return written, warnings

    def output_path(self, record: AssetRecord, output_name: str) -> Path:
        return asset_output_path(self.config, record.file_extension, output_name)

    def render(self, record: AssetRecord, source: Path, size: str, output: Path) -> bool:
        """Write one output file.

        Returns:
            True if the output was written
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        extension = record.file_extension

        if extension == "excalidraw":
            return self._copy_excalidraw_export(source, output)

        if extension in RASTER_EXTENSIONS:
            self._convert_raster(source, output, parse_size(size))
            log.info("Rendered %s", output.name)
            return True

        shutil.copyfile(source, output)
        log.info("Copied %s", output.name)
        return True

    def _convert_raster(self, source: Path, output: Path, size: Optional[Tuple[int, Optional[int]]]) -> None:
        with Image.open(source) as img:
            if size is not None:
                width, height = size
                if height is None:
                    height = max(1, round(img.height * width / img.width))
                    img = img.resize((width, height), Image.LANCZOS)
                else:
                    img = img.copy()
                    img.thumbnail((width, height), Image.LANCZOS)

            fmt = PIL_FORMATS.get(output.suffix.lstrip(".").lower(), "WEBP")
            if fmt == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.save(output, fmt, quality=self.quality)

    def _copy_excalidraw_export(self, source: Path, output: Path) -> bool:
        # Drawing.excalidraw.md is exported as Drawing.excalidraw.light.svg / .dark.svg
        theme = "dark" if output.name.endswith(".dark.svg") else "light"
        base = source.name[:-len(".md")] if source.name.endswith(".md") else source.name
        export = source.with_name(f"{base}.{theme}.svg")
        if not export.exists():
            return False
        shutil.copyfile(export, output)
        log.info("Copied %s", output.name)
        return True
