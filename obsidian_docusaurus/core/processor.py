"""Content processor rewriting Obsidian notes into Docusaurus markdown."""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import inflection

from obsidian_docusaurus.core.assets import STANDARD_SIZE, AssetRegistry, canonical_asset_name
from obsidian_docusaurus.core.config import MirrorConfig
from obsidian_docusaurus.core.discovery import Inventory
from obsidian_docusaurus.core.models import (
    DocumentRecord,
    MissingAssetSource,
    ProcessedDocument,
    UnresolvedReferenceWarning,
)
from obsidian_docusaurus.transforms.callouts import CalloutMachine
from obsidian_docusaurus.transforms.links import is_external, normalize_link_path, rewrite_relative_links

log = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "png", "webp", "jpeg", "bmp", "gif", "svg", "excalidraw")

# Copied as-is instead of converted to the configured image type
KEEP_FORMAT_EXTENSIONS = ("gif", "svg")

# Rendered once per color scheme
DUAL_THEME_EXTENSIONS = ("excalidraw",)

DOWNLOAD_EXTENSIONS = (
    "pdf", "zip", "7z", "tar", "gz", "csv", "xlsx", "xls", "docx", "doc", "pptx", "ppt",
    "txt", "json", "mp3", "mp4", "mov", "wav", "webm", "drawio",
)

ATTACHMENT_EXTENSIONS = IMAGE_EXTENSIONS + DOWNLOAD_EXTENSIONS

SIZE_PATTERN = re.compile(r'^\d+(?:x\d+)?$')


@dataclass
class DocumentContext:
    """Per-document diagnostics collected while rewriting."""
    record: DocumentRecord
    unresolved_links: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ContentProcessor:
    """Processes Obsidian note content for Docusaurus.

    Each line goes through four rewrites, in order:
    - Wikilink / wiki-embed resolution
    - Asset registration and asset path rewriting
    - Relative link normalization
    - Callout and quote block conversion
    """

    # [[target]], ![[target]], [[target|title]], [[target#section]]
    WIKILINK_PATTERN = re.compile(r'(!)?\[\[([^\]]+?)\]\]')

    # ![](path) or ![|300](path) or ![|300x200](path)
    ASSET_EMBED_PATTERN = re.compile(r'!\[(?:\|(?P<size>\d+(?:x\d+)?))?\]\((?P<path>[^)]*?)\)')

    def __init__(self, inventory: Inventory, registry: AssetRegistry, config: MirrorConfig):
        """Initialize ContentProcessor.

        Args:
            inventory: Lookup index of vault documents and attachments
            registry: Asset registry receiving attachment usage
            config: Mirror configuration (asset locations, blog folders)
        """
        self.inventory = inventory
        self.registry = registry
        self.config = config
        self.asset_prefix = "/" + config.asset_subfolder.strip("/")
        self.download_prefix = "/" + config.download_subfolder.strip("/")

    def process(self, record: DocumentRecord) -> ProcessedDocument:
        """Rewrite one vault document.

        Files that are not markdown notes (``.yml``, ``.yml.md``) are
        returned unchanged.

        Args:
            record: The source record; content is read lazily

        Returns:
            ProcessedDocument with transformed content and diagnostics
        """
        raw_content = record.read_raw()
        if not record.is_markdown:
            return ProcessedDocument(record=record, content=raw_content)

        ctx = DocumentContext(record=record)
        frontmatter, body = self._split_frontmatter(raw_content)
        content = self.transform_body(body, ctx)

        return ProcessedDocument(
            record=record,
            content=frontmatter + content,
            unresolved_links=ctx.unresolved_links,
            warnings=ctx.warnings,
        )

    def transform_body(self, body: str, ctx: DocumentContext) -> str:
        machine = CalloutMachine()
        output: List[str] = []

        for line in body.splitlines():
            line = self.convert_wikilinks(line, ctx)
            line = self.register_assets(line, ctx)
            line = self.normalize_links(line)
            output.extend(machine.feed(line))
        output.extend(machine.close())

        return "\n".join(output) + "\n"

    def _split_frontmatter(self, raw_content: str) -> Tuple[str, str]:
        """Separate a leading front matter block from the body.

        Returns:
            Tuple of (front matter including delimiters, body)
        """
        if not raw_content.startswith('---\n'):
            return "", raw_content

        parts = raw_content.split('---\n', 2)
        if len(parts) < 3:
            return "", raw_content
        return f"---\n{parts[1]}---\n", parts[2]

    def convert_wikilinks(self, line: str, ctx: DocumentContext) -> str:
        """Replace wikilinks to notes with links and to attachments with embeds."""

        def replace_link(match: re.Match) -> str:
            parts = match.group(2).split("|")
            target = parts[0].strip()
            display = parts[-1].strip() if len(parts) > 1 else None

            name, _, section = target.partition("#")
            name = name.strip()

            document = self._resolve_document(name, ctx.record)
            if document is not None:
                link = document.link_path.replace(" ", "%20")
                if section:
                    link += "#" + inflection.parameterize(section)
                title = display or _strip_md(name)
                return f"[{title}]({link})"

            attachment = self._find_attachment(name)
            if attachment is not None:
                path = attachment.relative_path.replace(" ", "%20")
                if display and SIZE_PATTERN.match(display):
                    return f"![|{display}]({path})"
                return f"![]({path})"

            if _extension(name) not in ATTACHMENT_EXTENSIONS:
                ctx.unresolved_links.append(target)
                log.warning("%s", UnresolvedReferenceWarning(
                    f"Unresolved link [[{target}]] in {ctx.record.relative_path}"
                ))
            return match.group(0)

        return self.WIKILINK_PATTERN.sub(replace_link, line)

    def register_assets(self, line: str, ctx: DocumentContext) -> str:
        """Register embedded attachments and point embeds at published files."""

        def replace_embed(match: re.Match) -> str:
            path = match.group('path').strip()
            if not path or is_external(path):
                return match.group(0)
            file_name = path.split('/')[-1].replace('%20', ' ')
            return self._asset_markup(file_name, match.group('size') or STANDARD_SIZE, ctx)

        def replace_wiki_embed(match: re.Match) -> str:
            file_name = match.group(2).split("|")[0].strip()
            if _extension(file_name) not in ATTACHMENT_EXTENSIONS:
                return match.group(0)
            return self._asset_markup(file_name, STANDARD_SIZE, ctx)

        line = self.ASSET_EMBED_PATTERN.sub(replace_embed, line)
        return self.WIKILINK_PATTERN.sub(replace_wiki_embed, line)

    def normalize_links(self, line: str) -> str:
        def normalize(url: str) -> str:
            return normalize_link_path(
                url,
                is_blog=self.config.is_blog_folder,
                blog_suffix=self.config.multi_blog_suffix,
            )

        return rewrite_relative_links(line, normalize)

    def _asset_markup(self, file_name: str, size: str, ctx: DocumentContext) -> str:
        canonical, extension = canonical_asset_name(file_name)

        if extension in IMAGE_EXTENSIONS:
            markup, outputs = self._image_markup(canonical, extension, size)
        else:
            size = STANDARD_SIZE
            markup, outputs = self._download_markup(canonical, extension)

        attachment = self._find_attachment(file_name)
        try:
            self.registry.record_usage(
                canonical,
                file_name,
                extension,
                attachment.relative_path if attachment else None,
                size,
                ctx.record.relative_path,
                outputs,
            )
        except MissingAssetSource as e:
            log.warning("%s (referenced in %s)", e, ctx.record.relative_path)
            ctx.warnings.append(f"{ctx.record.relative_path}: {e}")

        return markup

    def _image_markup(self, name: str, extension: str, size: str) -> Tuple[str, List[str]]:
        suffix = "" if size == STANDARD_SIZE else f"_{size}"

        if extension in DUAL_THEME_EXTENSIONS:
            light = f"{name}{suffix}.{extension}.light.svg"
            dark = f"{name}{suffix}.{extension}.dark.svg"
            markup = (
                f"![{name}]({self.asset_prefix}/{light}#light)\n"
                f"![{name}]({self.asset_prefix}/{dark}#dark)"
            )
            return markup, [light, dark]

        if extension in KEEP_FORMAT_EXTENSIONS:
            output = f"{name}{suffix}.{extension}"
        else:
            output = f"{name}{suffix}.{self.config.converted_image_type}"
        return f"![{name}]({self.asset_prefix}/{output})", [output]

    def _download_markup(self, name: str, extension: str) -> Tuple[str, List[str]]:
        output = f"{name}.{extension}" if extension else name
        return f"[Download {output}]({self.download_prefix}/{output})", [output]

    def _resolve_document(self, name: str, record: DocumentRecord) -> Optional[DocumentRecord]:
        extension = _extension(name)
        if extension and extension != "md" and extension in ATTACHMENT_EXTENSIONS:
            return None
        return self.inventory.resolve_document(name, record.language)

    def _find_attachment(self, name: str) -> Optional[DocumentRecord]:
        return self.inventory.find_attachment(name) or self.inventory.find_attachment(name + ".md")


def _extension(name: str) -> str:
    _, dot, ext = name.rpartition(".")
    return ext.lower() if dot else ""


def _strip_md(name: str) -> str:
    return name[:-3] if name.lower().endswith(".md") else name
