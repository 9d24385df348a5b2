"""Attachment rendering for Obsidian Docusaurus."""

from obsidian_docusaurus.images.renderer import AssetRenderer

__all__ = ["AssetRenderer"]
