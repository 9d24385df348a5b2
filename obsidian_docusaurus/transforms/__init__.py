"""Markdown transforms for Obsidian Docusaurus."""
