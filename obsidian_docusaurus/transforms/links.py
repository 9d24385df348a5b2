"""Link path transforms for Obsidian Docusaurus.

Relative links written in the vault point at vault files
(``02-guide/03-intro.md``); Docusaurus serves them at routes with ordering
prefixes, extensions and blog date separators removed (``/guide/intro``).
"""

import re
from typing import Callable, List, Optional

# 1) 1. 1 - 01%20 ...
NUMBER_PREFIX_PATTERN = re.compile(r'^\d+(?:[.\-)\s]|%20)*')

SCHEME_PATTERN = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.\-]*:')

# [text](path) but not ![alt](path)
MARKDOWN_LINK_PATTERN = re.compile(r'(?<!!)\[([^\]]+)\]\(([^)\s]+)\)')

FLATTEN_MARKER = "+"

BlogPredicate = Callable[[str], bool]


def remove_number_prefix(segment: str) -> str:
    """Strip a leading numeric ordering prefix such as ``01-`` or ``2. ``.

    A segment made only of digits is kept as-is.
    """
    stripped = NUMBER_PREFIX_PATTERN.sub('', segment).strip()
    return stripped or segment


def split_blog_slug(segment: str) -> str:
    """Turn hyphens into path separators (``2023-01-post`` -> ``2023/01/post``)."""
    return "/".join(segment.split("-"))


def is_external(url: str) -> bool:
    return bool(SCHEME_PATTERN.match(url))


def default_blog_predicate(blog_folder: str = "blog", suffix: str = "__blog") -> BlogPredicate:
    def predicate(name: str) -> bool:
        return name == blog_folder or name.endswith(suffix)
    return predicate


def normalize_link_path(
    url: str,
    is_blog: Optional[BlogPredicate] = None,
    blog_suffix: str = "__blog",
) -> str:
    """Rewrite a relative vault link to a site route.

    Args:
        url: Link target as written in the note
        is_blog: Predicate deciding whether the first segment is a blog folder
        blog_suffix: Suffix stripped from multi-blog folder names

    Returns:
        The normalized route, or ``url`` unchanged for external, absolute
        or single-segment links
    """
    if is_external(url) or url.startswith("/") or url.startswith("#"):
        return url

    parts = url.split("/")
    if len(parts) <= 1:
        return url

    is_blog = is_blog or default_blog_predicate(suffix=blog_suffix)
    blog = is_blog(parts[0])
    if blog and parts[0].endswith(blog_suffix):
        parts[0] = parts[0][:-len(blog_suffix)]

    return "/" + "/".join(_process_parts(parts, blog))


def _process_parts(parts: List[str], blog: bool) -> List[str]:
    parts = list(parts)
    file_part, _, anchor = parts[-1].partition("#")
    parent = parts[-2]

    if parent.endswith(FLATTEN_MARKER):
        parent = parent.replace(FLATTEN_MARKER, "", 1)
        parts.pop()
        parts[-1] = split_blog_slug(parent) if blog else remove_number_prefix(parent)
    elif file_part.endswith(".md"):
        parts[-1] = file_part[:-len(".md")]
    else:
        parts[-1] = file_part

    if blog:
        parts[-1] = split_blog_slug(parts[-1])
    else:
        parts = [remove_number_prefix(p) for p in parts]

    if anchor:
        parts[-1] = parts[-1] + "#" + anchor.replace("%20", "-").lower()

    return parts


def normalize_target_segments(segments: List[str], blog: bool) -> List[str]:
    """Apply route normalization to the folder/file segments of a target path.

    The last segment is a file name; its extension is preserved.
    """
    if not segments:
        return segments

    *folders, file_name = segments
    stem, dot, ext = file_name.rpartition(".")
    if not dot:
        stem, ext = file_name, ""

    if blog:
        folders = [split_blog_slug(f) for f in folders]
        stem = split_blog_slug(stem)
    else:
        folders = [remove_number_prefix(f) for f in folders]
        stem = remove_number_prefix(stem)

    return folders + [stem + dot + ext]


def rewrite_relative_links(line: str, normalize: Callable[[str], str]) -> str:
    """Apply ``normalize`` to every non-image markdown link target in ``line``."""
    def replace(match: re.Match) -> str:
        text, url = match.group(1), match.group(2)
        return f"[{text}]({normalize(url)})"

    return MARKDOWN_LINK_PATTERN.sub(replace, line)
