"""Tests for link and callout transforms."""

import pytest

from obsidian_docusaurus.core.models import UnsupportedCalloutError
from obsidian_docusaurus.transforms.callouts import (
    IDLE,
    BlockState,
    CalloutMachine,
    finish,
    parse_callout_start,
    transition,
)
from obsidian_docusaurus.transforms.links import (
    default_blog_predicate,
    is_external,
    normalize_link_path,
    normalize_target_segments,
    remove_number_prefix,
    rewrite_relative_links,
    split_blog_slug,
)


def run_machine(lines):
    machine = CalloutMachine()
    output = []
    for line in lines:
        output.extend(machine.feed(line))
    output.extend(machine.close())
    return "\n".join(output) + "\n"


class TestRemoveNumberPrefix:
    """Tests for ordering prefix removal."""

    def test_hyphen_prefix(self):
        assert remove_number_prefix("02-guide") == "guide"

    def test_dot_space_prefix(self):
        assert remove_number_prefix("1. Intro") == "Intro"

    def test_parenthesis_prefix(self):
        assert remove_number_prefix("1) Intro") == "Intro"

    def test_encoded_space_prefix(self):
        assert remove_number_prefix("01%20Intro") == "Intro"

    def test_digits_only_kept(self):
        assert remove_number_prefix("2023") == "2023"

    def test_no_prefix(self):
        assert remove_number_prefix("guide") == "guide"


class TestHelpers:
    def test_split_blog_slug(self):
        assert split_blog_slug("2023-01-15-release") == "2023/01/15/release"

    def test_is_external(self):
        assert is_external("https://example.com")
        assert is_external("mailto:someone@example.com")
        assert not is_external("docs/intro.md")
        assert not is_external("/docs/intro")

    def test_default_blog_predicate(self):
        predicate = default_blog_predicate()
        assert predicate("blog")
        assert predicate("posts__blog")
        assert not predicate("docs")


class TestNormalizeLinkPath:
    """Tests for relative link normalization."""

    def test_strips_prefixes_and_extension(self):
        assert normalize_link_path("02-guide/03-intro.md") == "/guide/intro"

    def test_external_unchanged(self):
        assert normalize_link_path("https://example.com/a/b") == "https://example.com/a/b"

    def test_absolute_unchanged(self):
        assert normalize_link_path("/assets/x.webp") == "/assets/x.webp"

    def test_anchor_only_unchanged(self):
        assert normalize_link_path("#section") == "#section"

    def test_single_segment_unchanged(self):
        assert normalize_link_path("intro.md") == "intro.md"

    def test_anchor_lowercased(self):
        result = normalize_link_path("docs/01-guide/02-setup.md#Getting%20Started")
        assert result == "/docs/guide/setup#getting-started"

    def test_blog_date_split(self):
        assert normalize_link_path("blog/2023-01-15-release.md") == "/blog/2023/01/15/release"

    def test_multi_blog_flatten(self):
        result = normalize_link_path("posts__blog/2023-01-my+/01-part-one.md")
        assert result == "/posts/2023/01/my"

    def test_multi_blog_plus_inside_name_is_not_flatten(self):
        result = normalize_link_path("posts__blog/2023-01-my+post/01-part-one.md")
        assert result == "/posts/2023-01-my+post/01/part/one"

    def test_docs_flatten(self):
        assert normalize_link_path("docs/02-guide+/03-intro.md") == "/docs/guide"

    def test_custom_blog_predicate(self):
        result = normalize_link_path("news/2024-02-launch.md", is_blog=lambda name: name == "news")
        assert result == "/news/2024/02/launch"


class TestNormalizeTargetSegments:
    def test_docs_segments(self):
        assert normalize_target_segments(["02-guide", "03-intro.md"], False) == ["guide", "intro.md"]

    def test_blog_segments(self):
        assert normalize_target_segments(["2023-01-15-post.md"], True) == ["2023/01/15/post.md"]

    def test_empty(self):
        assert normalize_target_segments([], False) == []


class TestRewriteRelativeLinks:
    def test_images_are_skipped(self):
        line = "See [x](02-guide/03-intro.md) and ![img](a/b.png)"
        result = rewrite_relative_links(line, normalize_link_path)
        assert result == "See [x](/guide/intro) and ![img](a/b.png)"

    def test_multiple_links(self):
        line = "[a](docs/01-a.md), [b](docs/02-b.md)"
        result = rewrite_relative_links(line, normalize_link_path)
        assert result == "[a](/docs/a), [b](/docs/b)"


class TestParseCalloutStart:
    def test_callout_with_title(self):
        state = parse_callout_start("> [!warning] Careful")
        assert state.block is BlockState.IN_CALLOUT
        assert state.type == "warning"
        assert state.title == "Careful"
        assert state.offset == 2

    def test_quote(self):
        state = parse_callout_start("> [!quote] Einstein")
        assert state.block is BlockState.IN_QUOTE
        assert state.title == "Einstein"

    def test_plain_blockquote(self):
        assert parse_callout_start("> just a quote") is None

    def test_empty_type(self):
        assert parse_callout_start("> [!] nothing") is None


class TestCalloutMachine:
    """Tests for the callout state machine."""

    def test_callout_to_admonition(self):
        result = run_machine(["> [!warning] Careful", "> body text", ""])
        assert result == ":::warning Careful\nbody text\n:::\n"

    def test_callout_without_title(self):
        result = run_machine(["> [!note]", "> body", ""])
        assert result == ":::note\nbody\n:::\n"

    def test_offset_without_space(self):
        result = run_machine([">[!tip] Hint", ">text", ""])
        assert result == ":::tip Hint\ntext\n:::\n"

    def test_quote_attribution(self):
        result = run_machine(["> [!quote] Einstein", "> Imagination is everything.", ""])
        assert result == "\n> Imagination is everything.\n>\n> — Einstein\n\n"

    def test_quote_without_title(self):
        result = run_machine(["> [!quote]", "> Anonymous wisdom.", ""])
        assert result == "\n> Anonymous wisdom.\n\n"

    def test_plain_lines_pass_through(self):
        result = run_machine(["# Title", "> just a quote", "text"])
        assert result == "# Title\n> just a quote\ntext\n"

    def test_unterminated_block_closed(self):
        result = run_machine(["> [!info] Open", "> still open"])
        assert result == ":::info Open\nstill open\n:::\n"

    def test_nested_callout_raises(self):
        state, _ = transition(IDLE, "> [!note] Outer")
        with pytest.raises(UnsupportedCalloutError):
            transition(state, "> [!warning] Inner")

    def test_blank_line_returns_to_idle(self):
        state, _ = transition(IDLE, "> [!note] Outer")
        state, emitted = transition(state, "")
        assert state == IDLE
        assert emitted == [":::"]

    def test_finish_idle(self):
        assert finish(IDLE) == []
