"""Unit tests for markdown normalization."""
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

from services.markdown_normalizer import normalize_markdown


class TestNormalizeMarkdown:
    """Test suite for normalize_markdown."""

    def test_empty_input(self):
        assert normalize_markdown("") == ""

    def test_heading_becomes_own_paragraph(self):
        assert normalize_markdown("## Installation\nRun the installer.") == "Installation\n\nRun the installer."

    def test_emphasis_is_removed(self):
        text = "This is **bold**, *italic*, __strong__, _em_ and ~~gone~~ text."

        assert normalize_markdown(text) == "This is bold, italic, strong, em and gone text."

    def test_links_keep_their_text(self):
        text = "See [the guide](./guide.md) and ![diagram](img.png) or <https://example.com>."

        assert normalize_markdown(text) == "See the guide and diagram or https://example.com."

    def test_code_fence_markers_removed_but_code_kept(self):
        text = "Install it:\n\n```bash\nnpm install docs-chat\n```\n\nDone."

        assert normalize_markdown(text) == "Install it:\n\nnpm install docs-chat\n\nDone."

    def test_inline_code_unwrapped(self):
        assert normalize_markdown("Call `loadContent()` first.") == "Call loadContent() first."

    def test_lists_and_blockquotes(self):
        text = "> Note: read this\n\n- first item\n- second item\n1. numbered"

        assert normalize_markdown(text) == "Note: read this\n\nfirst item second item numbered"

    def test_whitespace_collapsed_within_paragraphs(self):
        text = "Lots   of\tspace\nacross lines.\n\n\n\nNext paragraph."

        assert normalize_markdown(text) == "Lots of space across lines.\n\nNext paragraph."

    def test_html_and_mdx_noise_removed(self):
        text = (
            "import Tabs from '@theme/Tabs';\n\n"
            "<!-- hidden -->\n"
            "<div class=\"note\">Visible text</div>\n\n"
            ":::tip\nUseful hint\n:::"
        )

        assert normalize_markdown(text) == "Visible text\n\nUseful hint"

    def test_tables_become_plain_cells(self):
        text = "| Name | Value |\n| --- | --- |\n| topK | 3 |"

        assert normalize_markdown(text) == "Name Value\n\ntopK 3"

    def test_horizontal_rule_splits_paragraphs(self):
        assert normalize_markdown("Above\n---\nBelow") == "Above\n\nBelow"

    def test_deterministic(self):
        text = "# Title\n\nSome *markdown* with [links](x.md)."

        assert normalize_markdown(text) == normalize_markdown(text)
