"""Tests for upload decoding and frontmatter parsing."""
import pytest

from proofrag.errors import InputError
from proofrag.rag.document_parser import DocumentParser


@pytest.fixture
def parser():
    return DocumentParser()


class TestDocumentParser:

    def test_frontmatter_becomes_attributes(self, parser):
        doc = parser.parse_bytes(
            "ns.md",
            b"---\nprotocol: otway-rees\nreviewed: 2024-03-01\n---\n# Otway-Rees\nBody\n",
        )

        assert doc.frontmatter == {"protocol": "otway-rees", "reviewed": "2024-03-01"}
        assert doc.text == "# Otway-Rees\nBody\n"

    def test_plain_text_has_no_frontmatter(self, parser):
        doc = parser.parse_bytes("plain.txt", b"Just text")

        assert doc.frontmatter == {}
        assert doc.text == "Just text"
        assert doc.headings == []

    def test_non_mapping_frontmatter_is_left_as_text(self, parser):
        content = "---\n- one\n- two\n---\nBody\n"

        doc = parser.parse_text("list.md", content)

        assert doc.frontmatter == {}
        assert doc.text == content

    def test_invalid_yaml_is_left_as_text(self, parser):
        content = "---\nkey: [unclosed\n---\nBody\n"

        assert parser.parse_text("bad.md", content).text == content

    def test_bom_and_crlf_are_normalized(self, parser):
        doc = parser.parse_bytes("win.md", "\ufeff# Title\r\nBody\r\n".encode("utf-8"))

        assert doc.text == "# Title\nBody\n"

    def test_rejects_non_utf8(self, parser):
        with pytest.raises(InputError, match="latin.txt"):
            parser.parse_bytes("latin.txt", "café".encode("latin-1"))

    def test_heading_context(self, parser):
        text = "# Protocol\nintro\n## Messages\nmsg\n### Step 1\nstep\n## Analysis\nbody\n"
        doc = parser.parse_text("ns.md", text)

        assert parser.get_heading_context(doc.headings, text.index("step\n")) == (
            "# Protocol > ## Messages > ### Step 1"
        )
        assert parser.get_heading_context(doc.headings, text.index("body")) == (
            "# Protocol > ## Analysis"
        )
        assert parser.get_heading_context(doc.headings, 0) == ""
