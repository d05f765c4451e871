"""Parser for uploaded source documents.

Handles:
- UTF-8 decoding of uploaded bytes
- YAML frontmatter parsing (fields become metadata attributes)
- Heading hierarchy extraction for per-chunk context
"""
import re
from typing import Dict, List, Any, Tuple
from dataclasses import dataclass
import yaml
import structlog

from proofrag.errors import InputError

logger = structlog.get_logger()


@dataclass
class Heading:
    """Represents a markdown heading with hierarchy."""

    level: int  # 1-6 for h1-h6
    text: str
    char_position: int


@dataclass
class ParsedDocument:
    """Decoded upload with frontmatter split off."""

    filename: str
    text: str
    frontmatter: Dict[str, Any]
    headings: List[Heading]


class DocumentParser:
    """Parser for plain text and markdown uploads."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(
        r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL
    )

    # Regex for markdown headings
    HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)$", re.MULTILINE)

    def parse_bytes(self, filename: str, data: bytes) -> ParsedDocument:
        """Decode an uploaded file and extract frontmatter and headings.

        Args:
            filename: Name of the uploaded file
            data: Raw file contents

        Returns:
            ParsedDocument whose ``text`` excludes the frontmatter block

        Raises:
            InputError: If the file is not valid UTF-8
        """
        try:
            content = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            logger.error("document_encoding_error", filename=filename, error=str(e))
            raise InputError(f"File {filename!r} is not valid UTF-8 text") from e

        return self.parse_text(filename, content)

    def parse_text(self, filename: str, content: str) -> ParsedDocument:
        content = content.replace("\r\n", "\n")
        frontmatter, text = self._parse_frontmatter(content)
        headings = self._extract_headings(text)

        logger.info(
            "document_parsed",
            filename=filename,
            has_frontmatter=bool(frontmatter),
            heading_count=len(headings),
            content_length=len(text),
        )

        return ParsedDocument(
            filename=filename,
            text=text,
            frontmatter=frontmatter,
            headings=headings,
        )

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from document content.

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            return {}, content

        if not isinstance(frontmatter, dict):
            # Not a mapping, so treat the block as ordinary text
            return {}, content

        return _json_safe(frontmatter), content[match.end():]

    def _extract_headings(self, content: str) -> List[Heading]:
        return [
            Heading(
                level=len(match.group(1)),
                text=match.group(2).strip(),
                char_position=match.start(),
            )
            for match in self.HEADING_PATTERN.finditer(content)
        ]

    def get_heading_context(self, headings: List[Heading], char_position: int) -> str:
        """Get hierarchical heading context for a given character position.

        Returns:
            Heading context string like "# Main > ## Sub > ### Detail"
        """
        context_stack: List[Heading] = []

        for heading in headings:
            if heading.char_position >= char_position:
                break
            # Pop headings at same or deeper level
            while context_stack and context_stack[-1].level >= heading.level:
                context_stack.pop()
            context_stack.append(heading)

        return " > ".join(f"{'#' * h.level} {h.text}" for h in context_stack)


def _json_safe(value: Any) -> Any:
    """Convert YAML values (dates, nested structures) to JSON-storable ones."""
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
