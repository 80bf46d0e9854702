"""Parser for [[Name]] and [[Name|Display text]] entity references."""

import re
from dataclasses import dataclass

# Neither part may contain brackets, so nested or unterminated openers never match
REFERENCE = re.compile(r"\[\[([^\[\]|]*)(?:\|([^\[\]]*))?\]\]")


@dataclass(frozen=True)
class ParsedReference:
    original: str
    entity_name: str
    display_text: str
    # Zero-based byte offset of original within the UTF-8 encoded content
    position: int


def parse_entity_references(content: str) -> list[ParsedReference]:
    """Return every well-formed reference in content, in document order.

    Names and display texts are trimmed; a reference with an empty name is
    skipped and an empty display text falls back to the name.
    """
    references: list[ParsedReference] = []
    char_offset = 0
    byte_offset = 0
    for match in REFERENCE.finditer(content or ""):
        byte_offset += len(content[char_offset : match.start()].encode("utf-8"))
        char_offset = match.start()

        name = match.group(1).strip()
        if not name:
            continue
        display = (match.group(2) or "").strip() or name
        references.append(
            ParsedReference(
                original=match.group(0),
                entity_name=name,
                display_text=display,
                position=byte_offset,
            )
        )
    return references
