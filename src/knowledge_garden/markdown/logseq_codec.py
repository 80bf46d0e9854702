"""Logseq page files: front-matter parsing, emission and entity mapping.

A page file is an optional YAML front-matter block delimited by `---` lines,
followed by the body. The body is kept verbatim so that emitting a parsed page
reproduces the original file.
"""

import copy
import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import PurePosixPath
from typing import Any, Optional

import yaml
from frontmatter import YAMLHandler
from loguru import logger

from knowledge_garden.models.knowledge import LAST_SYNC_PROPERTY, PAGE_PATH_PROPERTY, Entity
from knowledge_garden.utils import compute_checksum

FRONT_MATTER = re.compile(
    r"\A---[ \t]*\r?\n(?P<block>.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE
)
TEMPLATE_PLACEHOLDER = re.compile(r"\{\{\s*\.[A-Za-z]+\s*\}\}")
RESERVED_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*\s]')
NAMESPACE_SEPARATOR = "___"
HEADING = re.compile(r"^#{1,6}\s+")
BULLET = re.compile(r"^\s*[-*+]\s+")

BODY_PROPERTY = "content"

# Front-matter keys mapped onto entity columns rather than the properties bag
FILE_ONLY_KEYS = frozenset({"id", "title", "type", "description"})
# Bookkeeping keys that never take part in content comparison
VOLATILE_KEYS = frozenset({PAGE_PATH_PROPERTY, LAST_SYNC_PROPERTY, BODY_PROPERTY})

JOURNAL_TYPE = "journal"
PAGE_TYPE = "page"
DESCRIPTION_MAX_CHARS = 500


# YAML 1.1 reads `007` as octal, `yes` as a bool and `2024-01-05` as a date.
# Only unambiguous ints, floats and true/false resolve; everything else stays a string.
AMBIGUOUS_TAGS = frozenset(
    {
        "tag:yaml.org,2002:timestamp",
        "tag:yaml.org,2002:int",
        "tag:yaml.org,2002:float",
        "tag:yaml.org,2002:bool",
    }
)
STRICT_RESOLVERS = [
    ("tag:yaml.org,2002:bool", re.compile(r"^(?:true|True|TRUE|false|False|FALSE)$"), "tTfF"),
    ("tag:yaml.org,2002:int", re.compile(r"^[-+]?(?:0|[1-9][0-9]*)$"), "-+0123456789"),
    (
        "tag:yaml.org,2002:float",
        re.compile(r"^[-+]?(?:[0-9]+\.[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?$"),
        "-+0123456789.",
    ),
]


class FrontMatterLoader(yaml.SafeLoader):
    """SafeLoader that keeps dates and ambiguous YAML 1.1 scalars as strings."""


class FrontMatterDumper(yaml.SafeDumper):
    """SafeDumper that writes date-like strings plain and multi-line strings as blocks."""


for _cls in (FrontMatterLoader, FrontMatterDumper):
    _cls.yaml_implicit_resolvers = {
        first: [(tag, regexp) for tag, regexp in resolvers if tag not in AMBIGUOUS_TAGS]
        for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }
    for _tag, _regexp, _first in STRICT_RESOLVERS:
        _cls.add_implicit_resolver(_tag, _regexp, list(_first))


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    if "\n" in value:
        return dumper.represent_scalar("tag:yaml.org,2002:str", value, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", value)


def _represent_none(dumper: yaml.SafeDumper, value: None) -> yaml.ScalarNode:
    return dumper.represent_scalar("tag:yaml.org,2002:null", "")


FrontMatterDumper.add_representer(str, _represent_str)
FrontMatterDumper.add_representer(type(None), _represent_none)


class LogseqYAMLHandler(YAMLHandler):
    """python-frontmatter YAML handler bound to the Logseq loader and dumper."""

    def load(self, fm: str, **kwargs: object) -> Any:
        kwargs.setdefault("Loader", FrontMatterLoader)
        return super().load(fm, **kwargs)

    def export(self, metadata: dict[str, object], **kwargs: object) -> str:
        kwargs.setdefault("Dumper", FrontMatterDumper)
        kwargs.setdefault("sort_keys", False)
        kwargs.setdefault("width", float("inf"))
        return super().export(metadata, **kwargs)


yaml_handler = LogseqYAMLHandler()


@dataclass
class LogseqPage:
    """One page file as read from, or about to be written to, the graph."""

    page_path: str
    properties: dict[str, Any] = field(default_factory=dict)
    body: str = ""
    last_modified: Optional[datetime] = None
    # An empty `---`/`---` block is kept so it survives a round trip
    has_front_matter: bool = False
    # Front-matter exactly as read, reused by emit while properties are unchanged
    front_matter_text: Optional[str] = field(default=None, repr=False, compare=False)
    loaded_properties: Optional[dict[str, Any]] = field(default=None, repr=False, compare=False)

    @property
    def entity_id(self) -> Optional[str]:
        """Front-matter id in canonical UUID form, or None when absent or invalid."""
        value = self.properties.get("id")
        if value is None:
            return None
        try:
            return str(uuid.UUID(str(value).strip()))
        except ValueError:
            return None

    @property
    def last_sync_at(self) -> Optional[str]:
        value = self.properties.get(LAST_SYNC_PROPERTY)
        return str(value) if value else None


def parse(text: str, page_path: str, last_modified: Optional[datetime] = None) -> LogseqPage:
    """Split a page file into front-matter properties and body.

    Keys are lowercased. A block that is not valid YAML, or that is not a
    mapping, is not front-matter: the whole text becomes the body.
    """
    match = FRONT_MATTER.match(text)
    if match is None:
        return LogseqPage(page_path=page_path, body=text, last_modified=last_modified)

    try:
        metadata = yaml_handler.load(match.group("block"))
    except yaml.YAMLError as e:
        logger.warning(f"Invalid front-matter, treating page as plain markdown: {page_path}: {e}")
        return LogseqPage(page_path=page_path, body=text, last_modified=last_modified)

    if metadata is None:
        metadata = {}
    if not isinstance(metadata, dict):
        logger.warning(f"Front-matter is not a mapping, treating page as plain text: {page_path}")
        return LogseqPage(page_path=page_path, body=text, last_modified=last_modified)

    properties = {str(key).lower(): value for key, value in metadata.items()}
    return LogseqPage(
        page_path=page_path,
        properties=properties,
        body=text[match.end() :],
        last_modified=last_modified,
        has_front_matter=True,
        front_matter_text=text[: match.end()],
        loaded_properties=copy.deepcopy(properties),
    )


def emit(page: LogseqPage) -> str:
    """Render a page back to file text.

    A parsed page whose properties were not changed keeps its original
    front-matter bytes. Otherwise the block is dumped from the properties.
    """
    if page.front_matter_text is not None and page.properties == page.loaded_properties:
        return page.front_matter_text + page.body
    if not page.properties and not page.has_front_matter:
        return page.body
    block = yaml_handler.export(page.properties) if page.properties else ""
    block = f"{block}\n" if block else ""
    return f"---\n{block}---\n{page.body}"


def contains_template_placeholders(text: str) -> bool:
    """True for files that still hold unrendered `{{ .Field }}` template markers."""
    return TEMPLATE_PLACEHOLDER.search(text) is not None


def sanitize_filename(name: str) -> str:
    """Logseq-style file stem for a page name.

    Namespaces (`a/b`) become `a___b`; reserved characters and whitespace
    become `_`; the result is lowercased.
    """
    stem = NAMESPACE_SEPARATOR.join(
        RESERVED_FILENAME_CHARS.sub("_", part.strip()) for part in name.split("/")
    )
    return stem.lower().strip(".") or "untitled"


def page_name(page_path: str, properties: Optional[dict[str, Any]] = None) -> str:
    title = (properties or {}).get("title")
    if title is not None and str(title).strip():
        return str(title).strip()
    return PurePosixPath(page_path).stem.replace(NAMESPACE_SEPARATOR, "/")


def default_type(page_path: str) -> str:
    return JOURNAL_TYPE if page_path.startswith("journals/") else PAGE_TYPE


def extract_description(body: str) -> Optional[str]:
    """First prose paragraph of a body, skipping an optional leading heading."""
    lines = body.splitlines()
    index = 0
    while index < len(lines) and not lines[index].strip():
        index += 1
    if index < len(lines) and HEADING.match(lines[index]):
        index += 1

    paragraph: list[str] = []
    for line in lines[index:]:
        stripped = line.strip()
        if not stripped:
            if paragraph:
                break
            continue
        if HEADING.match(stripped):
            if paragraph:
                break
            continue
        paragraph.append(BULLET.sub("", stripped))

    text = " ".join(part for part in paragraph if part).strip()
    if not text:
        return None
    return text[:DESCRIPTION_MAX_CHARS]


def _custom_properties(properties: dict[str, Any], excluded: frozenset[str]) -> dict[str, Any]:
    return {k: v for k, v in properties.items() if k not in excluded}


def entity_fields_from_page(page: LogseqPage) -> dict[str, Any]:
    """Entity column values and properties bag described by a page.

    The bag holds every custom front-matter key, the body under `content` and
    the page's own path under `page_path`.
    """
    description = page.properties.get("description")
    description = str(description) if description not in (None, "") else None
    properties = _custom_properties(page.properties, FILE_ONLY_KEYS | VOLATILE_KEYS)
    properties[BODY_PROPERTY] = page.body
    properties[PAGE_PATH_PROPERTY] = page.page_path
    entity_type = page.properties.get("type")
    return {
        "name": page_name(page.page_path, page.properties),
        "type": str(entity_type).strip() if entity_type else default_type(page.page_path),
        "description": description or extract_description(page.body),
        "properties": properties,
    }


def default_body(entity: Entity) -> str:
    body = f"# {entity.name}\n"
    if entity.description:
        body += f"\n{entity.description}\n"
    return body


def page_from_entity(
    entity: Entity, page_path: str, last_sync_at: Optional[str] = None
) -> LogseqPage:
    """Build the page that represents entity at page_path.

    Key order is fixed (id, title, type, description, custom keys sorted,
    page_path, last_sync_at) so repeated emission is stable.
    """
    stored = dict(entity.properties or {})
    body = stored.get(BODY_PROPERTY)
    if not isinstance(body, str):
        body = default_body(entity)

    properties: dict[str, Any] = {"id": entity.entity_id}
    if page_name(page_path) != entity.name:
        properties["title"] = entity.name
    properties["type"] = entity.type
    if entity.description:
        properties["description"] = entity.description
    custom = _custom_properties(stored, FILE_ONLY_KEYS | VOLATILE_KEYS)
    for key in sorted(custom):
        properties[key] = custom[key]
    properties[PAGE_PATH_PROPERTY] = page_path
    sync_marker = last_sync_at or stored.get(LAST_SYNC_PROPERTY)
    if sync_marker:
        properties[LAST_SYNC_PROPERTY] = sync_marker

    return LogseqPage(page_path=page_path, properties=properties, body=body, has_front_matter=True)


def _fingerprint(
    name: str, entity_type: str, description: Optional[str], properties: dict, body: str
) -> str:
    payload = json.dumps(
        {
            "name": name,
            "type": entity_type,
            "description": description,
            "properties": properties,
            "body": body.rstrip(),
        },
        sort_keys=True,
        default=str,
        ensure_ascii=False,
    )
    return compute_checksum(payload)


def page_fingerprint(page: LogseqPage) -> str:
    """Content hash of a page, comparable with entity_fingerprint."""
    fields = entity_fields_from_page(page)
    return _fingerprint(
        fields["name"],
        fields["type"],
        fields["description"],
        _custom_properties(fields["properties"], VOLATILE_KEYS),
        page.body,
    )


def entity_fingerprint(entity: Entity) -> str:
    """Content hash of the page an entity would produce.

    A missing description counts as the one the body would yield, so an entity
    whose description was never set does not differ from its own file.
    """
    stored = dict(entity.properties or {})
    body = stored.get(BODY_PROPERTY)
    if not isinstance(body, str):
        body = default_body(entity)
    return _fingerprint(
        entity.name,
        entity.type,
        entity.description or extract_description(body),
        _custom_properties(stored, VOLATILE_KEYS | FILE_ONLY_KEYS),
        body,
    )
