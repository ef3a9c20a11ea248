"""
Schema classifier.

Recognizes which supported metadata schema a file's content belongs to and
extracts the document's own identifier and, when present, its embedded
last-modified timestamp.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Dict, List, Optional, Tuple

from .errors import InvalidContentError, MissingIdentityError, UnsupportedSchemaError
from .models import ClassifiedDocument

logger = logging.getLogger(__name__)

GCO = "http://www.isotc211.org/2005/gco"
GMD = "http://www.isotc211.org/2005/gmd"
MDB = "http://standards.iso.org/iso/19115/-3/mdb/2.0"
MCC = "http://standards.iso.org/iso/19115/-3/mcc/1.0"
CIT = "http://standards.iso.org/iso/19115/-3/cit/2.0"
GCO3 = "http://standards.iso.org/iso/19115/-3/gco/1.0"
DC = "http://purl.org/dc/elements/1.1/"
DCT = "http://purl.org/dc/terms/"


@dataclass(frozen=True)
class SchemaDefinition:
    """How to recognize a schema and where its identity/timestamp live.

    Paths are ElementTree paths relative to the root element, using the
    prefixes declared in ``namespaces``. The first path yielding non-blank
    text wins.
    """

    schema_id: str
    root_tag: str
    identity_paths: Tuple[str, ...]
    modified_paths: Tuple[str, ...] = ()
    namespaces: Dict[str, str] = field(default_factory=dict)

    def matches(self, root: ET.Element) -> bool:
        return root.tag == self.root_tag

    def find_text(self, root: ET.Element, paths: Tuple[str, ...]) -> Optional[str]:
        for path in paths:
            text = root.findtext(path, namespaces=self.namespaces)
            if text and text.strip():
                return text.strip()
        return None


SCHEMAS: List[SchemaDefinition] = [
    SchemaDefinition(
        schema_id="iso19139",
        root_tag=f"{{{GMD}}}MD_Metadata",
        identity_paths=("gmd:fileIdentifier/gco:CharacterString",),
        modified_paths=("gmd:dateStamp/gco:DateTime", "gmd:dateStamp/gco:Date"),
        namespaces={"gmd": GMD, "gco": GCO},
    ),
    SchemaDefinition(
        schema_id="iso19115-3.2018",
        root_tag=f"{{{MDB}}}MD_Metadata",
        identity_paths=(
            "mdb:metadataIdentifier/mcc:MD_Identifier/mcc:code/gco:CharacterString",
        ),
        modified_paths=(
            "mdb:dateInfo/cit:CI_Date/cit:date/gco:DateTime",
            "mdb:dateInfo/cit:CI_Date/cit:date/gco:Date",
        ),
        namespaces={"mdb": MDB, "mcc": MCC, "cit": CIT, "gco": GCO3},
    ),
    SchemaDefinition(
        schema_id="dublin-core",
        root_tag="simpledc",
        identity_paths=("dc:identifier",),
        modified_paths=("dct:modified", "dc:date"),
        namespaces={"dc": DC, "dct": DCT},
    ),
]


def register_schema(definition: SchemaDefinition) -> None:
    """Add a schema; later registrations take precedence on equal root tags."""
    SCHEMAS.insert(0, definition)
    logger.debug(f"Registered schema: {definition.schema_id}")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date or date-time. Naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        try:
            parsed = datetime.combine(date.fromisoformat(value[:10]), time())
        except ValueError:
            logger.debug(f"Unparseable timestamp: {value!r}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def detect_schema(root: ET.Element) -> Optional[SchemaDefinition]:
    for definition in SCHEMAS:
        if definition.matches(root):
            return definition
    return None


def classify(data: bytes) -> ClassifiedDocument:
    """Classify raw file content.

    Raises:
        InvalidContentError: content is not well-formed XML.
        UnsupportedSchemaError: root element matches no supported schema.
        MissingIdentityError: the document carries no identifier.
    """
    try:
        root = ET.fromstring(data)
    except (ET.ParseError, ValueError) as e:
        raise InvalidContentError(f"Not well-formed XML: {e}") from e

    definition = detect_schema(root)
    if definition is None:
        raise UnsupportedSchemaError(f"Unsupported schema (root element {root.tag})")

    uuid = definition.find_text(root, definition.identity_paths)
    if not uuid:
        raise MissingIdentityError(
            f"No identifier found in {definition.schema_id} document"
        )

    modified = parse_timestamp(definition.find_text(root, definition.modified_paths))

    return ClassifiedDocument(
        schema_id=definition.schema_id,
        uuid=uuid,
        root=root,
        data=data,
        modified=modified,
    )
