"""
Tests for schema detection and identity extraction.
"""

import xml.etree.ElementTree as ET
from datetime import datetime, timezone

import pytest

from catalogworker.harvester import classifier
from catalogworker.harvester.classifier import (
    SchemaDefinition,
    classify,
    detect_schema,
    parse_timestamp,
    register_schema,
)
from catalogworker.harvester.errors import (
    InvalidContentError,
    MissingIdentityError,
    RejectedDocument,
    UnsupportedSchemaError,
)

from conftest import UNKNOWN_SCHEMA, dc_doc, iso_doc

ISO19115_3 = """<?xml version="1.0" encoding="UTF-8"?>
<mdb:MD_Metadata xmlns:mdb="http://standards.iso.org/iso/19115/-3/mdb/2.0"
                 xmlns:mcc="http://standards.iso.org/iso/19115/-3/mcc/1.0"
                 xmlns:cit="http://standards.iso.org/iso/19115/-3/cit/2.0"
                 xmlns:gco="http://standards.iso.org/iso/19115/-3/gco/1.0">
  <mdb:metadataIdentifier>
    <mcc:MD_Identifier>
      <mcc:code><gco:CharacterString>iso3-uuid</gco:CharacterString></mcc:code>
    </mcc:MD_Identifier>
  </mdb:metadataIdentifier>
  <mdb:dateInfo>
    <cit:CI_Date>
      <cit:date><gco:DateTime>2023-06-15T08:30:00</gco:DateTime></cit:date>
    </cit:CI_Date>
  </mdb:dateInfo>
</mdb:MD_Metadata>
"""


class TestClassify:
    """Test classification of supported schemas."""

    def test_iso19139(self):
        doc = classify(iso_doc("abc-123", date="2024-02-03T04:05:06Z").encode())

        assert doc.schema_id == "iso19139"
        assert doc.uuid == "abc-123"
        assert doc.modified == datetime(2024, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
        assert doc.root.tag.endswith("MD_Metadata")

    def test_iso19115_3(self):
        doc = classify(ISO19115_3.encode())

        assert doc.schema_id == "iso19115-3.2018"
        assert doc.uuid == "iso3-uuid"
        assert doc.modified == datetime(2023, 6, 15, 8, 30, tzinfo=timezone.utc)

    def test_dublin_core(self):
        doc = classify(dc_doc("dc-1", date="2022-12-31").encode())

        assert doc.schema_id == "dublin-core"
        assert doc.uuid == "dc-1"
        assert doc.modified == datetime(2022, 12, 31, tzinfo=timezone.utc)

    def test_raw_content_kept(self):
        data = iso_doc("abc").encode()
        assert classify(data).data == data

    def test_identity_whitespace_trimmed(self):
        doc = classify(iso_doc("  padded-id \n").encode())
        assert doc.uuid == "padded-id"

    def test_document_without_timestamp(self):
        data = b"""<simpledc xmlns:dc="http://purl.org/dc/elements/1.1/">
            <dc:identifier>no-date</dc:identifier></simpledc>"""

        doc = classify(data)

        assert doc.uuid == "no-date"
        assert doc.modified is None


class TestRejections:
    """Test content the classifier refuses."""

    @pytest.mark.parametrize("data", [b"", b"not xml at all", b"<open><unclosed></open>"])
    def test_invalid_content(self, data):
        with pytest.raises(InvalidContentError):
            classify(data)

    def test_unsupported_schema(self):
        with pytest.raises(UnsupportedSchemaError):
            classify(UNKNOWN_SCHEMA.encode())

    def test_missing_identity(self):
        data = b"""<gmd:MD_Metadata xmlns:gmd="http://www.isotc211.org/2005/gmd"/>"""
        with pytest.raises(MissingIdentityError):
            classify(data)

    def test_blank_identity(self):
        with pytest.raises(MissingIdentityError):
            classify(iso_doc("   ").encode())

    def test_rejections_share_base(self):
        for error in (InvalidContentError, UnsupportedSchemaError, MissingIdentityError):
            assert issubclass(error, RejectedDocument)


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_datetime_with_offset(self):
        assert parse_timestamp("2024-01-01T10:00:00+02:00") == datetime(
            2024, 1, 1, 8, 0, tzinfo=timezone.utc
        )

    def test_naive_taken_as_utc(self):
        assert parse_timestamp("2024-01-01T10:00:00") == datetime(
            2024, 1, 1, 10, 0, tzinfo=timezone.utc
        )

    def test_date_only(self):
        assert parse_timestamp("2024-05-06") == datetime(2024, 5, 6, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_unparseable(self, value):
        assert parse_timestamp(value) is None


class TestSchemaRegistry:
    """Test adding schemas at runtime."""

    def test_register_schema(self, monkeypatch):
        monkeypatch.setattr(classifier, "SCHEMAS", list(classifier.SCHEMAS))
        register_schema(
            SchemaDefinition(
                schema_id="inventory",
                root_tag="inventory",
                identity_paths=("item",),
            )
        )

        doc = classify(UNKNOWN_SCHEMA.encode())

        assert doc.schema_id == "inventory"
        assert doc.uuid == "not a metadata record"

    def test_detect_schema_unknown(self):
        assert detect_schema(ET.fromstring("<other/>")) is None
