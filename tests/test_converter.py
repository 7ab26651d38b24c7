"""Tests for the per-entry package converter."""

import pytest

from qti_convert.classifier import DocumentKind
from qti_convert.config import Settings
from qti_convert.converter import PackageConverter
from qti_convert.errors import ConversionFailure
from qti_convert.manifest import CP_QTI3_NS, ITEM_RESOURCE_TYPE, parse_resources
from qti_convert.xml_document import XmlDocument, local_name

from conftest import ITEM_21, MANIFEST_21, PNG_BYTES, QTI3_NS, TEST_21, qti3_item


@pytest.fixture
def settings() -> Settings:
    """Default settings for testing."""
    return Settings.default()


@pytest.fixture
def converter(settings: Settings) -> PackageConverter:
    return PackageConverter(settings)


class TestConvertEntry:
    """Tests for PackageConverter.convert_entry."""

    def test_item_is_converted_and_fixed_up(self, converter: PackageConverter) -> None:
        entry = converter.convert_entry("items/a.xml", ITEM_21)

        assert entry.kind is DocumentKind.ITEM
        doc = XmlDocument.parse(entry.content)
        assert doc.root.tag == f"{{{QTI3_NS}}}qti-assessment-item"
        assert doc.find("object") is None
        assert doc.find("img").get("src") == "../img/logo.png"
        assert doc.find("qti-choice-interaction").get("min-choices") == "1"
        assert doc.find("qti-outcome-declaration").get("external-scored") == "human"

    def test_test_is_converted(self, converter: PackageConverter) -> None:
        entry = converter.convert_entry("tests/test.xml", TEST_21)

        assert entry.kind is DocumentKind.TEST
        assert entry.document is not None
        assert local_name(entry.document.root) == "qti-assessment-test"

    def test_manifest_is_normalized(self, converter: PackageConverter) -> None:
        entry = converter.convert_entry("imsmanifest.xml", MANIFEST_21)

        assert entry.kind is DocumentKind.MANIFEST
        doc = XmlDocument.parse(entry.content)
        assert doc.root.tag == f"{{{CP_QTI3_NS}}}manifest"
        assert parse_resources(doc)[1].type == ITEM_RESOURCE_TYPE

    def test_binary_passes_through(self, converter: PackageConverter) -> None:
        entry = converter.convert_entry("img/logo.png", PNG_BYTES)

        assert entry.kind is DocumentKind.OTHER
        assert entry.content is PNG_BYTES

    def test_other_xml_passes_through(self, converter: PackageConverter) -> None:
        content = b"<?xml version='1.0'?><catalog><entry/></catalog>"

        entry = converter.convert_entry("data/catalog.xml", content)

        assert entry.kind is DocumentKind.OTHER
        assert entry.content is content

    def test_qti3_item_left_alone_by_default(self, converter: PackageConverter) -> None:
        content = qti3_item('<object type="image/png" data="a.png">A</object>')

        entry = converter.convert_entry("items/b.xml", content)

        assert entry.kind is DocumentKind.ITEM
        assert XmlDocument.parse(entry.content).find("object") is not None

    def test_qti3_item_transformed_when_configured(self, settings: Settings) -> None:
        settings.conversion.always_transform_items = True
        content = qti3_item('<object type="image/png" data="a.png">A</object>')

        entry = PackageConverter(settings).convert_entry("items/b.xml", content)

        assert XmlDocument.parse(entry.content).find("img") is not None

    def test_malformed_xml_fails(self, converter: PackageConverter) -> None:
        with pytest.raises(ConversionFailure) as exc_info:
            converter.convert_entry("items/bad.xml", "<assessmentItem><itemBody></assessmentItem>")

        assert "items/bad.xml" in str(exc_info.value)


class TestPackageConverter:
    """Tests for whole-package conversion."""

    def test_convert_all_entries(
        self, converter: PackageConverter, package_entries: dict
    ) -> None:
        working_set = converter.convert(package_entries.items())

        assert len(working_set) == 4
        assert [e.path for e in working_set.of_kind(DocumentKind.TEST)] == ["tests/test.xml"]
        assert [e.path for e in working_set.of_kind(DocumentKind.ITEM)] == ["items/a.xml"]
        assert working_set.manifest.path == "imsmanifest.xml"

    def test_one_bad_entry_aborts(self, converter: PackageConverter, package_entries: dict) -> None:
        """A failing entry aborts the whole conversion."""
        package_entries["items/bad.xml"] = "<assessmentItem>"

        with pytest.raises(ConversionFailure):
            converter.convert(package_entries.items())

    def test_unknown_pipeline_step(self, settings: Settings) -> None:
        settings.conversion.item_pipeline = ["object_to_img", "no_such_step"]

        with pytest.raises(ValueError, match="no_such_step"):
            PackageConverter(settings)

    def test_reordered_pipeline_rejected(self, settings: Settings) -> None:
        """Configured steps must keep the documented order."""
        settings.conversion.item_pipeline = ["upgrade_pci", "object_to_img"]

        with pytest.raises(ValueError, match="out of order"):
            PackageConverter(settings)

    def test_empty_pipeline_rejected(self, settings: Settings) -> None:
        settings.conversion.item_pipeline = []

        with pytest.raises(ValueError, match="empty"):
            PackageConverter(settings)

    def test_repeated_step_rejected(self, settings: Settings) -> None:
        settings.conversion.item_pipeline = ["object_to_img", "object_to_img"]

        with pytest.raises(ValueError, match="out of order"):
            PackageConverter(settings)

    def test_custom_pipeline(self, settings: Settings) -> None:
        settings.conversion.item_pipeline = ["object_to_img"]

        entry = PackageConverter(settings).convert_entry("items/a.xml", ITEM_21)

        doc = XmlDocument.parse(entry.content)
        assert doc.find("img") is not None
        assert doc.find("qti-choice-interaction").get("min-choices") == "0"

    def test_hooks_can_be_overridden(self, settings: Settings) -> None:
        class MarkingConverter(PackageConverter):
            def convert_test(self, doc):
                doc = super().convert_test(doc)
                doc.root.set("data-marked", "yes")
                return doc

        entry = MarkingConverter(settings).convert_entry("tests/test.xml", TEST_21)

        assert XmlDocument.parse(entry.content).root.get("data-marked") == "yes"
