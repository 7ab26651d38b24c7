"""Per-entry conversion of a QTI 2.x package into QTI 3.0."""

from __future__ import annotations

import logging
from typing import Iterable

from lxml import etree

from qti_convert.classifier import DocumentClassifier, DocumentKind
from qti_convert.config import Settings
from qti_convert.errors import ConversionFailure
from qti_convert.manifest import convert_manifest
from qti_convert.package import PackageEntry, WorkingSet
from qti_convert.structural import StructuralConverter
from qti_convert.transform import TransformChain, check_item_pipeline
from qti_convert.xml_document import XmlDocument

logger = logging.getLogger(__name__)


class PackageConverter:
    """Classifies package entries and routes them through conversion.

    Manifests are normalized, tests and items are structurally converted
    when they still use QTI 2.x vocabulary, and items then run through the
    configured rule pipeline. Everything else passes through untouched.

    Subclasses can override ``convert_manifest``, ``convert_test`` and
    ``convert_item`` to change how a single document kind is handled.
    """

    def __init__(
        self,
        settings: Settings,
        structural: StructuralConverter | None = None,
        classifier: DocumentClassifier | None = None,
    ):
        self.settings = settings
        self.structural = structural or StructuralConverter(settings.conversion.stylesheet)
        self.classifier = classifier or DocumentClassifier()

        self.item_pipeline = check_item_pipeline(settings.conversion.item_pipeline)

    def convert(self, entries: Iterable[tuple[str, bytes]]) -> WorkingSet:
        """Convert every entry of a package.

        Args:
            entries: ``(path, content)`` pairs, consumed once in order.

        Returns:
            WorkingSet holding every converted entry.

        Raises:
            ConversionFailure: If any entry cannot be converted. No partial
                working set is returned.
            ConversionEngineError: If the structural converter cannot load.
        """
        working_set = WorkingSet()
        for path, content in entries:
            entry = self.convert_entry(path, content)
            working_set.add(entry)
            logger.debug(f"Converted {entry.path} ({entry.kind.value})")

        counts = {kind: len(working_set.of_kind(kind)) for kind in DocumentKind}
        logger.info(
            f"Converted {len(working_set)} entries: "
            f"{counts[DocumentKind.TEST]} tests, {counts[DocumentKind.ITEM]} items, "
            f"{counts[DocumentKind.MANIFEST]} manifests"
        )
        return working_set

    def convert_entry(self, path: str, content: bytes | str) -> PackageEntry:
        """Convert one entry; non-XML entries are returned unchanged."""
        if not path.lower().endswith(".xml"):
            return PackageEntry(path, content, self.classifier.classify_path(path))

        doc = XmlDocument.parse(content, path)
        kind = self.classifier.classify(doc, path)

        try:
            if kind is DocumentKind.MANIFEST:
                doc = self.convert_manifest(doc)
            elif kind is DocumentKind.TEST:
                doc = self.convert_test(doc)
            elif kind is DocumentKind.ITEM:
                doc = self.convert_item(doc)
            else:
                return PackageEntry(path, content, kind)
        except (etree.LxmlError, ValueError) as e:
            raise ConversionFailure(str(e), path) from e

        return PackageEntry(path, doc.serialize(), kind, document=doc)

    def convert_manifest(self, doc: XmlDocument) -> XmlDocument:
        return convert_manifest(doc)

    def convert_test(self, doc: XmlDocument) -> XmlDocument:
        if self.classifier.is_legacy(doc):
            doc = self.structural.convert_document(doc)
        return doc

    def convert_item(self, doc: XmlDocument) -> XmlDocument:
        legacy = self.classifier.is_legacy(doc)
        if legacy:
            doc = self.structural.convert_document(doc)
        if legacy or self.settings.conversion.always_transform_items:
            doc = TransformChain(doc).run(self.item_pipeline).doc
        return doc
