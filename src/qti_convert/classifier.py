"""Document classification by root-element vocabulary."""

from __future__ import annotations

import posixpath
from enum import Enum

from qti_convert.xml_document import XmlDocument, local_name

MANIFEST_NAME = "imsmanifest.xml"


class DocumentKind(str, Enum):
    """Role of a package entry in the conversion pipeline."""

    TEST = "test"
    ITEM = "item"
    MANIFEST = "manifest"
    OTHER = "other"


# Both vocabularies map to the same kind; TEST outranks ITEM.
_ROOT_VOCABULARY: dict[str, DocumentKind] = {
    "assessmentTest": DocumentKind.TEST,
    "assessment-test": DocumentKind.TEST,
    "qti-assessment-test": DocumentKind.TEST,
    "assessmentItem": DocumentKind.ITEM,
    "assessment-item": DocumentKind.ITEM,
    "qti-assessment-item": DocumentKind.ITEM,
}
_LEGACY_VOCABULARY = frozenset({"assessmentTest", "assessmentItem", "assessmentSection"})


class DocumentClassifier:
    """Assigns a DocumentKind to package entries."""

    def classify(self, doc: XmlDocument, path: str | None = None) -> DocumentKind:
        """Classify a parsed document.

        A document is a manifest only when the entry is named
        ``imsmanifest.xml``. Otherwise any element carrying test vocabulary
        makes it a test, any element carrying item vocabulary an item.

        Args:
            doc: Parsed document.
            path: Package entry path, if known.

        Returns:
            The document kind. Never raises; unrecognized documents are OTHER.
        """
        if path is not None and self.is_manifest_path(path):
            return DocumentKind.MANIFEST

        found = DocumentKind.OTHER
        for element in doc.iter():
            kind = _ROOT_VOCABULARY.get(local_name(element))
            if kind is DocumentKind.TEST:
                return kind
            if kind is DocumentKind.ITEM:
                found = kind
        return found

    def classify_path(self, path: str) -> DocumentKind:
        """Classify an entry from its path alone, for non-XML content."""
        if self.is_manifest_path(path):
            return DocumentKind.MANIFEST
        return DocumentKind.OTHER

    @staticmethod
    def is_manifest_path(path: str) -> bool:
        return posixpath.basename(path.replace("\\", "/")) == MANIFEST_NAME

    @staticmethod
    def is_legacy(doc: XmlDocument) -> bool:
        """Check whether a document still uses QTI 2.x element names."""
        return any(local_name(element) in _LEGACY_VOCABULARY for element in doc.iter())
