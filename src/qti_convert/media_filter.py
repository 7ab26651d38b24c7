"""Media inventory and removal for content packages."""

from __future__ import annotations

import base64
import logging
import posixpath
from dataclasses import dataclass
from typing import Iterable

from lxml import etree

from qti_convert.classifier import DocumentClassifier, DocumentKind
from qti_convert.errors import ConversionFailure
from qti_convert.package import PackageEntry, WorkingSet
from qti_convert.transformers import QTI_REFERENCE_ATTRIBUTES
from qti_convert.xml_document import XmlDocument, local_name

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

_MEDIA_TYPES = {
    "audio": ("mp3", "wav", "ogg", "aac", "flac", "amr", "wma", "3gp"),
    "video": ("mp4", "avi", "mov", "mkv", "webm", "flv", "3gpp"),
    "image": ("jpg", "png", "tiff", "gif", "jpeg", "bmp", "svg"),
}
_TYPE_BY_EXTENSION = {ext: kind for kind, exts in _MEDIA_TYPES.items() for ext in exts}

# References to these cannot be shown as an image; the element is dropped.
UNREPLACEABLE_EXTENSIONS = frozenset({"css", "xsd"})

MEDIA_INTERACTION_NAMES = ("qti-media-interaction", "mediaInteraction")


def media_type(extension: str) -> str:
    """Return ``audio``, ``video``, ``image`` or ``unknown`` for a file extension."""
    return _TYPE_BY_EXTENSION.get(extension.lstrip(".").lower(), "unknown")


def _extension(name: str) -> str:
    basename = posixpath.basename(name)
    return basename.rsplit(".", 1)[-1] if "." in basename else ""


def _reference_name(value: str | None) -> str | None:
    """Basename a reference attribute points at, ignoring query and data URIs."""
    if not value or value.startswith("data:"):
        return None
    return posixpath.basename(value.split("?", 1)[0].split("#", 1)[0])


@dataclass
class MediaFile:
    """A file in a package, or a file referenced from a test or item."""

    name: str
    kind: str
    extension: str
    size_kb: float


class MediaFilterEngine:
    """Finds media files by filter and strips them from a package.

    Filters are media classes (``audio``, ``video``, ``image``), extensions
    (``.mp3``) or size thresholds (``500kb``, ``2mb``; strictly greater than).
    """

    def __init__(
        self,
        placeholder_width: int = 300,
        placeholder_height: int = 75,
        classifier: DocumentClassifier | None = None,
    ):
        self.placeholder_width = placeholder_width
        self.placeholder_height = placeholder_height
        self.classifier = classifier or DocumentClassifier()

    def inventory(self, working_set: WorkingSet) -> list[MediaFile]:
        """List package files and the files tests and items reference.

        References found in XML are listed by basename with a size of 0.
        """
        files: list[MediaFile] = []
        for entry in working_set:
            if not entry.is_xml:
                extension = _extension(entry.path)
                files.append(
                    MediaFile(
                        name=entry.path,
                        kind=media_type(extension),
                        extension=extension,
                        size_kb=round(len(entry.as_bytes()) / 1024, 2),
                    )
                )
                continue

            doc = self._parse(entry)
            if doc is None or self._kind(entry, doc) not in (DocumentKind.TEST, DocumentKind.ITEM):
                continue
            for attribute in QTI_REFERENCE_ATTRIBUTES:
                for element in doc.iter():
                    name = _reference_name(element.get(attribute))
                    if name:
                        extension = _extension(name)
                        files.append(MediaFile(name, media_type(extension), extension, 0))
        return files

    @staticmethod
    def resolve(inventory: Iterable[MediaFile], filters: Iterable[str]) -> set[str]:
        """Select the basenames of files matching any filter.

        Raises:
            ValueError: If a filter is not recognized.
        """
        files = list(inventory)
        selected: set[str] = set()
        for raw in filters:
            token = raw.strip().lower()
            if token.startswith("."):
                matches = [f for f in files if f.name.lower().endswith(token)]
            elif token in _MEDIA_TYPES:
                matches = [f for f in files if f.kind == token]
            elif token.endswith(("kb", "mb")):
                try:
                    threshold = float(token[:-2])
                except ValueError:
                    raise ValueError(f"Invalid size filter: {raw}") from None
                if token.endswith("mb"):
                    threshold *= 1024
                matches = [f for f in files if f.size_kb > threshold]
            else:
                raise ValueError(f"Unknown media filter: {raw}")
            selected.update(posixpath.basename(f.name) for f in matches)
        return selected

    def strip(self, working_set: WorkingSet, filters: Iterable[str]) -> WorkingSet:
        """Remove matching media from a package.

        In tests and items each reference to a removed file is replaced by
        a placeholder image (the enclosing media interaction when there is
        one); stylesheet and schema references are deleted. Manifest entries
        referencing a removed file are deleted together with dependencies
        on a removed resource. The matching files themselves are omitted.

        Args:
            working_set: Package to strip; left unmodified.
            filters: Media filters.

        Returns:
            A new WorkingSet without the matching media.
        """
        removed = self.resolve(self.inventory(working_set), filters)
        logger.info(f"Stripping {len(removed)} media files")

        result = WorkingSet()
        for entry in working_set:
            if not entry.is_xml:
                if entry.name in removed:
                    logger.debug(f"Removed {entry.path}")
                    continue
                result.add(PackageEntry(entry.path, entry.content, entry.kind))
                continue

            doc = self._parse(entry)
            kind = self._kind(entry, doc) if doc is not None else DocumentKind.OTHER
            changed = False
            if kind in (DocumentKind.TEST, DocumentKind.ITEM):
                changed = self._replace_references(doc, removed)
            elif kind is DocumentKind.MANIFEST or (doc is not None and local_name(doc.root) == "manifest"):
                changed = self._remove_manifest_references(doc, removed)

            content = doc.serialize() if changed else entry.content
            result.add(PackageEntry(entry.path, content, kind))
        return result

    def placeholder(self, name: str) -> str:
        """Build a base64 SVG data URI saying that a file was removed."""
        width, height = str(self.placeholder_width), str(self.placeholder_height)
        svg = etree.Element(f"{{{SVG_NS}}}svg", nsmap={None: SVG_NS}, width=width, height=height)
        etree.SubElement(
            svg,
            f"{{{SVG_NS}}}rect",
            width=width,
            height=height,
            style="fill:lightgray;stroke-width:1;stroke:gray",
        )
        text = etree.SubElement(
            svg,
            f"{{{SVG_NS}}}text",
            x="10",
            y="25",
            fill="red",
            textLength=str(max(self.placeholder_width - 20, 0)),
        )
        text.text = f"File: {name} removed"
        encoded = base64.b64encode(etree.tostring(svg, encoding="utf-8")).decode("ascii")
        return f"data:image/svg+xml;base64,{encoded}"

    def _parse(self, entry: PackageEntry) -> XmlDocument | None:
        try:
            return XmlDocument.parse(entry.content, entry.path)
        except ConversionFailure as e:
            logger.warning(f"Leaving unparseable XML untouched: {e}")
            return None

    def _kind(self, entry: PackageEntry, doc: XmlDocument) -> DocumentKind:
        if entry.kind is not DocumentKind.OTHER:
            return entry.kind
        return self.classifier.classify(doc, entry.path)

    @staticmethod
    def _removed_reference(element: etree._Element, removed: set[str]) -> str | None:
        for attribute in QTI_REFERENCE_ATTRIBUTES:
            name = _reference_name(element.get(attribute))
            if name and name in removed:
                return name
        return None

    @staticmethod
    def _attached(doc: XmlDocument, element: etree._Element) -> bool:
        # Removed elements stay in the same lxml document, so walk up instead
        ancestors = list(element.iterancestors())
        top = ancestors[-1] if ancestors else element
        return top is doc.root

    def _replace_references(self, doc: XmlDocument, removed: set[str]) -> bool:
        changed = False
        for element in list(doc.iter()):
            if not self._attached(doc, element):
                continue
            name = self._removed_reference(element, removed)
            if name is None:
                continue

            changed = True
            if _extension(name).lower() in UNREPLACEABLE_EXTENSIONS:
                doc.remove(element)
                continue

            target = next(
                (a for a in element.iterancestors() if local_name(a) in MEDIA_INTERACTION_NAMES),
                None,
            )
            if target is None:
                parent = element.getparent()
                if (
                    local_name(element) in ("source", "track")
                    and parent is not None
                    and local_name(parent) in ("audio", "video")
                ):
                    target = parent
                else:
                    target = element

            like = target.getparent() if target.getparent() is not None else target
            image = doc.make_element(
                "img",
                like=like,
                attrib={"src": self.placeholder(name), "alt": f"File: {name} removed"},
            )
            doc.replace(target, image)
        return changed

    def _remove_manifest_references(self, doc: XmlDocument, removed: set[str]) -> bool:
        changed = False
        for element in list(doc.iter()):
            if not self._attached(doc, element):
                continue
            if self._removed_reference(element, removed) is None:
                continue
            if local_name(element) == "resource":
                identifier = element.get("identifier")
                for dependency in list(doc.iter("dependency")):
                    if dependency.get("identifierref") == identifier:
                        doc.remove(dependency)
            doc.remove(element)
            changed = True
        return changed
