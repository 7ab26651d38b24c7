"""Content package manifest normalization and authoring helpers."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path

from lxml import etree

from qti_convert.classifier import DocumentClassifier, DocumentKind, MANIFEST_NAME
from qti_convert.errors import ConversionFailure
from qti_convert.namespaces import normalize_uri, promote_to_default, redeclare
from qti_convert.package import iter_folder
from qti_convert.transformers import QTI_REFERENCE_ATTRIBUTES
from qti_convert.xml_document import XmlDocument, local_name, namespace_of

logger = logging.getLogger(__name__)

CP_V1P1_NS = "http://www.imsglobal.org/xsd/imscp_v1p1"
CP_QTI3_NS = "http://www.imsglobal.org/xsd/qti/qtiv3p0/imscp_v1p1"
QTI_METADATA_NS = "http://www.imsglobal.org/xsd/imsqti_metadata_v3p0"
QTI2_METADATA_NS_PREFIX = "http://www.imsglobal.org/xsd/imsqti_metadata_v2"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
LOM_NS = "http://ltsc.ieee.org/xsd/LOM"

MANIFEST_SCHEMA_LOCATION = " ".join(
    [
        LOM_NS,
        "https://purl.imsglobal.org/spec/md/v1p3/schema/xsd/imsmd_loose_v1p3p2.xsd",
        CP_QTI3_NS,
        "https://purl.imsglobal.org/spec/qti/v3p0/schema/xsd/imsqtiv3p0_imscpv1p2_v1p0.xsd",
        QTI_METADATA_NS,
        "https://purl.imsglobal.org/spec/qti/v3p0/schema/xsd/imsqti_metadatav3p0_v1p0.xsd",
    ]
)

ITEM_RESOURCE_TYPE = "imsqti_item_xmlv3p0"
TEST_RESOURCE_TYPE = "imsqti_test_xmlv3p0"
WEBCONTENT_RESOURCE_TYPE = "webcontent"
ASSOCIATED_RESOURCE_TYPE = "associatedcontent/learning-application-resource"

# Checked in order; the first substring found in the old type wins.
_RESOURCE_TYPE_MAP = (
    ("item", ITEM_RESOURCE_TYPE),
    ("test", TEST_RESOURCE_TYPE),
    ("associatedcontent", WEBCONTENT_RESOURCE_TYPE),
)

_EMPTY_MANIFEST = f"""<?xml version="1.0" encoding="UTF-8"?>
<manifest xmlns="{CP_QTI3_NS}" xmlns:imsmd="{LOM_NS}" xmlns:xsi="{XSI_NS}">
  <metadata>
    <schema>QTI Package</schema>
    <schemaversion>3.0.0</schemaversion>
  </metadata>
  <organizations/>
  <resources/>
</manifest>
"""

_GENERATED_TEST = """<?xml version="1.0" encoding="UTF-8"?>
<qti-assessment-test xmlns="http://www.imsglobal.org/xsd/imsqtiasi_v3p0"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
    xsi:schemaLocation="http://www.imsglobal.org/xsd/imsqtiasi_v3p0 https://purl.imsglobal.org/spec/qti/v3p0/schema/xsd/imsqti_asiv3p0_v1p0.xsd"
    identifier="TST-GENERATED-TEST" title="My Test" tool-name="qti-convert" tool-version="0.1">
  <qti-outcome-declaration base-type="float" cardinality="single" identifier="SCORE">
    <qti-default-value>
      <qti-value>0.0</qti-value>
    </qti-default-value>
  </qti-outcome-declaration>
  <qti-test-part identifier="TP" navigation-mode="nonlinear" submission-mode="simultaneous">
    <qti-assessment-section identifier="S1" title="Section 1" visible="true"/>
  </qti-test-part>
  <qti-outcome-processing>
    <qti-set-outcome-value identifier="SCORE">
      <qti-sum>
        <qti-test-variables base-type="float" variable-identifier="SCORE"/>
      </qti-sum>
    </qti-set-outcome-value>
  </qti-outcome-processing>
</qti-assessment-test>
"""


@dataclass
class Resource:
    """A manifest resource entry."""

    identifier: str
    type: str
    href: str
    dependencies: list[str] = field(default_factory=list)


def map_resource_type(resource_type: str) -> str:
    """Map a QTI 2.x resource type to its QTI 3.0 equivalent."""
    for needle, new_type in _RESOURCE_TYPE_MAP:
        if needle in resource_type:
            return new_type
    return resource_type


def _ensure_child(doc: XmlDocument, parent: etree._Element, local: str, index: int) -> etree._Element:
    existing = XmlDocument.children(parent, local)
    if existing:
        return existing[0]
    child = doc.make_element(local, like=parent)
    parent.insert(index, child)
    return child


def convert_manifest(doc: XmlDocument) -> XmlDocument:
    """Normalize a content package manifest to the QTI 3.0 packaging profile.

    Args:
        doc: Parsed ``imsmanifest.xml``; rebuilt in place.

    Returns:
        The same document. Running it on its own output is a no-op.
    """
    promote_to_default(doc, CP_V1P1_NS)

    retag: dict[str | None, str] = {None: CP_QTI3_NS}
    packaging = normalize_uri(CP_V1P1_NS)
    for element in doc.iter():
        namespace = namespace_of(element)
        if not namespace or namespace in retag:
            continue
        # Authoring tools vary the case and trailing slash of these URIs
        if normalize_uri(namespace) == packaging:
            retag[namespace] = CP_QTI3_NS
        elif normalize_uri(namespace).startswith(QTI2_METADATA_NS_PREFIX):
            retag[namespace] = QTI_METADATA_NS
    redeclare(
        doc,
        {None: CP_QTI3_NS, "imsqti": QTI_METADATA_NS, "xsi": XSI_NS},
        keep_prefixes=("imsqti", "xsi"),
        retag=retag,
    )

    root = doc.root
    root.set(f"{{{XSI_NS}}}schemaLocation", MANIFEST_SCHEMA_LOCATION)

    metadata_elements = XmlDocument.children(root, "metadata")
    if not metadata_elements:
        metadata = doc.make_element("metadata", like=root)
        root.insert(0, metadata)
        metadata_elements = [metadata]
    for metadata in metadata_elements:
        _ensure_child(doc, metadata, "schema", 0).text = "QTI Package"
        _ensure_child(doc, metadata, "schemaversion", 1).text = "3.0.0"

    for resource in doc.iter("resource"):
        resource_type = resource.get("type")
        if resource_type:
            resource.set("type", map_resource_type(resource_type))

    return doc


def parse_resources(doc: XmlDocument) -> list[Resource]:
    """Read all resource entries of a manifest."""
    return [
        Resource(
            identifier=element.get("identifier", ""),
            type=element.get("type", ""),
            href=element.get("href", ""),
            dependencies=[
                dependency.get("identifierref", "")
                for dependency in XmlDocument.children(element, "dependency")
            ],
        )
        for element in doc.iter("resource")
    ]


def find_resource(
    doc: XmlDocument, identifier: str | None = None, href: str | None = None
) -> etree._Element | None:
    """Find a resource element by identifier or by href."""
    for element in doc.iter("resource"):
        if identifier is not None and element.get("identifier") == identifier:
            return element
        if href is not None and normalize_href(element.get("href") or "") == normalize_href(href):
            return element
    return None


def normalize_href(href: str) -> str:
    """Normalize a package path for comparison."""
    href = href.replace("\\", "/")
    while href.startswith("./"):
        href = href[2:]
    return href.lstrip("/")


def resource_id_for(path: str) -> str:
    """Identifier used for non-QTI files, e.g. ``RES-logo_png``."""
    return "RES-" + posixpath.basename(path).replace(".", "_")


def document_dependencies(doc: XmlDocument) -> list[str]:
    """Identifiers a document depends on: referenced items and assets."""
    identifiers: list[str] = []

    def add(identifier: str) -> None:
        if identifier and identifier not in identifiers:
            identifiers.append(identifier)

    for ref in doc.iter("qti-assessment-item-ref", "assessmentItemRef"):
        add(ref.get("identifier", ""))

    for attribute in QTI_REFERENCE_ATTRIBUTES:
        for element in doc.iter():
            if local_name(element) in ("qti-assessment-item-ref", "assessmentItemRef"):
                continue
            value = element.get(attribute)
            if value and not value.startswith("data:"):
                add(resource_id_for(value))
    return identifiers


def scan_resources(folder: str | Path) -> list[Resource]:
    """Collect resource entries for every file below a package folder.

    Tests and items become QTI resources carrying their dependencies, the
    manifest itself is skipped and every other file becomes associated
    content.
    """
    classifier = DocumentClassifier()
    resources: list[Resource] = []

    for path, content in iter_folder(folder):
        if path.lower().endswith(".xml"):
            try:
                doc = XmlDocument.parse(content, path)
            except ConversionFailure as e:
                logger.warning(f"Treating unparseable XML as plain content: {e}")
                doc = None

            if doc is not None:
                kind = classifier.classify(doc, path)
                if kind is DocumentKind.MANIFEST or local_name(doc.root) == "manifest":
                    continue
                if kind in (DocumentKind.TEST, DocumentKind.ITEM):
                    names = (
                        ("qti-assessment-test", "assessmentTest", "assessment-test")
                        if kind is DocumentKind.TEST
                        else ("qti-assessment-item", "assessmentItem", "assessment-item")
                    )
                    root = doc.find(*names)
                    resources.append(
                        Resource(
                            identifier=root.get("identifier") or resource_id_for(path),
                            type=TEST_RESOURCE_TYPE if kind is DocumentKind.TEST else ITEM_RESOURCE_TYPE,
                            href=path,
                            dependencies=document_dependencies(doc),
                        )
                    )
                    continue

        logger.debug(f"Unprocessed file: {path}")
        resources.append(
            Resource(identifier=resource_id_for(path), type=ASSOCIATED_RESOURCE_TYPE, href=path)
        )

    return resources


def create_or_complete_manifest(folder: str | Path) -> str:
    """Create a QTI 3.0 manifest for a folder, or complete the existing one.

    Resources missing from the manifest are appended with a single ``file``
    entry, and missing dependency edges are added to existing resources.

    Args:
        folder: Package folder.

    Returns:
        The manifest document as text.
    """
    folder = Path(folder)
    manifest_path = folder / MANIFEST_NAME
    if manifest_path.exists():
        doc = XmlDocument.parse(manifest_path.read_bytes(), MANIFEST_NAME)
    else:
        doc = XmlDocument.parse(_EMPTY_MANIFEST, MANIFEST_NAME)
        doc.root.set("identifier", folder.resolve().name)
        doc.root.set(f"{{{XSI_NS}}}schemaLocation", MANIFEST_SCHEMA_LOCATION)

    resources_element = doc.find("resources")
    if resources_element is None:
        resources_element = doc.make_element("resources")
        doc.root.append(resources_element)

    added = 0
    for resource in scan_resources(folder):
        element = find_resource(doc, identifier=resource.identifier)
        if element is None:
            element = doc.make_element(
                "resource",
                like=resources_element,
                attrib={
                    "identifier": resource.identifier,
                    "type": resource.type,
                    "href": resource.href,
                },
            )
            element.append(doc.make_element("file", like=resources_element, attrib={"href": resource.href}))
            resources_element.append(element)
            added += 1

        present = {d.get("identifierref") for d in XmlDocument.children(element, "dependency")}
        for dependency in resource.dependencies:
            if dependency not in present:
                element.append(
                    doc.make_element("dependency", like=element, attrib={"identifierref": dependency})
                )
                present.add(dependency)

    logger.info(f"Manifest for {folder.name}: {added} resources added")
    return doc.serialize()


def create_assessment_test(folder: str | Path) -> str:
    """Generate an assessment test that references every item in a folder.

    Args:
        folder: Package folder.

    Returns:
        The test document as text.
    """
    items = [r for r in scan_resources(folder) if r.type == ITEM_RESOURCE_TYPE]
    doc = XmlDocument.parse(_GENERATED_TEST)
    section = doc.find("qti-assessment-section")
    for item in items:
        section.append(
            doc.make_element(
                "qti-assessment-item-ref",
                like=section,
                attrib={"identifier": item.identifier, "href": item.href},
            )
        )
    logger.info(f"Generated assessment test with {len(items)} items")
    return doc.serialize()
