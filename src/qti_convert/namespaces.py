"""Namespace prefix normalization for package documents.

lxml keeps namespace declarations read-only on parsed elements, so changing
which prefix a namespace is bound to means rebuilding the tree. Both
operations here work in two passes: a planning walk that carries the
inherited namespace scope down the tree and records one rewrite per element,
then a build pass that creates the new tree from the plan.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping, Union

from lxml import etree

from qti_convert.errors import NamespaceNotFound
from qti_convert.xml_document import XmlDocument, local_name, namespace_of, qualified

logger = logging.getLogger(__name__)

OLD_DEFAULT_PREFIX = "olddefault"

NsMap = dict[Union[str, None], str]


@dataclass
class Rewrite:
    """Planned rewrite of one element."""

    source: etree._Element
    tag: str
    nsmap: NsMap
    attrib: dict[str, str]
    rehomed: bool = False
    children: list[Union["Rewrite", etree._Element]] = field(default_factory=list)


def normalize_uri(uri: str) -> str:
    return uri.rstrip("/").lower()


def find_binding(doc: XmlDocument, target_uri: str) -> tuple[str, str]:
    """Find the first prefixed declaration whose URI matches ``target_uri``.

    Matching is a case-insensitive substring test that ignores a trailing
    slash.

    Returns:
        The ``(prefix, declared_uri)`` pair.

    Raises:
        NamespaceNotFound: If no prefixed declaration matches.
    """
    needle = normalize_uri(target_uri)
    for element in doc.iter():
        for prefix, uri in element.nsmap.items():
            if prefix is not None and needle in normalize_uri(uri):
                return prefix, uri
    raise NamespaceNotFound(target_uri)


def _local_declarations(element: etree._Element, inherited: Mapping) -> NsMap:
    return {p: u for p, u in element.nsmap.items() if inherited.get(p) != u}


def _plan(
    element: etree._Element,
    inherited: Mapping,
    nsmap_for: Callable[[NsMap, bool], NsMap],
    tag_for: Callable[[etree._Element], str],
    attrib_for: Callable[[etree._Element], dict[str, str]],
    rehome_uri: str | None = None,
) -> Rewrite:
    """Record the rewrite of an element and, recursively, of its descendants."""
    is_root = element.getparent() is None
    rewrite = Rewrite(
        source=element,
        tag=tag_for(element),
        nsmap=nsmap_for(_local_declarations(element, inherited), is_root),
        attrib=attrib_for(element),
        rehomed=rehome_uri is not None and namespace_of(element) == rehome_uri,
    )
    scope = element.nsmap
    for child in element:
        if isinstance(child.tag, str):
            rewrite.children.append(
                _plan(child, scope, nsmap_for, tag_for, attrib_for, rehome_uri)
            )
        else:
            rewrite.children.append(child)
    return rewrite


def _build(rewrite: Rewrite, parent: etree._Element | None = None) -> etree._Element:
    """Create the element described by a rewrite, top-down."""
    if parent is None:
        element = etree.Element(rewrite.tag, nsmap=rewrite.nsmap)
    else:
        element = etree.SubElement(parent, rewrite.tag, nsmap=rewrite.nsmap)
        element.tail = rewrite.source.tail
    for name, value in rewrite.attrib.items():
        element.set(name, value)
    element.text = rewrite.source.text
    for child in rewrite.children:
        if isinstance(child, Rewrite):
            _build(child, element)
        else:
            element.append(copy.deepcopy(child))
    return element


def _count_rehomed(rewrite: Rewrite) -> int:
    return int(rewrite.rehomed) + sum(
        _count_rehomed(child) for child in rewrite.children if isinstance(child, Rewrite)
    )


def promote_to_default(doc: XmlDocument, target_uri: str) -> XmlDocument:
    """Make a prefixed namespace the default namespace of a document.

    Elements of the matched namespace lose their prefix. When the root
    already has a different default namespace, its elements keep their
    namespace under the ``olddefault`` prefix. Attributes qualified with the
    target namespace are reduced to their local name; all other attributes
    are preserved.

    Args:
        doc: Document to normalize; its tree is replaced in place.
        target_uri: Namespace URI to promote.

    Returns:
        The same document. Unchanged when no prefixed declaration matches.
    """
    default = doc.root.nsmap.get(None)
    if default and normalize_uri(target_uri) in normalize_uri(default):
        logger.debug(f"{target_uri} is already the default namespace")
        return doc

    try:
        prefix, uri = find_binding(doc, target_uri)
    except NamespaceNotFound as e:
        logger.info(f"Skipping namespace promotion: {e}")
        return doc

    def nsmap_for(local: NsMap, is_root: bool) -> NsMap:
        if is_root:
            nsmap: NsMap = {p: u for p, u in local.items() if p is not None and p != prefix}
            nsmap[None] = uri
            if default and default != uri:
                nsmap[OLD_DEFAULT_PREFIX] = default
            return nsmap
        return {
            p: u
            for p, u in local.items()
            if p != prefix and not (p is None and u in (default, uri))
        }

    qualified_prefix = f"{{{uri}}}"

    def attrib_for(element: etree._Element) -> dict[str, str]:
        return {
            (name[len(qualified_prefix):] if name.startswith(qualified_prefix) else name): value
            for name, value in element.attrib.items()
        }

    rehome = default if default and default != uri else None
    plan = _plan(doc.root, {}, nsmap_for, lambda el: el.tag, attrib_for, rehome)
    doc.set_root(_build(plan))
    logger.debug(
        f"Promoted {uri} (was prefix '{prefix}') to default, "
        f"re-homed {_count_rehomed(plan)} elements"
    )
    return doc


def redeclare(
    doc: XmlDocument,
    root_nsmap: Mapping[str | None, str],
    keep_prefixes: Iterable[str] = (),
    retag: Mapping[str | None, str] | None = None,
) -> XmlDocument:
    """Rebuild a document with a fixed set of root namespace declarations.

    Args:
        doc: Document to rebuild; its tree is replaced in place.
        root_nsmap: Declarations to put on the root element. Root prefixes
            bound to other URIs are carried over.
        keep_prefixes: Prefixes kept even when unused.
        retag: Maps element namespace URIs (None for no namespace) to the
            namespace the elements should move to.

    Returns:
        The same document.
    """
    retag = dict(retag or {})
    declared = set(root_nsmap.values())

    def nsmap_for(local: NsMap, is_root: bool) -> NsMap:
        if is_root:
            nsmap: NsMap = {
                p: u
                for p, u in doc.root.nsmap.items()
                if p is not None and p not in root_nsmap and u not in declared and u not in retag
            }
            nsmap.update(root_nsmap)
            return nsmap
        return {p: u for p, u in local.items() if u not in declared and u not in retag}

    def tag_for(element: etree._Element) -> str:
        namespace = namespace_of(element)
        if namespace in retag:
            return qualified(local_name(element), retag[namespace])
        return element.tag

    plan = _plan(doc.root, {}, nsmap_for, tag_for, lambda el: dict(el.attrib))
    root = _build(plan)
    etree.cleanup_namespaces(root, keep_ns_prefixes=[p for p in keep_prefixes if p])
    doc.set_root(root)
    return doc
