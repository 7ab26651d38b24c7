"""Parsed XML document wrapper with namespace-agnostic queries and mutations."""

from __future__ import annotations

import re
from typing import Iterator

from lxml import etree

from qti_convert.errors import ConversionFailure

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'

_DECLARATION_RE = re.compile(r"<\?xml\s.*?\?>", re.DOTALL)
_BOM = "\ufeff"


def clean_xml_string(xml: str) -> str:
    """Normalize raw XML text before parsing.

    Strips byte order marks, drops anything preceding the XML declaration and
    synthesizes a declaration when the document has none.

    Args:
        xml: Raw document text.

    Returns:
        Text that starts with an XML declaration.
    """
    if not xml:
        return xml
    xml = xml.replace(_BOM, "").replace("&#xfeff;", "", 1)
    match = _DECLARATION_RE.search(xml)
    if match:
        return xml[match.start():]
    return f"{XML_DECLARATION}\n{xml.lstrip()}"


def local_name(element: etree._Element) -> str:
    """Return the tag name of an element without namespace or prefix."""
    if not isinstance(element.tag, str):
        return ""
    return etree.QName(element).localname


def namespace_of(element: etree._Element) -> str | None:
    """Return the namespace URI of an element, or None."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).namespace


def qualified(local: str, namespace: str | None) -> str:
    """Build a Clark-notation tag for a local name in a namespace."""
    return f"{{{namespace}}}{local}" if namespace else local


def has_class(element: etree._Element, name: str) -> bool:
    """Check whether a class token is present on an element."""
    return name in (element.get("class") or "").split()


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        remove_blank_text=True,
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
    )


def _append_text(parent: etree._Element, index: int, text: str | None) -> None:
    """Append text at a child position, onto the previous tail or parent text."""
    if not text:
        return
    if index == 0:
        parent.text = (parent.text or "") + text
    else:
        previous = parent[index - 1]
        previous.tail = (previous.tail or "") + text


class XmlDocument:
    """One parsed XML document.

    All queries match on local names so that 2.x prefixed, 3.0 default
    namespaced and namespace-less documents are treated alike.
    """

    def __init__(self, tree: etree._ElementTree, path: str | None = None):
        self.tree = tree
        self.path = path

    @classmethod
    def parse(cls, source: str | bytes, path: str | None = None) -> "XmlDocument":
        """Parse XML text or bytes into a document.

        Args:
            source: Document content. Bytes are decoded as UTF-8 when possible,
                otherwise the declared encoding is honored.
            path: Package entry path, used in error messages.

        Returns:
            Parsed document.

        Raises:
            ConversionFailure: If the content is not well-formed XML.
        """
        if isinstance(source, bytes):
            try:
                source = source.decode("utf-8-sig")
            except UnicodeDecodeError:
                return cls._parse_bytes(source, path)

        cleaned = clean_xml_string(source)
        if not cleaned.strip():
            raise ConversionFailure("document is empty", path)
        body = _DECLARATION_RE.sub("", cleaned, count=1)
        return cls._parse_bytes(body.encode("utf-8"), path)

    @classmethod
    def _parse_bytes(cls, data: bytes, path: str | None) -> "XmlDocument":
        try:
            root = etree.fromstring(data, _parser())
        except etree.XMLSyntaxError as e:
            raise ConversionFailure(f"malformed XML ({e})", path) from e
        return cls(root.getroottree(), path)

    @property
    def root(self) -> etree._Element:
        return self.tree.getroot()

    def set_root(self, root: etree._Element) -> None:
        """Replace the root element, keeping top-level comments and PIs."""
        old = self.root
        preceding = list(old.itersiblings(preceding=True))
        following = list(old.itersiblings())
        self.tree = etree.ElementTree(root)
        for node in reversed(preceding):
            root.addprevious(node)
        for node in reversed(following):
            root.addnext(node)

    def iter(self, *local_names: str) -> Iterator[etree._Element]:
        """Iterate elements in document order, optionally filtered by local name."""
        wanted = set(local_names)
        for element in self.root.iter(etree.Element):
            if not wanted or local_name(element) in wanted:
                yield element

    def find(self, *local_names: str) -> etree._Element | None:
        """Return the first element with one of the given local names."""
        return next(self.iter(*local_names), None)

    @staticmethod
    def children(element: etree._Element, *local_names: str) -> list[etree._Element]:
        """Return the direct element children, optionally filtered by local name."""
        wanted = set(local_names)
        return [
            child
            for child in element
            if isinstance(child.tag, str) and (not wanted or local_name(child) in wanted)
        ]

    @staticmethod
    def ancestors(element: etree._Element) -> Iterator[etree._Element]:
        return element.iterancestors()

    def make_element(
        self,
        local: str,
        like: etree._Element | None = None,
        attrib: dict[str, str] | None = None,
    ) -> etree._Element:
        """Create a detached element in the namespace of a reference element.

        Args:
            local: Local tag name.
            like: Element whose namespace and prefix the new element shares.
                Defaults to the document root.
            attrib: Initial attributes.

        Returns:
            The new element.
        """
        like = self.root if like is None else like
        namespace = namespace_of(like)
        if namespace:
            element = etree.Element(
                qualified(local, namespace), nsmap={like.prefix: namespace}
            )
        else:
            element = etree.Element(local)
        for name, value in (attrib or {}).items():
            element.set(name, value)
        return element

    def replace(self, old: etree._Element, new: etree._Element) -> None:
        """Put ``new`` in the place of ``old``, keeping the tail text."""
        parent = old.getparent()
        if parent is None:
            self.set_root(new)
            return
        new.tail = old.tail
        old.tail = None
        parent.replace(old, new)

    def wrap(self, element: etree._Element, wrapper: etree._Element) -> None:
        """Wrap an element in a detached wrapper element."""
        self.replace(element, wrapper)
        wrapper.append(element)

    def unwrap(self, element: etree._Element) -> None:
        """Remove an element, lifting its text and children into the parent."""
        parent = element.getparent()
        if parent is None:
            return
        index = parent.index(element)
        _append_text(parent, index, element.text)
        children = list(element)
        tail = element.tail
        element.tail = None
        for offset, child in enumerate(children):
            parent.insert(index + offset, child)
        parent.remove(element)
        _append_text(parent, index + len(children), tail)

    def remove(self, element: etree._Element) -> None:
        """Remove an element and its content, keeping the tail text."""
        parent = element.getparent()
        if parent is None:
            return
        index = parent.index(element)
        tail = element.tail
        element.tail = None
        parent.remove(element)
        _append_text(parent, index, tail)

    @staticmethod
    def rename(element: etree._Element, local: str) -> None:
        """Change the local name of an element, keeping its namespace."""
        element.tag = qualified(local, namespace_of(element))

    @staticmethod
    def move_content(source: etree._Element, target: etree._Element) -> None:
        """Move the text and child nodes of one element into another."""
        target.text = source.text
        source.text = None
        for child in list(source):
            target.append(child)

    @staticmethod
    def text_content(element: etree._Element) -> str:
        return "".join(element.itertext())

    def serialize(self) -> str:
        """Serialize the document with a UTF-8 declaration and two-space indent."""
        body = etree.tostring(self.tree, encoding="unicode", pretty_print=True)
        return f"{XML_DECLARATION}\n{body.replace(_BOM, '')}"
