"""Tests for the XML document wrapper."""

import pytest

from qti_convert.errors import ConversionFailure
from qti_convert.xml_document import (
    XML_DECLARATION,
    XmlDocument,
    clean_xml_string,
    has_class,
    local_name,
    namespace_of,
    qualified,
)

from conftest import QTI3_NS, qti3_item


class TestCleanXmlString:
    """Tests for clean_xml_string."""

    def test_adds_missing_declaration(self) -> None:
        """A declaration is synthesized when absent."""
        assert clean_xml_string("<a/>") == f"{XML_DECLARATION}\n<a/>"

    def test_drops_leading_garbage_and_bom(self) -> None:
        """Anything before the declaration is dropped."""
        cleaned = clean_xml_string('\ufeff  junk<?xml version="1.0"?><a/>')

        assert cleaned == '<?xml version="1.0"?><a/>'

    def test_empty_string(self) -> None:
        assert clean_xml_string("") == ""


class TestParse:
    """Tests for XmlDocument.parse."""

    def test_parse_text(self) -> None:
        doc = XmlDocument.parse('<?xml version="1.0" encoding="UTF-8"?><root><child/></root>')

        assert local_name(doc.root) == "root"
        assert doc.find("child") is not None

    def test_parse_bytes_with_bom(self) -> None:
        """UTF-8 bytes with a byte order mark parse."""
        doc = XmlDocument.parse("\ufeff<root>é</root>".encode("utf-8"))

        assert doc.root.text == "é"

    def test_parse_declared_latin1_bytes(self) -> None:
        """Non UTF-8 bytes fall back to the declared encoding."""
        data = '<?xml version="1.0" encoding="ISO-8859-1"?><root>é</root>'.encode("latin-1")

        doc = XmlDocument.parse(data)

        assert doc.root.text == "é"

    def test_malformed_raises_with_path(self) -> None:
        """Malformed XML raises ConversionFailure naming the entry."""
        with pytest.raises(ConversionFailure) as exc_info:
            XmlDocument.parse("<root><open></root>", "items/bad.xml")

        assert exc_info.value.path == "items/bad.xml"
        assert "items/bad.xml" in str(exc_info.value)

    def test_empty_document_raises(self) -> None:
        with pytest.raises(ConversionFailure):
            XmlDocument.parse("   ")


class TestQueries:
    """Tests for namespace-agnostic queries."""

    def test_iter_matches_local_names(self) -> None:
        """Prefixed, default-namespaced and plain elements all match."""
        doc = XmlDocument.parse(
            '<root xmlns:x="urn:x"><x:item/><item xmlns="urn:y"/><item/></root>'
        )

        assert len(list(doc.iter("item"))) == 3

    def test_children_filters_direct_children(self) -> None:
        doc = XmlDocument.parse("<root><a><b/></a><b/><!-- note --></root>")

        children = XmlDocument.children(doc.root)

        assert [local_name(c) for c in children] == ["a", "b"]
        assert len(XmlDocument.children(doc.root, "b")) == 1

    def test_helpers(self) -> None:
        doc = XmlDocument.parse(qti3_item('<div class="a content"/>'))
        div = doc.find("div")

        assert namespace_of(div) == QTI3_NS
        assert qualified("p", QTI3_NS) == f"{{{QTI3_NS}}}p"
        assert qualified("p", None) == "p"
        assert has_class(div, "content")
        assert not has_class(div, "cont")


class TestMutations:
    """Tests for tree mutations."""

    def test_make_element_uses_default_namespace(self) -> None:
        """New elements join the reference element's namespace without a prefix."""
        doc = XmlDocument.parse(qti3_item("<p>text</p>"))
        body = doc.find("qti-item-body")

        img = doc.make_element("img", like=body, attrib={"src": "a.png"})
        body.append(img)

        assert img.tag == f"{{{QTI3_NS}}}img"
        assert "ns0" not in doc.serialize()

    def test_unwrap_keeps_text_and_tail(self) -> None:
        doc = XmlDocument.parse("<root>a<div>b<i>c</i>d</div>e</root>")

        doc.unwrap(doc.find("div"))

        assert doc.serialize().endswith("<root>ab<i>c</i>de</root>\n")

    def test_remove_keeps_tail(self) -> None:
        doc = XmlDocument.parse("<root>a<br/>b</root>")

        doc.remove(doc.find("br"))

        assert doc.root.text == "ab"

    def test_replace_and_wrap(self) -> None:
        doc = XmlDocument.parse("<root><old/>tail</root>")
        new = doc.make_element("new")

        doc.replace(doc.find("old"), new)
        doc.wrap(new, doc.make_element("outer"))

        outer = doc.root[0]
        assert local_name(outer) == "outer"
        assert local_name(outer[0]) == "new"
        assert outer.tail == "tail"
        assert outer[0].tail is None

    def test_rename_keeps_namespace(self) -> None:
        doc = XmlDocument.parse(qti3_item("<p/>"))
        paragraph = doc.find("p")

        XmlDocument.rename(paragraph, "div")

        assert paragraph.tag == f"{{{QTI3_NS}}}div"

    def test_set_root_keeps_processing_instructions(self) -> None:
        doc = XmlDocument.parse('<?xml version="1.0"?><?style a?><root/>')

        doc.set_root(doc.make_element("other"))

        assert "<?style a?>" in doc.serialize()
        assert local_name(doc.root) == "other"

    def test_serialize_has_declaration(self) -> None:
        doc = XmlDocument.parse("<root/>")

        assert doc.serialize() == f"{XML_DECLARATION}\n<root/>\n"
