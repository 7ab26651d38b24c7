"""Leaf fix-up rules for converted QTI 3.0 documents.

Every rule takes an XmlDocument, mutates it in place and returns nothing.
The rules used by the item pipeline are idempotent: running a rule on its
own output leaves the document unchanged.
"""

from __future__ import annotations

import logging
import re
from typing import Callable, Iterable

from lxml import etree

from qti_convert.xml_document import (
    XmlDocument,
    has_class,
    local_name,
    namespace_of,
    qualified,
)

logger = logging.getLogger(__name__)

QTI_REFERENCE_ATTRIBUTES = (
    "src",
    "href",
    "data",
    "primary-path",
    "fallback-path",
    "template-location",
)

NBSP = "\u00a0"

# SSML element -> (source attribute, data attribute) pairs
_SSML_ATTRIBUTES: dict[str, tuple[tuple[str, str], ...]] = {
    "sub": (("alias", "data-ssml-sub-alias"),),
    "break": (
        ("time", "data-ssml-break-time"),
        ("strength", "data-ssml-break-strength"),
    ),
    "say-as": (
        ("interpret-as", "data-ssml-say-as"),
        ("format", "data-ssml-say-as-format"),
        ("detail", "data-ssml-say-as-detail"),
    ),
    "phoneme": (
        ("ph", "data-ssml-phoneme-ph"),
        ("alphabet", "data-ssml-phoneme-alphabet"),
    ),
    "prosody": (
        ("pitch", "data-ssml-prosody-pitch"),
        ("rate", "data-ssml-prosody-rate"),
        ("volume", "data-ssml-prosody-volume"),
        ("contour", "data-ssml-prosody-contour"),
        ("range", "data-ssml-prosody-range"),
        ("duration", "data-ssml-prosody-duration"),
    ),
    "emphasis": (("level", "data-ssml-emphasis-level"),),
    "voice": (
        ("gender", "data-ssml-voice-gender"),
        ("age", "data-ssml-voice-age"),
        ("variant", "data-ssml-voice-variant"),
        ("name", "data-ssml-voice-name"),
        ("languages", "data-ssml-voice-languages"),
    ),
}

_QB_WRAPPER_IDS = frozenset({"leftbody", "body", "mc", "question"})


def _objects_of_type(doc: XmlDocument, prefix: str) -> list[etree._Element]:
    return [obj for obj in doc.iter("object") if (obj.get("type") or "").startswith(prefix)]


def _copy_attributes(source: etree._Element, target: etree._Element, names: Iterable[str]) -> None:
    for name in names:
        value = source.get(name)
        if value is not None:
            target.set(name, value)


def object_to_img(doc: XmlDocument) -> None:
    """Replace ``object`` elements with an image type by ``img``."""
    for obj in _objects_of_type(doc, "image"):
        img = doc.make_element("img", like=obj)
        _copy_attributes(obj, img, ("width", "height"))
        if obj.get("data") is not None:
            img.set("src", obj.get("data"))
        img.set("alt", doc.text_content(obj).strip())
        doc.replace(obj, img)


def _media_element(doc: XmlDocument, obj: etree._Element, local: str) -> etree._Element:
    media = doc.make_element(local, like=obj)
    _copy_attributes(obj, media, ("width", "height"))
    if obj.get("data-dep-controls") == "true":
        media.set("controls", "true")
    source = doc.make_element("source", like=obj)
    if obj.get("data") is not None:
        source.set("src", obj.get("data"))
    source.set("type", obj.get("type"))
    media.append(source)
    return media


def object_to_video(doc: XmlDocument) -> None:
    """Replace ``object`` elements with a video type by ``video`` + ``source``."""
    for obj in _objects_of_type(doc, "video"):
        doc.replace(obj, _media_element(doc, obj, "video"))


def object_to_audio(doc: XmlDocument) -> None:
    """Replace audio ``object`` elements and normalize ``audio/@controls``.

    An audio element keeps controls when ``data-dep-controls="true"`` or any
    ``controls`` attribute is present; the attribute is then written as
    ``controls="controls"``.
    """
    for obj in _objects_of_type(doc, "audio"):
        doc.replace(obj, _media_element(doc, obj, "audio"))

    for audio in doc.iter("audio"):
        if audio.get("data-dep-controls") == "true" or "controls" in audio.attrib:
            audio.set("controls", "controls")


def _is_ssml(element: etree._Element) -> bool:
    namespace = namespace_of(element) or ""
    return element.prefix == "ssml" or "synthesis" in namespace.lower()


def ssml_sub_to_span(doc: XmlDocument) -> None:
    """Replace SSML elements by ``span`` elements carrying data attributes."""
    for element in list(doc.iter(*_SSML_ATTRIBUTES)):
        if not _is_ssml(element):
            continue
        parent = element.getparent()
        if parent is None:
            continue
        name = local_name(element)
        span = doc.make_element("span", like=parent)
        for attribute, data_attribute in _SSML_ATTRIBUTES[name]:
            value = element.get(attribute)
            if value:
                span.set(data_attribute, value)
            elif name == "sub":
                span.set(data_attribute, "")
        doc.move_content(element, span)
        doc.replace(element, span)


def strip_material_info(doc: XmlDocument) -> None:
    """Remove ``qti-companion-materials-info`` blocks."""
    for info in list(doc.iter("qti-companion-materials-info")):
        doc.remove(info)


def min_choices_to_one(doc: XmlDocument) -> None:
    """Force a minimum of one choice on choice interactions without one."""
    for interaction in doc.iter("qti-choice-interaction"):
        if interaction.get("min-choices") in (None, "", "0"):
            interaction.set("min-choices", "1")


def external_scored(doc: XmlDocument) -> None:
    """Mark SCORE as human scored on items without response processing."""
    for item in doc.iter("qti-assessment-item"):
        if any(local_name(el) == "qti-response-processing" for el in item.iter()):
            continue
        for declaration in item.iter():
            if (
                local_name(declaration) == "qti-outcome-declaration"
                and declaration.get("identifier") == "SCORE"
            ):
                declaration.set("external-scored", "human")


def _replace_nbsp(element: etree._Element) -> None:
    for node in element.iter():
        if node.text and NBSP in node.text:
            node.text = node.text.replace(NBSP, " ")
        if node is not element and node.tail and NBSP in node.tail:
            node.tail = node.tail.replace(NBSP, " ")


def _is_score_reset(element: etree._Element) -> bool:
    if local_name(element) != "qti-set-outcome-value":
        return False
    values = XmlDocument.children(element)
    return (
        len(values) == 1
        and local_name(values[0]) == "qti-base-value"
        and (values[0].text or "").strip() == "0"
    )


def _prepend_score_resets(doc: XmlDocument) -> None:
    identifiers: list[str] = []
    for outcome in doc.iter("qti-set-outcome-value"):
        identifier = outcome.get("identifier")
        if identifier and identifier not in identifiers:
            identifiers.append(identifier)

    for processing in list(doc.iter("qti-response-processing")):
        already_reset = set()
        for child in XmlDocument.children(processing):
            if not _is_score_reset(child):
                break
            already_reset.add(child.get("identifier"))

        missing = [i for i in identifiers if i not in already_reset]
        for identifier in reversed(missing):
            reset = doc.make_element("qti-set-outcome-value", like=processing)
            reset.set("identifier", identifier)
            value = doc.make_element("qti-base-value", like=processing)
            value.set("base-type", "integer")
            value.text = "0"
            reset.append(value)
            processing.insert(0, reset)


def _clean_rubric_divs(doc: XmlDocument) -> None:
    for rubric in doc.iter("qti-rubric-block"):
        for body in XmlDocument.children(rubric, "qti-content-body"):
            divs = [el for el in body.iter() if el is not body and local_name(el) == "div"]
            for div in divs:
                text = doc.text_content(div).strip()
                only_breaks = all(
                    local_name(el) == "br" for el in div.iter() if el is not div
                )
                if not text and only_breaks:
                    doc.remove(div)
                    continue
                while (
                    not (div.text or "").strip()
                    and len(div)
                    and local_name(div[0]) == "br"
                ):
                    doc.remove(div[0])


def qb_cleanup(doc: XmlDocument) -> None:
    """Clean up markup exported by the Cito question bank.

    Drops the ``defaultBody`` class and non-breaking spaces, flattens the
    layout wrappers the question bank adds, removes empty paragraphs and
    empty rubric divisions, and resets every outcome set during response
    processing to 0 before the processing rules run.
    """
    if doc.find("qti-item-body") is None:
        return

    for body in doc.iter("qti-item-body"):
        classes = [c for c in (body.get("class") or "").split() if c != "defaultBody"]
        if classes:
            body.set("class", " ".join(classes))
        elif "class" in body.attrib:
            del body.attrib["class"]
        _replace_nbsp(body)

    for element in doc.iter():
        if has_class(element, "content"):
            element.set("class", "container")

    for div in list(doc.iter("div")):
        if div.get("id") in _QB_WRAPPER_IDS or (div.get("class") or "").startswith(
            "cito_genclass"
        ):
            doc.unwrap(div)

    for paragraph in list(doc.iter("p")):
        parent = paragraph.getparent()
        if parent is not None and local_name(parent) == "td":
            doc.unwrap(paragraph)

    for paragraph in list(doc.iter("p")):
        if len(paragraph) == 0 and not (paragraph.text or "").strip():
            doc.remove(paragraph)

    _clean_rubric_divs(doc)
    _prepend_score_resets(doc)


def dep_convert(doc: XmlDocument) -> None:
    """Convert Dutch Extension Profile dialog triggers to popover buttons."""
    for trigger in list(doc.iter()):
        if not has_class(trigger, "dep-dialogTrigger"):
            continue
        reference = trigger.get("data-stimulus-idref")
        if not reference:
            continue
        if any(local_name(ancestor) == "button" for ancestor in trigger.iterancestors()):
            continue

        button = doc.make_element("button", like=trigger)
        button.set("popovertarget", reference)
        doc.wrap(trigger, button)
        for dialog in doc.iter():
            if dialog.get("id") == reference:
                dialog.set("popover", "")


def kebab_to_dashed(key: str) -> str:
    """Turn ``camelCase`` property keys into ``camel-case`` attribute names."""
    return re.sub(r"[A-Z]", lambda match: "-" + match.group().lower(), key)


def _properties_to_data(
    properties: etree._Element, pci: etree._Element, parent_key: str = ""
) -> None:
    for child in XmlDocument.children(properties):
        key = child.get("key")
        if not key:
            continue
        dashed = f"{parent_key}__{kebab_to_dashed(key)}" if parent_key else kebab_to_dashed(key)
        if XmlDocument.children(child):
            _properties_to_data(child, pci, dashed)
        else:
            pci.set(f"data-{dashed}", XmlDocument.text_content(child).strip())


def upgrade_pci(doc: XmlDocument) -> None:
    """Rewrite TAO style custom interactions to portable custom interactions.

    The ``qti-custom-interaction`` wrapper is replaced by its
    ``qti-portable-custom-interaction``; properties become data attributes,
    ``modules``/``markup`` get their QTI 3.0 names and the inline styles and
    base URL attributes are dropped.
    """
    for custom in list(doc.iter("qti-custom-interaction")):
        pci = next(
            (el for el in custom.iter() if local_name(el) == "qti-portable-custom-interaction"),
            None,
        )
        if pci is None:
            continue

        for style in [el for el in pci.iter() if local_name(el) == "style"]:
            doc.remove(style)

        roots = [
            el
            for el in pci.iter()
            if local_name(el) == "properties" and local_name(el.getparent()) != "properties"
        ]
        for properties in roots:
            _properties_to_data(properties, pci)
        for properties in roots:
            doc.remove(properties)

        modules = next((el for el in pci.iter() if local_name(el) == "modules"), None)
        if modules is not None:
            interaction_modules = doc.make_element("qti-interaction-modules", like=pci)
            for module in [el for el in modules.iter() if local_name(el) == "module"]:
                interaction_module = etree.SubElement(
                    interaction_modules, qualified("qti-interaction-module", namespace_of(pci))
                )
                interaction_module.set("id", (module.get("id") or "").split("/")[0])
                if module.get("primary-path") is not None:
                    interaction_module.set("primary-path", module.get("primary-path"))
            doc.replace(modules, interaction_modules)

        for name in ("data-base-ref", "data-base-item", "data-base-url"):
            pci.attrib.pop(name, None)

        type_identifier = pci.get("custom-interaction-type-identifier")
        if type_identifier:
            for module in pci.iter():
                if local_name(module) == "qti-interaction-module":
                    module.set("id", type_identifier)
            pci.set("module", type_identifier)

        response_identifier = custom.get("response-identifier")
        if response_identifier:
            pci.set("response-identifier", response_identifier)

        markup = next((el for el in pci.iter() if local_name(el) == "markup"), None)
        if markup is not None:
            doc.rename(markup, "qti-interaction-markup")

        pci.getparent().remove(pci)
        pci.tail = None
        doc.replace(custom, pci)
        logger.debug(f"Upgraded custom interaction {response_identifier or type_identifier}")


def _matches_pattern(filename: str, pattern: str) -> bool:
    """Match with a leading and/or trailing ``*`` wildcard, else exactly."""
    if len(pattern) > 1 and pattern.startswith("*") and pattern.endswith("*"):
        return pattern[1:-1] in filename
    if pattern.startswith("*"):
        return filename.endswith(pattern[1:])
    if pattern.endswith("*"):
        return filename.startswith(pattern[:-1])
    return filename == pattern


def strip_stylesheets(
    doc: XmlDocument, remove_pattern: str | None = None, keep_pattern: str | None = None
) -> None:
    """Remove ``qti-stylesheet`` references.

    Without patterns every stylesheet is removed. With ``keep_pattern`` only
    non-matching stylesheets go; otherwise those matching ``remove_pattern``.
    """
    for stylesheet in list(doc.iter("qti-stylesheet")):
        href = stylesheet.get("href")
        if not remove_pattern and not keep_pattern:
            doc.remove(stylesheet)
            continue
        if not href:
            continue
        if keep_pattern:
            drop = not _matches_pattern(href, keep_pattern)
        else:
            drop = _matches_pattern(href, remove_pattern)
        if drop:
            doc.remove(stylesheet)


def custom_types(doc: XmlDocument, param: str = "type") -> None:
    """Append ``-<value>`` to the tag of elements carrying a ``type:<value>`` class."""
    marker = f"{param}:"
    for element in doc.iter():
        for token in (element.get("class") or "").split():
            if not token.startswith(marker):
                continue
            suffix = f"-{token[len(marker):]}"
            name = local_name(element)
            if not name.endswith(suffix):
                doc.rename(element, name + suffix)


def to_mathml_webcomponents(doc: XmlDocument) -> None:
    """Rename MathML markup to ``math-ml`` / ``math-*`` custom elements."""
    for math in list(doc.iter("math")):
        for element in math.iter():
            if element is not math and isinstance(element.tag, str):
                doc.rename(element, f"math-{local_name(element)[1:]}")
        doc.rename(math, "math-ml")


def suffix(doc: XmlDocument, elements: Iterable[str], suffix: str) -> None:
    """Append ``-<suffix>`` to the tag of every element named in ``elements``."""
    for element in list(doc.iter(*elements)):
        doc.rename(element, f"{local_name(element)}-{suffix}")


def remove_double_slashes(url: str) -> str:
    url = re.sub(r"([^:]/)/+", r"\1", url).replace("//", "/")
    return url.replace("http:/", "http://", 1).replace("https:/", "https://", 1)


def change_asset_location(
    doc: XmlDocument,
    get_new_url: Callable[[str], str],
    attributes: Iterable[str] = QTI_REFERENCE_ATTRIBUTES,
    skip_base64: bool = True,
) -> None:
    """Rewrite asset references through ``get_new_url``.

    Args:
        doc: Document to rewrite.
        get_new_url: Maps an existing reference to its new location.
        attributes: Reference attributes to rewrite.
        skip_base64: Leave ``data:`` URIs untouched.
    """
    for attribute in attributes:
        for element in doc.iter():
            value = element.get(attribute)
            if value is None or (skip_base64 and value.startswith("data:")):
                continue
            element.set(attribute, remove_double_slashes(get_new_url(value)))
