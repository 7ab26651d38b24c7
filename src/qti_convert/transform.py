"""Chainable rule application over a single parsed document."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from qti_convert import transformers
from qti_convert.xml_document import XmlDocument

logger = logging.getLogger(__name__)

# Order matters: media objects are rewritten before the question bank
# cleanup inspects the body, and custom interactions are upgraded last.
ITEM_PIPELINE: tuple[str, ...] = (
    "object_to_img",
    "object_to_video",
    "object_to_audio",
    "ssml_sub_to_span",
    "strip_material_info",
    "min_choices_to_one",
    "external_scored",
    "qb_cleanup",
    "dep_convert",
    "upgrade_pci",
)

STEPS: dict[str, Callable[[XmlDocument], None]] = {
    "object_to_img": transformers.object_to_img,
    "object_to_video": transformers.object_to_video,
    "object_to_audio": transformers.object_to_audio,
    "ssml_sub_to_span": transformers.ssml_sub_to_span,
    "strip_material_info": transformers.strip_material_info,
    "min_choices_to_one": transformers.min_choices_to_one,
    "external_scored": transformers.external_scored,
    "qb_cleanup": transformers.qb_cleanup,
    "dep_convert": transformers.dep_convert,
    "upgrade_pci": transformers.upgrade_pci,
    "strip_stylesheets": transformers.strip_stylesheets,
    "custom_types": transformers.custom_types,
    "to_mathml_webcomponents": transformers.to_mathml_webcomponents,
}


def check_item_pipeline(steps: Iterable[str]) -> tuple[str, ...]:
    """Validate a configured item pipeline.

    A configured pipeline may leave steps out but must keep the order of
    ``ITEM_PIPELINE``.

    Returns:
        The steps as a tuple.

    Raises:
        ValueError: If a step is unknown or out of order, or none are given.
    """
    steps = tuple(steps)
    if not steps:
        raise ValueError("Item pipeline is empty")

    unknown = [name for name in steps if name not in ITEM_PIPELINE]
    if unknown:
        raise ValueError(f"Unknown item pipeline steps: {', '.join(unknown)}")

    positions = [ITEM_PIPELINE.index(name) for name in steps]
    for previous, current, name in zip(positions, positions[1:], steps[1:]):
        if current <= previous:
            raise ValueError(
                f"Item pipeline step {name} is out of order; steps must follow "
                f"{', '.join(ITEM_PIPELINE)}"
            )
    return steps


class TransformChain:
    """Parses a document once and applies rules to the shared tree.

    Every rule method returns the chain so calls can be strung together;
    ``serialize()`` ends the chain.

    Example:
        xml = TransformChain(item_xml).object_to_img().min_choices_to_one().serialize()
    """

    def __init__(self, xml: str | bytes | XmlDocument, path: str | None = None):
        self.doc = xml if isinstance(xml, XmlDocument) else XmlDocument.parse(xml, path)

    def apply(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "TransformChain":
        """Run any rule callable against the document."""
        fn(self.doc, *args, **kwargs)
        return self

    def run(self, steps: Iterable[str]) -> "TransformChain":
        """Run named steps in order.

        Args:
            steps: Step names from ``STEPS``.

        Returns:
            Self for method chaining.

        Raises:
            ValueError: If a step name is unknown.
        """
        for name in steps:
            try:
                step = STEPS[name]
            except KeyError:
                raise ValueError(f"Unknown transform step: {name}") from None
            logger.debug(f"Applying {name} to {self.doc.path or 'document'}")
            step(self.doc)
        return self

    def run_item_pipeline(self) -> "TransformChain":
        return self.run(ITEM_PIPELINE)

    def object_to_img(self) -> "TransformChain":
        return self.apply(transformers.object_to_img)

    def object_to_video(self) -> "TransformChain":
        return self.apply(transformers.object_to_video)

    def object_to_audio(self) -> "TransformChain":
        return self.apply(transformers.object_to_audio)

    def ssml_sub_to_span(self) -> "TransformChain":
        return self.apply(transformers.ssml_sub_to_span)

    def strip_material_info(self) -> "TransformChain":
        return self.apply(transformers.strip_material_info)

    def min_choices_to_one(self) -> "TransformChain":
        return self.apply(transformers.min_choices_to_one)

    def external_scored(self) -> "TransformChain":
        return self.apply(transformers.external_scored)

    def qb_cleanup(self) -> "TransformChain":
        return self.apply(transformers.qb_cleanup)

    def dep_convert(self) -> "TransformChain":
        return self.apply(transformers.dep_convert)

    def upgrade_pci(self) -> "TransformChain":
        return self.apply(transformers.upgrade_pci)

    def strip_stylesheets(
        self, remove_pattern: str | None = None, keep_pattern: str | None = None
    ) -> "TransformChain":
        return self.apply(transformers.strip_stylesheets, remove_pattern, keep_pattern)

    def custom_types(self, param: str = "type") -> "TransformChain":
        return self.apply(transformers.custom_types, param)

    def mathml(self) -> "TransformChain":
        return self.apply(transformers.to_mathml_webcomponents)

    def suffix(self, elements: Iterable[str], suffix: str) -> "TransformChain":
        return self.apply(transformers.suffix, elements, suffix)

    def change_asset_location(
        self,
        get_new_url: Callable[[str], str],
        attributes: Iterable[str] = transformers.QTI_REFERENCE_ATTRIBUTES,
        skip_base64: bool = True,
    ) -> "TransformChain":
        return self.apply(transformers.change_asset_location, get_new_url, attributes, skip_base64)

    def serialize(self) -> str:
        """Serialize the transformed document."""
        return self.doc.serialize()
