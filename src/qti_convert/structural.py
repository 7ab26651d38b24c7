"""Structural QTI 2.x to 3.0 conversion through an XSLT stylesheet."""

from __future__ import annotations

import logging
from pathlib import Path

from lxml import etree

from qti_convert.errors import ConversionEngineError, ConversionFailure
from qti_convert.xml_document import XmlDocument

logger = logging.getLogger(__name__)

DEFAULT_STYLESHEET = Path(__file__).parent / "stylesheets" / "qti2x_to_30.xsl"


class StructuralConverter:
    """Applies the 2.x to 3.0 renaming stylesheet to whole documents.

    The stylesheet is compiled on first use and reused for every document
    of the run.
    """

    def __init__(self, stylesheet: str | Path | None = None):
        self.stylesheet = Path(stylesheet) if stylesheet else DEFAULT_STYLESHEET
        self._transform: etree.XSLT | None = None

    @property
    def transform(self) -> etree.XSLT:
        if self._transform is None:
            self._transform = self._load()
        return self._transform

    def _load(self) -> etree.XSLT:
        """Compile the configured stylesheet."""
        if not self.stylesheet.exists():
            raise ConversionEngineError(f"XSLT stylesheet not found: {self.stylesheet}")

        logger.debug(f"Loading XSLT stylesheet: {self.stylesheet}")
        try:
            return etree.XSLT(etree.parse(str(self.stylesheet)))
        except (etree.XMLSyntaxError, etree.XSLTParseError) as e:
            raise ConversionEngineError(
                f"Cannot compile stylesheet {self.stylesheet}: {e}"
            ) from e

    def convert(self, xml: str | bytes, path: str | None = None) -> str:
        """Convert a QTI 2.x document to QTI 3.0 markup.

        Args:
            xml: Document content.
            path: Package entry path, used in error messages.

        Returns:
            The converted document as text.

        Raises:
            ConversionEngineError: If the stylesheet cannot be loaded.
            ConversionFailure: If the document is malformed or the
                transformation fails.
        """
        return self.convert_document(XmlDocument.parse(xml, path)).serialize()

    def convert_document(self, doc: XmlDocument) -> XmlDocument:
        """Convert a parsed document and return the result as a new document."""
        transform = self.transform
        try:
            result = transform(doc.tree)
        except etree.XSLTApplyError as e:
            for entry in transform.error_log:
                logger.error(f"  {entry}")
            raise ConversionFailure(f"XSLT transformation failed: {e}", doc.path) from e

        for entry in transform.error_log:
            logger.warning(f"XSLT: {entry.message}")

        if result.getroot() is None:
            raise ConversionFailure("XSLT transformation produced no document", doc.path)
        return XmlDocument.parse(bytes(result), doc.path)
