"""Shared fixtures: small QTI 2.1 and 3.0 packages built in memory."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

import pytest

QTI3_NS = "http://www.imsglobal.org/xsd/imsqtiasi_v3p0"

ITEM_21 = """<?xml version="1.0" encoding="UTF-8"?>
<assessmentItem xmlns="http://www.imsglobal.org/xsd/imsqti_v2p1"
    xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
    xsi:schemaLocation="http://www.imsglobal.org/xsd/imsqti_v2p1 http://www.imsglobal.org/xsd/qti/qtiv2p1/imsqti_v2p1.xsd"
    identifier="ITM-a" title="Item A" adaptive="false" timeDependent="false">
  <responseDeclaration identifier="RESPONSE" cardinality="single" baseType="identifier">
    <correctResponse>
      <value>A</value>
    </correctResponse>
  </responseDeclaration>
  <outcomeDeclaration identifier="SCORE" cardinality="single" baseType="float"/>
  <itemBody>
    <p>Is this a question?</p>
    <choiceInteraction responseIdentifier="RESPONSE" maxChoices="1" minChoices="0">
      <simpleChoice identifier="A">Yes</simpleChoice>
      <simpleChoice identifier="B">No</simpleChoice>
    </choiceInteraction>
    <object type="image/png" data="../img/logo.png" width="100">Logo</object>
  </itemBody>
</assessmentItem>
"""

TEST_21 = """<?xml version="1.0" encoding="UTF-8"?>
<assessmentTest xmlns="http://www.imsglobal.org/xsd/imsqti_v2p1" identifier="TST" title="Test">
  <testPart identifier="TP" navigationMode="nonlinear" submissionMode="simultaneous">
    <assessmentSection identifier="S1" title="Section" visible="true">
      <assessmentItemRef identifier="WRONG" href="../items/a.xml"/>
    </assessmentSection>
  </testPart>
</assessmentTest>
"""

MANIFEST_21 = """<?xml version="1.0" encoding="UTF-8"?>
<manifest xmlns="http://www.imsglobal.org/xsd/imscp_v1p1"
    xmlns:imsqti="http://www.imsglobal.org/xsd/imsqti_metadata_v2p1"
    identifier="PKG">
  <metadata>
    <schema>QTIv2.1 Package</schema>
    <schemaversion>1.0.0</schemaversion>
  </metadata>
  <organizations/>
  <resources>
    <resource identifier="TST" type="imsqti_test_xmlv2p1" href="tests/test.xml">
      <file href="tests/test.xml"/>
      <dependency identifierref="RES-a"/>
    </resource>
    <resource identifier="RES-a" type="imsqti_item_xmlv2p1" href="items/a.xml">
      <file href="items/a.xml"/>
      <dependency identifierref="RES-logo"/>
    </resource>
    <resource identifier="RES-logo" type="associatedcontent/imscc_xmlv1p1/learning-application-resource" href="img/logo.png">
      <file href="img/logo.png"/>
    </resource>
  </resources>
</manifest>
"""

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def qti3_item(body: str, identifier: str = "ITM-1", extra: str = "") -> str:
    """Wrap item body markup in a QTI 3.0 item document."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<qti-assessment-item xmlns="{QTI3_NS}" identifier="{identifier}" title="Item">'
        '<qti-outcome-declaration identifier="SCORE" cardinality="single" base-type="float"/>'
        f"<qti-item-body>{body}</qti-item-body>{extra}"
        "</qti-assessment-item>"
    )


def write_zip(path: Path, entries: dict[str, bytes | str]) -> Path:
    """Write a zip archive with the given entries."""
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return path


def read_zip(path: Path) -> dict[str, bytes]:
    with zipfile.ZipFile(path) as archive:
        return {name: archive.read(name) for name in archive.namelist()}


@pytest.fixture
def package_entries() -> dict[str, bytes | str]:
    """A QTI 2.1 package whose test refers to its item by a wrong identifier."""
    return {
        "imsmanifest.xml": MANIFEST_21,
        "tests/test.xml": TEST_21,
        "items/a.xml": ITEM_21,
        "img/logo.png": PNG_BYTES,
    }


@pytest.fixture
def package_zip(tmp_path: Path, package_entries: dict[str, bytes | str]) -> Path:
    return write_zip(tmp_path / "package.zip", package_entries)


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Drop handlers installed by setup_logging so they don't leak between tests."""
    yield
    logger = logging.getLogger("qti_convert")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
