"""Tests for media inventory and stripping."""

import base64

import pytest

from qti_convert.classifier import DocumentKind
from qti_convert.manifest import CP_QTI3_NS, parse_resources
from qti_convert.media_filter import MediaFile, MediaFilterEngine, media_type
from qti_convert.package import PackageEntry, WorkingSet
from qti_convert.xml_document import XmlDocument, local_name

from conftest import PNG_BYTES, qti3_item

VIDEO_ITEM = qti3_item(
    "<p>Watch this:</p>"
    '<qti-media-interaction response-identifier="RESPONSE" autostart="false">'
    '<video width="320" height="240"><source src="../media/clip.mp4" type="video/mp4"/></video>'
    "</qti-media-interaction>",
    identifier="ITM-v",
)

IMAGE_ITEM = qti3_item(
    '<p>Big <img src="../img/big.png" alt="big"/> and small <img src="../img/small.png" alt="small"/></p>',
    identifier="ITM-i",
)

MANIFEST = (
    f'<manifest xmlns="{CP_QTI3_NS}" identifier="PKG"><resources>'
    '<resource identifier="ITM-v" type="imsqti_item_xmlv3p0" href="items/v.xml">'
    '<file href="items/v.xml"/><dependency identifierref="RES-clip"/></resource>'
    '<resource identifier="RES-clip" type="webcontent" href="media/clip.mp4">'
    '<file href="media/clip.mp4"/></resource>'
    "</resources></manifest>"
)


@pytest.fixture
def engine() -> MediaFilterEngine:
    return MediaFilterEngine()


@pytest.fixture
def video_package() -> WorkingSet:
    return WorkingSet(
        [
            PackageEntry("imsmanifest.xml", MANIFEST, DocumentKind.MANIFEST),
            PackageEntry("items/v.xml", VIDEO_ITEM, DocumentKind.ITEM),
            PackageEntry("media/clip.mp4", b"\x00" * 2048),
            PackageEntry("img/logo.png", PNG_BYTES),
        ]
    )


@pytest.fixture
def image_package() -> WorkingSet:
    return WorkingSet(
        [
            PackageEntry("items/i.xml", IMAGE_ITEM, DocumentKind.ITEM),
            PackageEntry("img/big.png", b"\x00" * (3000 * 1024)),
            PackageEntry("img/small.png", b"\x00" * (500 * 1024)),
        ]
    )


class TestMediaType:
    """Tests for media_type."""

    @pytest.mark.parametrize(
        ("extension", "kind"),
        [("mp3", "audio"), (".MP4", "video"), ("svg", "image"), ("pdf", "unknown")],
    )
    def test_media_type(self, extension: str, kind: str) -> None:
        assert media_type(extension) == kind


class TestResolve:
    """Tests for MediaFilterEngine.resolve."""

    files = [
        MediaFile("media/song.mp3", "audio", "mp3", 800.0),
        MediaFile("media/clip.mp4", "video", "mp4", 4096.0),
        MediaFile("img/logo.png", "image", "png", 12.5),
    ]

    def test_by_class(self) -> None:
        assert MediaFilterEngine.resolve(self.files, ["audio"]) == {"song.mp3"}

    def test_by_extension(self) -> None:
        assert MediaFilterEngine.resolve(self.files, [".PNG"]) == {"logo.png"}

    def test_by_size(self) -> None:
        assert MediaFilterEngine.resolve(self.files, ["500kb"]) == {"song.mp3", "clip.mp4"}
        assert MediaFilterEngine.resolve(self.files, ["4mb"]) == set()

    def test_filters_combine(self) -> None:
        assert MediaFilterEngine.resolve(self.files, ["video", ".png"]) == {"clip.mp4", "logo.png"}

    @pytest.mark.parametrize("token", ["fonts", "bigkb"])
    def test_invalid_filter(self, token: str) -> None:
        with pytest.raises(ValueError, match=token):
            MediaFilterEngine.resolve(self.files, [token])


class TestInventory:
    """Tests for MediaFilterEngine.inventory."""

    def test_files_and_references(self, engine: MediaFilterEngine, video_package: WorkingSet) -> None:
        inventory = engine.inventory(video_package)

        clip = next(f for f in inventory if f.name == "media/clip.mp4")
        assert clip.kind == "video"
        assert clip.size_kb == 2.0
        assert MediaFile("clip.mp4", "video", "mp4", 0) in inventory
        assert not any(f.name.endswith(".xml") for f in inventory)


class TestStrip:
    """Tests for MediaFilterEngine.strip."""

    def test_media_interaction_replaced(
        self, engine: MediaFilterEngine, video_package: WorkingSet
    ) -> None:
        stripped = engine.strip(video_package, ["video"])

        assert "media/clip.mp4" not in stripped
        assert "img/logo.png" in stripped
        doc = XmlDocument.parse(stripped.get("items/v.xml").content)
        assert doc.find("qti-media-interaction") is None
        assert doc.find("video") is None
        image = doc.find("img")
        assert image.getparent() is doc.find("qti-item-body")
        assert image.get("alt") == "File: clip.mp4 removed"
        assert image.get("src").startswith("data:image/svg+xml;base64,")

    def test_manifest_resource_and_dependency_removed(
        self, engine: MediaFilterEngine, video_package: WorkingSet
    ) -> None:
        stripped = engine.strip(video_package, ["video"])

        resources = parse_resources(XmlDocument.parse(stripped.manifest.content))
        assert [r.identifier for r in resources] == ["ITM-v"]
        assert resources[0].dependencies == []

    def test_size_threshold(self, engine: MediaFilterEngine, image_package: WorkingSet) -> None:
        stripped = engine.strip(image_package, ["2mb"])

        assert stripped.paths() == ["items/i.xml", "img/small.png"]
        doc = XmlDocument.parse(stripped.get("items/i.xml").content)
        assert [image.get("alt") for image in doc.iter("img")] == ["File: big.png removed", "small"]

    def test_input_is_left_unmodified(
        self, engine: MediaFilterEngine, video_package: WorkingSet
    ) -> None:
        engine.strip(video_package, ["video"])

        assert "media/clip.mp4" in video_package
        assert video_package.get("items/v.xml").content == VIDEO_ITEM

    def test_untouched_documents_keep_their_content(
        self, engine: MediaFilterEngine, video_package: WorkingSet
    ) -> None:
        stripped = engine.strip(video_package, ["audio"])

        assert stripped.get("items/v.xml").content is VIDEO_ITEM
        assert stripped.manifest.content is MANIFEST

    def test_stylesheet_reference_removed(self, engine: MediaFilterEngine) -> None:
        item = qti3_item(
            "<p>Styled</p>",
            extra='<qti-stylesheet href="../css/style.css" type="text/css"/>',
        )
        package = WorkingSet(
            [
                PackageEntry("items/s.xml", item, DocumentKind.ITEM),
                PackageEntry("css/style.css", b"p {}"),
            ]
        )

        stripped = engine.strip(package, [".css"])

        doc = XmlDocument.parse(stripped.get("items/s.xml").content)
        assert doc.find("qti-stylesheet") is None
        assert doc.find("img") is None
        assert "css/style.css" not in stripped


class TestPlaceholder:
    """Tests for MediaFilterEngine.placeholder."""

    def test_svg_content(self) -> None:
        uri = MediaFilterEngine(placeholder_width=200, placeholder_height=50).placeholder("a.mp3")

        svg = XmlDocument.parse(base64.b64decode(uri.split(",", 1)[1]))
        assert local_name(svg.root) == "svg"
        assert svg.root.get("width") == "200"
        assert svg.root.get("height") == "50"
        assert svg.find("text").text == "File: a.mp3 removed"
