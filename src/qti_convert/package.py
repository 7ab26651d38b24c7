"""Package entries, the in-memory working set, and archive/folder I/O."""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator

from qti_convert.classifier import DocumentKind
from qti_convert.errors import ConversionFailure
from qti_convert.xml_document import XmlDocument

logger = logging.getLogger(__name__)

OS_ARTIFACT_NAMES = frozenset({".DS_Store", "Thumbs.db"})
OS_ARTIFACT_DIRS = frozenset({"__MACOSX"})


def normalize_path(path: str) -> str:
    """Normalize an entry path to a relative POSIX path."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


def is_os_artifact(path: str) -> bool:
    """Check whether an entry is operating system clutter rather than content."""
    parts = normalize_path(path).split("/")
    return parts[-1] in OS_ARTIFACT_NAMES or any(part in OS_ARTIFACT_DIRS for part in parts[:-1])


@dataclass
class PackageEntry:
    """One file of a content package."""

    path: str
    content: bytes | str
    kind: DocumentKind = DocumentKind.OTHER
    document: XmlDocument | None = field(default=None, repr=False, compare=False)

    @property
    def name(self) -> str:
        return posixpath.basename(self.path)

    @property
    def is_xml(self) -> bool:
        return self.path.lower().endswith(".xml")

    def as_bytes(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode("utf-8")
        return self.content

    def as_document(self) -> XmlDocument:
        """Return the parsed document, parsing the content on first use."""
        if self.document is None:
            self.document = XmlDocument.parse(self.content, self.path)
        return self.document


class WorkingSet:
    """Ordered collection of package entries keyed by path."""

    def __init__(self, entries: Iterable[PackageEntry] = ()):
        self._entries: dict[str, PackageEntry] = {}
        for entry in entries:
            self.add(entry)

    def add(self, entry: PackageEntry) -> None:
        entry.path = normalize_path(entry.path)
        self._entries[entry.path] = entry

    def get(self, path: str) -> PackageEntry | None:
        return self._entries.get(normalize_path(path))

    def remove(self, path: str) -> None:
        self._entries.pop(normalize_path(path), None)

    def of_kind(self, kind: DocumentKind) -> list[PackageEntry]:
        return [entry for entry in self._entries.values() if entry.kind is kind]

    @property
    def manifest(self) -> PackageEntry | None:
        """The package manifest, preferring the one closest to the root."""
        manifests = self.of_kind(DocumentKind.MANIFEST)
        if not manifests:
            return None
        return min(manifests, key=lambda entry: entry.path.count("/"))

    def replace_content(
        self, path: str, content: bytes | str, document: XmlDocument | None = None
    ) -> None:
        """Swap in new content for an entry, keeping its kind."""
        entry = self._entries[normalize_path(path)]
        entry.content = content
        entry.document = document

    def paths(self) -> list[str]:
        return list(self._entries)

    def __iter__(self) -> Iterator[PackageEntry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and normalize_path(path) in self._entries


def iter_archive(source: str | Path | BinaryIO) -> Iterator[tuple[str, bytes]]:
    """Yield ``(path, content)`` for each file in a zip archive.

    Entries are produced once, in archive order. Directory entries and OS
    artifacts are skipped.

    Args:
        source: Archive path or binary stream. Non-seekable streams are
            buffered first.

    Raises:
        ConversionFailure: If the source is not a zip archive.
    """
    if not isinstance(source, (str, Path)) and not source.seekable():
        source = io.BytesIO(source.read())

    try:
        archive = zipfile.ZipFile(source, "r")
    except zipfile.BadZipFile as e:
        raise ConversionFailure(f"not a zip archive ({e})", str(source)) from e

    with archive:
        for info in archive.infolist():
            if info.is_dir() or is_os_artifact(info.filename):
                continue
            with archive.open(info) as member:
                yield normalize_path(info.filename), member.read()


def iter_folder(root: str | Path) -> Iterator[tuple[str, bytes]]:
    """Yield ``(path, content)`` for each file below a folder, sorted by path."""
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Package folder not found: {root}")

    for file_path in sorted(p for p in root.rglob("*") if p.is_file()):
        relative = file_path.relative_to(root).as_posix()
        if is_os_artifact(relative):
            continue
        yield relative, file_path.read_bytes()


def write_archive(
    working_set: WorkingSet, destination: str | Path | BinaryIO | None = None
) -> bytes | None:
    """Write a working set as a deflated zip archive.

    A path destination is written to a temporary sibling first and renamed
    once the archive is complete.

    Args:
        working_set: Entries to write.
        destination: Target path or stream. When None the archive bytes are
            returned.

    Returns:
        The archive bytes when no destination is given, otherwise None.
    """
    if destination is None:
        buffer = io.BytesIO()
        _write_zip(working_set, buffer)
        return buffer.getvalue()

    if isinstance(destination, (str, Path)):
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(destination.name + ".part")
        _write_zip(working_set, partial)
        partial.replace(destination)
        logger.debug(f"Wrote {len(working_set)} entries to {destination}")
        return None

    _write_zip(working_set, destination)
    return None


def _write_zip(working_set: WorkingSet, target: Path | BinaryIO) -> None:
    with zipfile.ZipFile(target, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for entry in working_set:
            if is_os_artifact(entry.path):
                continue
            archive.writestr(entry.path, entry.as_bytes())


def write_folder(working_set: WorkingSet, root: str | Path) -> Path:
    """Write a working set as a directory tree.

    Returns:
        The folder written to.
    """
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    resolved_root = root.resolve()

    for entry in working_set:
        if is_os_artifact(entry.path):
            continue
        target = root / entry.path
        if not target.resolve().is_relative_to(resolved_root):
            logger.warning(f"Skipping entry outside the package folder: {entry.path}")
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(entry.as_bytes())

    logger.debug(f"Wrote {len(working_set)} entries to {root}")
    return root


def zip_folder(folder: str | Path, destination: str | Path) -> Path:
    """Package a folder as a zip archive."""
    destination = Path(destination)
    working_set = WorkingSet(PackageEntry(path, content) for path, content in iter_folder(folder))
    write_archive(working_set, destination)
    return destination
