"""Orchestration of package conversion, media stripping and authoring helpers."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Iterable

from qti_convert.classifier import MANIFEST_NAME, DocumentKind
from qti_convert.config import Settings
from qti_convert.converter import PackageConverter
from qti_convert.manifest import create_assessment_test, create_or_complete_manifest
from qti_convert.media_filter import MediaFilterEngine
from qti_convert.package import (
    PackageEntry,
    WorkingSet,
    iter_archive,
    iter_folder,
    write_archive,
    write_folder,
    zip_folder,
)
from qti_convert.reconciler import ManifestReconciler

logger = logging.getLogger(__name__)

DEFAULT_MEDIA_FILTERS = ["audio", "video"]
GENERATED_TEST_NAME = "test.xml"


@dataclass
class BuildResult:
    """Result of a build operation."""

    entries_converted: int = 0
    tests: int = 0
    items: int = 0
    manifests: int = 0
    other: int = 0
    total_time_ms: int = 0
    warnings: list[str] = field(default_factory=list)
    output: Path | None = None


class ConversionBuilder:
    """Runs whole-package operations and reports on them."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.converter = PackageConverter(settings)
        self.reconciler = ManifestReconciler(settings.reconcile.root_marker)
        self.media = MediaFilterEngine(
            placeholder_width=settings.media.placeholder_width,
            placeholder_height=settings.media.placeholder_height,
        )

    def convert_archive(
        self, source: str | Path | BinaryIO, destination: str | Path | BinaryIO
    ) -> BuildResult:
        """Convert a QTI 2.x package archive into a QTI 3.0 archive.

        Args:
            source: Package zip path or binary stream.
            destination: Output zip path or binary stream.

        Returns:
            BuildResult with entry counts and reconciliation warnings.
        """
        start_time = time.time()
        logger.info(f"Starting conversion of package: {_label(source)}")

        working_set, warnings = self._convert(iter_archive(source))
        write_archive(working_set, destination)

        return self._result(working_set, warnings, start_time, destination)

    def convert_folder(self, source: str | Path, destination: str | Path) -> BuildResult:
        """Convert an extracted package folder into a QTI 3.0 folder."""
        start_time = time.time()
        logger.info(f"Starting conversion of folder: {Path(source).name}")

        working_set, warnings = self._convert(iter_folder(source))
        write_folder(working_set, destination)

        return self._result(working_set, warnings, start_time, destination)

    def strip_media(
        self,
        source: str | Path | BinaryIO,
        destination: str | Path | BinaryIO,
        filters: Iterable[str] | None = None,
    ) -> BuildResult:
        """Remove media matching the filters from a package archive.

        Args:
            source: Package zip path or binary stream.
            destination: Output zip path or binary stream.
            filters: Media filters. Defaults to the configured filters, or
                audio and video when none are configured.

        Raises:
            ValueError: If a filter is not recognized.
        """
        start_time = time.time()
        filters = list(filters or self.settings.media.default_filters or DEFAULT_MEDIA_FILTERS)
        logger.info(f"Stripping {', '.join(filters)} from package: {_label(source)}")

        working_set = WorkingSet(PackageEntry(path, content) for path, content in iter_archive(source))
        stripped = self.media.strip(working_set, filters)
        write_archive(stripped, destination)

        return self._result(stripped, [], start_time, destination)

    def create_manifest(self, folder: str | Path) -> BuildResult:
        """Write a complete ``imsmanifest.xml`` into a package folder."""
        start_time = time.time()
        folder = Path(folder)
        manifest_path = folder / MANIFEST_NAME
        manifest_path.write_text(create_or_complete_manifest(folder), encoding="utf-8")
        logger.info(f"Wrote {manifest_path}")

        total_time_ms = int((time.time() - start_time) * 1000)
        return BuildResult(
            entries_converted=1, manifests=1, total_time_ms=total_time_ms, output=manifest_path
        )

    def create_assessment(self, folder: str | Path, name: str = GENERATED_TEST_NAME) -> BuildResult:
        """Write an assessment test referencing every item in a folder."""
        start_time = time.time()
        test_path = Path(folder) / name
        test_path.write_text(create_assessment_test(folder), encoding="utf-8")
        logger.info(f"Wrote {test_path}")

        total_time_ms = int((time.time() - start_time) * 1000)
        return BuildResult(
            entries_converted=1, tests=1, total_time_ms=total_time_ms, output=test_path
        )

    def package_folder(self, folder: str | Path, destination: str | Path) -> BuildResult:
        """Complete the manifest of a folder and zip it as a package."""
        start_time = time.time()
        self.create_manifest(folder)
        archive = zip_folder(folder, destination)
        logger.info(f"Packaged {Path(folder).name} as {archive}")

        total_time_ms = int((time.time() - start_time) * 1000)
        return BuildResult(manifests=1, total_time_ms=total_time_ms, output=archive)

    def _convert(self, entries: Iterable[tuple[str, bytes]]) -> tuple[WorkingSet, list[str]]:
        """Convert all entries, then reconcile the finished working set."""
        working_set = self.converter.convert(entries)
        if not self.settings.reconcile.enabled:
            return working_set, []
        report = self.reconciler.reconcile(working_set)
        return working_set, report.warnings

    def _result(
        self,
        working_set: WorkingSet,
        warnings: list[str],
        start_time: float,
        destination: str | Path | BinaryIO,
    ) -> BuildResult:
        counts = {kind: len(working_set.of_kind(kind)) for kind in DocumentKind}
        total_time_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"Build complete: {len(working_set)} entries, "
            f"{len(warnings)} warnings, {total_time_ms}ms"
        )

        return BuildResult(
            entries_converted=len(working_set),
            tests=counts[DocumentKind.TEST],
            items=counts[DocumentKind.ITEM],
            manifests=counts[DocumentKind.MANIFEST],
            other=counts[DocumentKind.OTHER],
            total_time_ms=total_time_ms,
            warnings=warnings,
            output=Path(destination) if isinstance(destination, (str, Path)) else None,
        )


def _label(source: str | Path | BinaryIO) -> str:
    if isinstance(source, (str, Path)):
        return Path(source).name
    return getattr(source, "name", "<stream>")
