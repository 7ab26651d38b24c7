"""Cross-document reconciliation of test item references with the manifest."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field

from qti_convert.classifier import DocumentKind
from qti_convert.errors import RootNotFoundError
from qti_convert.manifest import TEST_RESOURCE_TYPE, find_resource, normalize_href
from qti_convert.package import PackageEntry, WorkingSet
from qti_convert.xml_document import XmlDocument

logger = logging.getLogger(__name__)

ITEM_REF_NAMES = ("qti-assessment-item-ref", "assessmentItemRef")
ITEM_ROOT_NAMES = ("qti-assessment-item", "assessmentItem")


@dataclass
class UnresolvedItemRef:
    """An item reference that could not be matched to an item."""

    test_path: str
    identifier: str
    attempted_path: str | None
    reason: str

    def __str__(self) -> str:
        attempted = f" (tried {self.attempted_path})" if self.attempted_path else ""
        return f"{self.test_path}: item ref '{self.identifier}'{attempted}: {self.reason}"


@dataclass
class ReconcileReport:
    """Outcome of a reconciliation pass."""

    tests_checked: int = 0
    refs_checked: int = 0
    refs_rewritten: int = 0
    resources_renamed: int = 0
    modified: list[str] = field(default_factory=list)
    unresolved: list[UnresolvedItemRef] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [str(record) for record in self.unresolved]


def _relative_to(path: str, folder: str) -> str:
    return posixpath.relpath(path, folder) if folder else path


class ManifestReconciler:
    """Makes test item references agree with manifest resource identifiers.

    Runs after every entry of the package has been converted. An item
    reference whose identifier is not a manifest resource is resolved to an
    item file through its href; the reference, the manifest resource for
    that file and any dependencies on it are then renamed to the identifier
    the item declares itself.
    """

    def __init__(self, root_marker: str = "items"):
        self.root_marker = root_marker

    def from_root_marker(self, path: str) -> str:
        """Cut a path down to the part starting at the root marker segment.

        Raises:
            RootNotFoundError: If no path segment equals the root marker.
        """
        segments = normalize_href(path).split("/")
        if self.root_marker not in segments:
            raise RootNotFoundError(path, self.root_marker)
        return "/".join(segments[segments.index(self.root_marker):])

    def reconcile(self, working_set: WorkingSet) -> ReconcileReport:
        """Reconcile every test in the working set against the manifest.

        Only test and manifest entries are modified, and only entries that
        actually changed are reserialized.

        Args:
            working_set: Fully converted package.

        Returns:
            ReconcileReport listing changes and unresolved references.
        """
        report = ReconcileReport()
        manifest_entry = working_set.manifest
        if manifest_entry is None:
            logger.warning("Package has no manifest; skipping reconciliation")
            return report

        manifest = manifest_entry.as_document()
        manifest_dir = posixpath.dirname(manifest_entry.path)
        items = self._index_items(working_set)
        manifest_modified = False

        for test_entry in working_set.of_kind(DocumentKind.TEST):
            report.tests_checked += 1
            test = test_entry.as_document()
            test_modified, resources_modified = self._reconcile_test(
                test_entry, test, manifest, manifest_dir, items, report
            )
            if test_modified:
                working_set.replace_content(test_entry.path, test.serialize(), test)
                report.modified.append(test_entry.path)
            manifest_modified = manifest_modified or resources_modified

        if manifest_modified:
            working_set.replace_content(manifest_entry.path, manifest.serialize(), manifest)
            report.modified.append(manifest_entry.path)

        logger.info(
            f"Reconciled {report.tests_checked} tests: {report.refs_rewritten} item refs "
            f"rewritten, {report.resources_renamed} resources renamed, "
            f"{len(report.unresolved)} unresolved"
        )
        return report

    def _index_items(self, working_set: WorkingSet) -> dict[str, PackageEntry]:
        """Index items by full path and by root-marker path."""
        items: dict[str, PackageEntry] = {}
        for entry in working_set.of_kind(DocumentKind.ITEM):
            items[entry.path] = entry
            try:
                items.setdefault(self.from_root_marker(entry.path), entry)
            except RootNotFoundError:
                pass
        return items

    def _test_href(self, manifest: XmlDocument, test_path: str, manifest_dir: str) -> str:
        """Package path the manifest declares for a test."""
        resource = find_resource(manifest, href=_relative_to(test_path, manifest_dir))
        if resource is None:
            resource = next(
                (r for r in manifest.iter("resource") if r.get("type") == TEST_RESOURCE_TYPE),
                None,
            )
        if resource is None or not resource.get("href"):
            return test_path
        return normalize_href(posixpath.join(manifest_dir, resource.get("href")))

    def _reconcile_test(
        self,
        test_entry: PackageEntry,
        test: XmlDocument,
        manifest: XmlDocument,
        manifest_dir: str,
        items: dict[str, PackageEntry],
        report: ReconcileReport,
    ) -> tuple[bool, bool]:
        """Reconcile one test. Returns (test modified, manifest modified)."""
        test_modified = False
        manifest_modified = False
        base = posixpath.dirname(self._test_href(manifest, test_entry.path, manifest_dir))

        for ref in list(test.iter(*ITEM_REF_NAMES)):
            identifier = ref.get("identifier", "")
            report.refs_checked += 1
            if find_resource(manifest, identifier=identifier) is not None:
                continue

            href = ref.get("href")
            if not href:
                self._unresolved(report, test_entry.path, identifier, None, "item ref has no href")
                continue

            resolved = normalize_href(posixpath.normpath(posixpath.join(base, href)))
            item_entry = items.get(resolved)
            if item_entry is None:
                try:
                    resolved = self.from_root_marker(resolved)
                except RootNotFoundError as e:
                    # The rest of this test cannot be resolved either
                    self._unresolved(report, test_entry.path, identifier, resolved, str(e))
                    break
                item_entry = items.get(resolved)

            if item_entry is None:
                self._unresolved(report, test_entry.path, identifier, resolved, "no item at this path")
                continue

            item_root = item_entry.as_document().find(*ITEM_ROOT_NAMES)
            item_identifier = item_root.get("identifier") if item_root is not None else None
            if not item_identifier:
                self._unresolved(
                    report, test_entry.path, identifier, resolved, "item declares no identifier"
                )
                continue

            if item_identifier != identifier:
                ref.set("identifier", item_identifier)
                report.refs_rewritten += 1
                test_modified = True
                logger.debug(f"{test_entry.path}: item ref {identifier} -> {item_identifier}")

            if self._rename_resource(manifest, manifest_dir, item_entry.path, item_identifier):
                report.resources_renamed += 1
                manifest_modified = True

            if find_resource(manifest, identifier=item_identifier) is None:
                self._unresolved(
                    report,
                    test_entry.path,
                    item_identifier,
                    item_entry.path,
                    "manifest has no resource for this item",
                )

        return test_modified, manifest_modified

    def _rename_resource(
        self, manifest: XmlDocument, manifest_dir: str, item_path: str, identifier: str
    ) -> bool:
        """Give the manifest resource of an item the item's own identifier."""
        resource = find_resource(manifest, href=_relative_to(item_path, manifest_dir))
        if resource is None or resource.get("identifier") == identifier:
            return False

        old_identifier = resource.get("identifier")
        if find_resource(manifest, identifier=identifier) is not None:
            logger.warning(
                f"Not renaming resource {old_identifier} to {identifier}: "
                f"identifier already used in the manifest"
            )
            return False

        resource.set("identifier", identifier)
        for dependency in manifest.iter("dependency"):
            if dependency.get("identifierref") == old_identifier:
                dependency.set("identifierref", identifier)
        logger.debug(f"Renamed manifest resource {old_identifier} -> {identifier}")
        return True

    @staticmethod
    def _unresolved(
        report: ReconcileReport,
        test_path: str,
        identifier: str,
        attempted_path: str | None,
        reason: str,
    ) -> None:
        record = UnresolvedItemRef(test_path, identifier, attempted_path, reason)
        report.unresolved.append(record)
        logger.warning(f"Unresolved item reference: {record}")
