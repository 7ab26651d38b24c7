"""QTI 2.x to QTI 3.0 Package Converter.

A Python library and CLI tool for converting QTI 2.x content packages to
QTI 3.0, reconciling test item references with the manifest, and stripping
media from packages.
"""

from qti_convert.config import Settings
from qti_convert.errors import (
    ConversionEngineError,
    ConversionFailure,
    NamespaceNotFound,
    QtiConvertError,
    RootNotFoundError,
)
from qti_convert.classifier import DocumentClassifier, DocumentKind
from qti_convert.xml_document import XmlDocument
from qti_convert.transform import TransformChain
from qti_convert.package import PackageEntry, WorkingSet
from qti_convert.converter import PackageConverter
from qti_convert.reconciler import ManifestReconciler, ReconcileReport
from qti_convert.media_filter import MediaFilterEngine
from qti_convert.builder import BuildResult, ConversionBuilder

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "QtiConvertError",
    "ConversionEngineError",
    "ConversionFailure",
    "NamespaceNotFound",
    "RootNotFoundError",
    "DocumentClassifier",
    "DocumentKind",
    "XmlDocument",
    "TransformChain",
    "PackageEntry",
    "WorkingSet",
    "PackageConverter",
    "ManifestReconciler",
    "ReconcileReport",
    "MediaFilterEngine",
    "ConversionBuilder",
    "BuildResult",
]
