"""Settings and configuration loading for the converter."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from qti_convert.transform import ITEM_PIPELINE

DEFAULT_ITEM_PIPELINE = list(ITEM_PIPELINE)


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    file: str | None = None
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class ConversionSettings:
    """Document conversion configuration."""

    stylesheet: Path | None = None
    always_transform_items: bool = False
    item_pipeline: list[str] = field(default_factory=lambda: list(DEFAULT_ITEM_PIPELINE))


@dataclass
class ReconcileSettings:
    """Manifest reconciliation configuration."""

    enabled: bool = True
    root_marker: str = "items"


@dataclass
class MediaSettings:
    """Media stripping configuration."""

    default_filters: list[str] = field(default_factory=list)
    placeholder_width: int = 300
    placeholder_height: int = 75


@dataclass
class Settings:
    """Main settings container for the converter."""

    logging: LoggingSettings = field(default_factory=LoggingSettings)
    conversion: ConversionSettings = field(default_factory=ConversionSettings)
    reconcile: ReconcileSettings = field(default_factory=ReconcileSettings)
    media: MediaSettings = field(default_factory=MediaSettings)

    @classmethod
    def load(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file.

        Args:
            path: Path to the settings YAML file.

        Returns:
            Settings instance populated from the file.

        Raises:
            FileNotFoundError: If the settings file doesn't exist.
            yaml.YAMLError: If the file contains invalid YAML.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "Settings":
        """Create Settings from a dictionary."""
        logging_data = data.get("logging") or {}
        logging_settings = LoggingSettings(
            level=logging_data.get("level", "INFO"),
            file=logging_data.get("file"),
            format=logging_data.get(
                "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ),
        )

        conversion_data = data.get("conversion") or {}
        stylesheet = conversion_data.get("stylesheet")
        conversion_settings = ConversionSettings(
            stylesheet=Path(stylesheet) if stylesheet else None,
            always_transform_items=conversion_data.get("always_transform_items", False),
            item_pipeline=conversion_data.get("item_pipeline", list(DEFAULT_ITEM_PIPELINE)),
        )

        reconcile_data = data.get("reconcile") or {}
        reconcile_settings = ReconcileSettings(
            enabled=reconcile_data.get("enabled", True),
            root_marker=reconcile_data.get("root_marker", "items"),
        )

        media_data = data.get("media") or {}
        media_settings = MediaSettings(
            default_filters=media_data.get("default_filters", []),
            placeholder_width=media_data.get("placeholder_width", 300),
            placeholder_height=media_data.get("placeholder_height", 75),
        )

        return cls(
            logging=logging_settings,
            conversion=conversion_settings,
            reconcile=reconcile_settings,
            media=media_settings,
        )

    @classmethod
    def default(cls) -> "Settings":
        """Create Settings with default values."""
        return cls()
