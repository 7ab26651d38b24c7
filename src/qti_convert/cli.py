"""Click CLI entry point for the converter."""

from __future__ import annotations

from pathlib import Path

import click

from qti_convert.builder import DEFAULT_MEDIA_FILTERS, BuildResult, ConversionBuilder
from qti_convert.config import Settings
from qti_convert.errors import QtiConvertError
from qti_convert.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def default_output(source: Path, suffix: str) -> Path:
    """Output path next to the source: ``name.zip`` becomes ``name<suffix>.zip``."""
    if source.suffix.lower() == ".zip":
        return source.with_name(f"{source.stem}{suffix}.zip")
    return source.with_name(f"{source.name}{suffix}")


def print_warnings(warnings: list[str]) -> None:
    """Print up to ten warnings and a count of the rest."""
    if not warnings:
        return
    click.echo()
    click.echo(f"Warnings ({len(warnings)}):")
    for warning in warnings[:10]:
        click.echo(f"  - {warning}")
    if len(warnings) > 10:
        click.echo(f"  ... and {len(warnings) - 10} more")


def print_summary(result: BuildResult) -> None:
    click.echo(
        f"  Entries: {result.entries_converted} "
        f"(tests: {result.tests}, items: {result.items}, "
        f"manifests: {result.manifests}, other: {result.other})"
    )
    print_warnings(result.warnings)


def run(action, *args) -> BuildResult:
    """Run a builder action, turning failures into a CLI error."""
    try:
        return action(*args)
    except (QtiConvertError, FileNotFoundError, ValueError) as e:
        logger.debug("Command failed", exc_info=True)
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML settings file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Only log warnings and errors")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool, quiet: bool) -> None:
    """Convert QTI 2.x content packages to QTI 3.0."""
    settings = Settings.load(config_path) if config_path else Settings.default()
    try:
        setup_logging(settings, verbose, quiet)
        ctx.obj = ConversionBuilder(settings)
    except ValueError as e:
        raise click.ClickException(f"Invalid settings: {e}") from e


@cli.command()
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output zip file")
@click.pass_obj
def convert(builder: ConversionBuilder, package: Path, output: Path | None) -> None:
    """Convert a QTI 2.x package ZIP to QTI 3.0.

    PACKAGE: Path to the package ZIP file
    """
    output = output or default_output(package, "-qti3")
    click.echo(f"Converting {package.name}...")
    result = run(builder.convert_archive, package, output)
    print_summary(result)
    click.echo()
    click.echo(f"Successfully converted the package: {output}")


@cli.command("convert-folder")
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output folder")
@click.pass_obj
def convert_folder(builder: ConversionBuilder, folder: Path, output: Path | None) -> None:
    """Convert an extracted QTI 2.x package folder to QTI 3.0.

    FOLDER: Path to the package folder
    """
    output = output or default_output(folder, "-qti3")
    click.echo(f"Converting {folder.name}...")
    result = run(builder.convert_folder, folder, output)
    print_summary(result)
    click.echo()
    click.echo(f"Conversion completed successfully: {output}")


@cli.command("strip-media")
@click.argument("package", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--filter",
    "-f",
    "filters",
    multiple=True,
    help="Media class, .extension or size threshold (e.g. 500kb); repeatable",
)
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output zip file")
@click.pass_obj
def strip_media(
    builder: ConversionBuilder, package: Path, filters: tuple[str, ...], output: Path | None
) -> None:
    """Remove media files from a package ZIP.

    PACKAGE: Path to the package ZIP file
    """
    selected = [f.strip() for value in filters for f in value.split(",") if f.strip()]
    selected = selected or builder.settings.media.default_filters or DEFAULT_MEDIA_FILTERS
    output = output or default_output(package, "-stripped")
    click.echo(f"Stripping {', '.join(selected)} from {package.name}...")
    result = run(builder.strip_media, package, output, selected)
    print_summary(result)
    click.echo()
    click.echo(f"Successfully stripped the package: {output}")


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_obj
def manifest(builder: ConversionBuilder, folder: Path) -> None:
    """Create or complete imsmanifest.xml for a package folder.

    FOLDER: Path to the package folder
    """
    result = run(builder.create_manifest, folder)
    click.echo(f"Successfully created the manifest: {result.output}")


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_obj
def assessment(builder: ConversionBuilder, folder: Path) -> None:
    """Add an assessment test referencing every item in a folder.

    FOLDER: Path to the package folder
    """
    result = run(builder.create_assessment, folder)
    click.echo(f"Successfully added an assessment: {result.output}")


@cli.command()
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), help="Output zip file")
@click.pass_obj
def package(builder: ConversionBuilder, folder: Path, output: Path | None) -> None:
    """Complete the manifest of a folder and zip it as a package.

    FOLDER: Path to the package folder
    """
    output = output or folder.with_name(f"{folder.name}.zip")
    result = run(builder.package_folder, folder, output)
    click.echo(f"Done: {result.output}")


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
