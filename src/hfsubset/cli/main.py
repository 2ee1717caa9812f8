"""
Main Typer CLI application for hfsubset.

This module provides the command-line interface with three subcommands:
- subset: Extract the drainage basin upstream of one origin
- run: Process a batch of subset requests from a TOML configuration
- layers: List the layers of a hydrofabric GeoPackage
"""

import logging
import os
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated

import geopandas as gpd
import httpx
import pandas as pd
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from hfsubset.config import (
    DEFAULT_BASE_URL,
    DEFAULT_LAYERS,
    DEFAULT_MAX_WORKERS,
    DEFAULT_NETWORK_INDEX,
    ENV_BASE_URL,
    ENV_BOUNDARIES,
    ENV_CACHE_DIR,
    SettingsConfig,
    SubsetRequest,
    load_config,
)
from hfsubset.core import (
    CanonicalId,
    Coordinate,
    ExternalFeatureRef,
    GeoPackageWriter,
    HydroLocationURI,
    LegacyComid,
    OriginReference,
    PartitionDataset,
    PartitionSource,
    SubsetError,
    load_boundaries,
    subset_network,
)
from hfsubset.download import HTTPPartitionSource, LocalPartitionSource, load_network_index, resolve_index_uri
from hfsubset.lookup import NLDIClient

# Initialize Typer app
app = typer.Typer(
    name="hfsubset",
    help="Extract upstream drainage basins from a national hydrofabric",
    no_args_is_help=True,
    add_completion=False,
)

# Initialize Rich console for formatted output
console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_OUTFILE = "hydrofabric.gpkg"


def _setup_logging(verbose: bool, quiet: bool) -> None:
    """
    Configure logging level based on verbosity flags.

    Args:
        verbose: Enable debug logging
        quiet: Suppress all logging except errors
    """
    if quiet:
        logging.getLogger().setLevel(logging.ERROR)
    elif verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    else:
        logging.getLogger().setLevel(logging.INFO)


def _apply_env(settings: SettingsConfig) -> SettingsConfig:
    """Fill settings left at their defaults from HFSUBSET_* environment variables."""
    updates: dict[str, str] = {}

    if settings.base_url == DEFAULT_BASE_URL and os.getenv(ENV_BASE_URL):
        updates["base_url"] = os.environ[ENV_BASE_URL]
    if settings.cache_dir is None and os.getenv(ENV_CACHE_DIR):
        updates["cache_dir"] = os.environ[ENV_CACHE_DIR]
    if settings.boundaries is None and os.getenv(ENV_BOUNDARIES):
        updates["boundaries"] = os.environ[ENV_BOUNDARIES]

    if not updates:
        return settings

    logger.debug(f"Settings from environment: {updates}")
    return SettingsConfig.model_validate(settings.model_dump() | updates)


def _request_reference(request: SubsetRequest) -> OriginReference:
    """Convert the origin of a validated request to an OriginReference."""
    if request.id is not None:
        return CanonicalId(request.id)
    if request.comid is not None:
        return LegacyComid(request.comid)
    if request.hl_uri is not None:
        return HydroLocationURI(request.hl_uri)
    if request.nldi_feature is not None:
        return ExternalFeatureRef(request.nldi_feature.source, request.nldi_feature.feature_id)
    if request.loc is not None:
        return Coordinate(*request.loc)

    raise ValueError(f"Request '{request.name}' has no origin")


def _parse_nldi_feature(value: str) -> dict[str, str]:
    source, sep, feature_id = value.partition(":")
    if not sep:
        raise typer.BadParameter("Expected SOURCE:ID, e.g. nwissite:USGS-08279500", param_hint="--nldi-feature")
    return {"featureSource": source, "featureID": feature_id}


def _parse_loc(value: str) -> tuple[float, float]:
    try:
        lon, lat = (float(part.strip()) for part in value.split(","))
    except ValueError:
        raise typer.BadParameter("Expected LON,LAT, e.g. -105.07,40.57", param_hint="--loc") from None
    return lon, lat


@dataclass
class SubsetContext:
    """Collaborators shared by every request of a command."""

    source: PartitionSource
    network: pd.DataFrame | None
    lookup: NLDIClient
    boundaries: gpd.GeoDataFrame | None
    max_workers: int


@contextmanager
def _open_context(settings: SettingsConfig) -> Iterator[SubsetContext]:
    """Build the partition source, network index, lookup and boundaries for a run."""
    with ExitStack() as stack:
        client = stack.enter_context(httpx.Client(timeout=3600.0, follow_redirects=True))
        lookup = stack.enter_context(NLDIClient(settings.nldi_url))

        source: PartitionSource
        if settings.data_dir is not None:
            source = LocalPartitionSource(Path(settings.data_dir).expanduser(), settings.partition_template)
        else:
            source = HTTPPartitionSource(
                settings.base_url,
                settings.partition_template,
                cache_dir=Path(settings.cache_dir).expanduser() if settings.cache_dir else None,
                overwrite=settings.cache_overwrite,
                client=client,
            )

        network = None
        if settings.network_index is not None:
            uri = resolve_index_uri(settings.base_url, settings.network_index)
            cache_dir = Path(settings.cache_dir).expanduser() if settings.cache_dir else None
            network = load_network_index(uri, cache_dir=cache_dir, client=client)

        boundaries = None
        if settings.boundaries is not None:
            boundaries = load_boundaries(str(Path(settings.boundaries).expanduser()))

        yield SubsetContext(
            source=source,
            network=network,
            lookup=lookup,
            boundaries=boundaries,
            max_workers=settings.max_workers,
        )


def _run_request(request: SubsetRequest, context: SubsetContext, outfile: Path, overwrite: bool) -> Path:
    writer = GeoPackageWriter(outfile, overwrite=overwrite)
    return subset_network(
        _request_reference(request),
        context.source,
        layers=request.layers,
        network=context.network,
        lookup=context.lookup,
        boundaries=context.boundaries,
        writer=writer,
        max_workers=context.max_workers,
    )


@app.command("subset")
def subset_command(
    id: Annotated[
        str | None,
        typer.Option("--id", help="Canonical hydrofabric id (e.g. wb-1234, nex-1235)"),
    ] = None,
    comid: Annotated[
        int | None,
        typer.Option("--comid", help="NHDPlusV2 COMID"),
    ] = None,
    hl_uri: Annotated[
        str | None,
        typer.Option("--hl-uri", help="Hydrologic location URI (e.g. Gages-06752260)"),
    ] = None,
    nldi_feature: Annotated[
        str | None,
        typer.Option("--nldi-feature", help="NLDI feature as SOURCE:ID (e.g. nwissite:USGS-08279500)"),
    ] = None,
    loc: Annotated[
        str | None,
        typer.Option("--loc", help="Location as LON,LAT in WGS84"),
    ] = None,
    layers: Annotated[
        str,
        typer.Option("--layers", "-l", help="Comma-separated layers to extract"),
    ] = ",".join(DEFAULT_LAYERS),
    outfile: Annotated[
        Path,
        typer.Option("--outfile", "-o", help="Output GeoPackage"),
    ] = Path(DEFAULT_OUTFILE),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing output file"),
    ] = False,
    data_dir: Annotated[
        Path | None,
        typer.Option("--data-dir", help="Directory with local partition files (no download)"),
    ] = None,
    cache_dir: Annotated[
        Path | None,
        typer.Option("--cache-dir", help=f"Cache downloaded partitions here (env: {ENV_CACHE_DIR})"),
    ] = None,
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help=f"Hydrofabric release URL (env: {ENV_BASE_URL})"),
    ] = None,
    no_index: Annotated[
        bool,
        typer.Option("--no-index", help="Work from the partition alone, without the network index"),
    ] = False,
    boundaries: Annotated[
        Path | None,
        typer.Option("--boundaries", help=f"Partition boundary polygons for --no-index (env: {ENV_BOUNDARIES})"),
    ] = None,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", help="Concurrent layer extractions", min=1),
    ] = DEFAULT_MAX_WORKERS,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress progress output"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed progress"),
    ] = False,
) -> None:
    """
    Extract the drainage basin upstream of one origin.

    Exactly one of --id, --comid, --hl-uri, --nldi-feature or --loc is required.

    \b
    EXAMPLES:
        hfsubset subset --hl-uri Gages-06752260 -o poudre.gpkg
        hfsubset subset --comid 101 --layers divides,flowpaths,network
        hfsubset subset --nldi-feature nwissite:USGS-08279500 --cache-dir ~/.hfsubset
        hfsubset subset --loc -105.07,40.57 --data-dir ./hydrofabric
        hfsubset subset --comid 101 --no-index --boundaries vpu_boundaries.gpkg
    """
    _setup_logging(verbose=verbose, quiet=quiet)

    try:
        request = SubsetRequest(
            name="subset",
            id=id,
            comid=comid,
            hl_uri=hl_uri,
            nldi_feature=_parse_nldi_feature(nldi_feature) if nldi_feature else None,
            loc=_parse_loc(loc) if loc else None,
            layers=layers.split(","),
            outfile=str(outfile),
        )
        settings = _apply_env(
            SettingsConfig(
                base_url=base_url or DEFAULT_BASE_URL,
                network_index=None if no_index else DEFAULT_NETWORK_INDEX,
                data_dir=str(data_dir) if data_dir else None,
                cache_dir=str(cache_dir) if cache_dir else None,
                boundaries=str(boundaries) if boundaries else None,
                max_workers=workers,
            )
        )
    except ValidationError as e:
        console.print(f"[red]Error:[/red] Invalid arguments\n{e}")
        raise typer.Exit(2) from None

    try:
        with _open_context(settings) as context:
            path = _run_request(request, context, Path(request.outfile), overwrite=force)
    except FileExistsError as e:
        console.print(f"[red]Error:[/red] {e}\n\n[yellow]Fix:[/yellow] Use --force to overwrite it")
        raise typer.Exit(2) from None
    except (SubsetError, httpx.HTTPError, FileNotFoundError, KeyError, ValueError, RuntimeError) as e:
        logger.debug("Subset failed", exc_info=True)
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(2) from None

    if not quiet:
        console.print(f"[green]✓[/green] Subset written to {path}")


@app.command("run")
def run_command(
    config_file: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration file (subset.toml)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Validate configuration without processing"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite existing output files"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress progress output"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed progress"),
    ] = False,
) -> None:
    """
    Run every subset request defined in CONFIG_FILE.

    \b
    CONFIG FILE FORMAT (subset.toml):
        [settings]
        cache_dir = "./cache"          # Optional: keep downloaded partitions
        network_index = "conus_net.parquet"

        [[requests]]
        name = "poudre"                # Required, unique
        hl_uri = "Gages-06752260"      # Exactly one of id, comid, hl_uri, nldi_feature, loc
        layers = ["divides", "flowpaths", "network"]
        outfile = "poudre.gpkg"

    \b
    EXIT CODES:
        0  all requests succeeded
        1  some requests failed
        2  configuration error, or every request failed
    """
    _setup_logging(verbose=verbose, quiet=quiet)

    try:
        if not quiet:
            console.print("[cyan]Loading configuration...[/cyan]")

        config = load_config(config_file)
        settings = _apply_env(config.settings)

        if not quiet:
            console.print("[green]✓[/green] Config valid")
            console.print(f"[green]✓[/green] Found {len(config.requests)} request(s):")
            for request in config.requests:
                console.print(f"    - {request.name}: {_request_reference(request)}")

        if dry_run:
            console.print("\n[bold green]Ready to run.[/bold green]")
            raise typer.Exit(0)

        succeeded = 0
        failed = 0

        with _open_context(settings) as context:
            for idx, request in enumerate(config.requests, 1):
                outfile = Path(request.outfile or config_file.parent / f"{request.name}.gpkg")

                if not quiet:
                    console.print(f"\n[cyan][{idx}/{len(config.requests)}] Processing request: {request.name}[/cyan]")

                try:
                    path = _run_request(request, context, outfile, overwrite=force)
                except (
                    SubsetError,
                    httpx.HTTPError,
                    FileNotFoundError,
                    FileExistsError,
                    KeyError,
                    ValueError,
                    RuntimeError,
                ) as e:
                    failed += 1
                    logger.error(f"Request '{request.name}' failed: {e}")
                    if not quiet:
                        console.print(f"  [red]✗[/red] {request.name}: {e}")
                    continue

                succeeded += 1
                if not quiet:
                    console.print(f"  [green]✓[/green] {request.name}")
                    console.print(f"    → {path}")

        if not quiet:
            console.print("\n[bold]Complete![/bold]")
            console.print(f"  Total: [bold]{succeeded}[/bold] succeeded, [bold]{failed}[/bold] failed")

        # Exit with appropriate code
        if failed == 0:
            raise typer.Exit(0)
        elif succeeded > 0:
            raise typer.Exit(1)  # Partial success
        else:
            raise typer.Exit(2)  # Complete failure

    except typer.Exit:
        raise
    except KeyboardInterrupt:
        logger.warning("Process interrupted by user")
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130) from None
    except Exception as e:
        logger.exception("Unexpected error during run command")
        console.print(f"\n[red]Error:[/red] {e}")
        raise typer.Exit(2) from None


@app.command("layers")
def layers_command(
    gpkg: Annotated[
        Path,
        typer.Argument(help="Hydrofabric GeoPackage", exists=True, file_okay=True, dir_okay=False, readable=True),
    ],
) -> None:
    """
    List the layers of a GeoPackage with their type and CRS.

    \b
    EXAMPLES:
        hfsubset layers nextgen_01.gpkg
    """
    try:
        with PartitionDataset(gpkg) as dataset:
            infos = [dataset.layer_info(name) for name in sorted(dataset.layer_names())]
    except Exception as e:
        console.print(f"[red]Error:[/red] Could not read {gpkg}: {e}")
        raise typer.Exit(2) from None

    table = Table(title=f"Layers in {gpkg.name}")
    table.add_column("Layer", style="cyan")
    table.add_column("Type")
    table.add_column("Geometry")
    table.add_column("CRS")

    for info in infos:
        table.add_row(info.name, info.data_type, info.geometry_type or "-", info.crs or "-")

    console.print(table)
    console.print(f"\n[dim]Total: {len(infos)} layers[/dim]")


if __name__ == "__main__":
    app()
