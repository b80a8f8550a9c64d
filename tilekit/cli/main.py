from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar

import typer
from pydantic import ValidationError

from ..config import TilesetOptionsConfig, load_batch_table, load_feature_table, load_tileset_options
from ..core.builder import build_instanced_tileset
from ..core.combiner import combine_tilesets
from ..core.container import encode_instanced_model
from ..core.errors import TilesError
from ..core.exporter import write_batch_table, write_build_result, write_container, write_tileset
from ..core.model import TrimeshModelEncoder
from ..sdk import convert_from_config

app = typer.Typer(help="tilekit: instanced 3D tiles and tileset utilities")

T = TypeVar("T")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("tilekit").setLevel(numeric)


def _guarded(action: Callable[[], T]) -> T:
    # RuntimeError also covers a missing optional backend such as trimesh
    try:
        return action()
    except (TilesError, RuntimeError, ValidationError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _done(label: str, started: float) -> None:
    typer.echo(f"{label} in {time.perf_counter() - started:.3f} s")


@app.command("instance")
def instance(
    model: Path = typer.Argument(..., exists=True, readable=True, help="Model file to embed (any format trimesh reads)."),
    features: Path = typer.Option(..., "--features", "-f", exists=True, readable=True, help="Feature table file (JSON/YAML with position/orientation/scale)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output .i3dm path (defaults to the model path with .i3dm)."),
    batch_table: Optional[Path] = typer.Option(None, "--batch-table", "-b", exists=True, readable=True, help="Batch table JSON embedded as-is."),
    url: Optional[str] = typer.Option(None, "--url", help="Reference the model by url instead of embedding it."),
    output_batch_table: bool = typer.Option(False, "--output-batch-table", help="Also write the model attribute table next to the output."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Convert a model plus per-instance placements into an i3dm container."""

    _configure_logging(log_level)
    started = time.perf_counter()
    out = (output or model.with_suffix(".i3dm")).resolve()

    def _run() -> int:
        feature_table = load_feature_table(features).to_features()
        table = load_batch_table(batch_table) if batch_table is not None else None
        result = encode_instanced_model(model, feature_table, TrimeshModelEncoder(), batch_table=table, model_url=url)
        write_container(out, result.i3dm)
        if output_batch_table:
            write_batch_table(out, result.batch_table_json)
        return result.feature_table.instances_length

    count = _guarded(_run)
    _done(f"Wrote {count} instances → {out}", started)


@app.command("tileset")
def tileset(
    model: Path = typer.Argument(..., exists=True, readable=True, help="Model file to embed (any format trimesh reads)."),
    features: Path = typer.Option(..., "--features", "-f", exists=True, readable=True, help="Feature table file (JSON/YAML with position/orientation/scale)."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Tile path; files land in Instanced<model>/ beside it."),
    options: Optional[Path] = typer.Option(None, "--options", exists=True, readable=True, help="Tileset options file (tileWidth, longitude, region/box/sphere, ...)."),
    bounding_volume: Optional[str] = typer.Option(None, "--bounding-volume", help="region, box or sphere (default region)."),
    geometric_error: Optional[float] = typer.Option(None, "--geometric-error", help="Tileset geometric error."),
    batch_table: Optional[Path] = typer.Option(None, "--batch-table", "-b", exists=True, readable=True, help="Batch table JSON embedded as-is."),
    output_batch_table: bool = typer.Option(False, "--output-batch-table", help="Also write the model attribute table next to the tile."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Convert a model plus placements into a single-tile tileset directory."""

    _configure_logging(log_level)
    started = time.perf_counter()
    out = (output or model.with_suffix(".i3dm")).resolve()

    def _run() -> Path:
        opts_cfg = load_tileset_options(options) if options is not None else TilesetOptionsConfig()
        opts = opts_cfg.to_options()
        if bounding_volume is not None:
            opts.bounding_volume = bounding_volume
        if geometric_error is not None:
            opts.geometric_error = geometric_error
        feature_table = load_feature_table(features).to_features()
        table = load_batch_table(batch_table) if batch_table is not None else None
        result = build_instanced_tileset(
            model, out, feature_table, TrimeshModelEncoder(), options=opts, batch_table=table,
        )
        write_build_result(result, output_batch_table=output_batch_table)
        return result.tileset_path

    tileset_path = _guarded(_run)
    _done(f"Wrote tileset → {tileset_path}", started)


@app.command("combine")
def combine(
    input_dir: Path = typer.Argument(..., exists=True, file_okay=False, dir_okay=True, help="Directory holding tileset sub-directories."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Combined tileset path (default <input_dir>/tileset.json)."),
    workers: Optional[int] = typer.Option(None, "--workers", help="Parallel readers for child tilesets."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Merge every tileset below INPUT_DIR into one parent tileset."""

    _configure_logging(log_level)
    started = time.perf_counter()

    def _run():
        result = combine_tilesets(input_dir, output, max_workers=workers)
        write_tileset(result.output_path, result.tileset)
        return result

    result = _guarded(_run)
    _done(f"Combined {len(result.sources)} tilesets → {result.output_path}", started)


@app.command("run")
def run(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML/JSON conversion config."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Override the tile output path."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Run a conversion described by a config file."""

    _configure_logging(log_level)
    started = time.perf_counter()
    result = _guarded(lambda: convert_from_config(config, output=output))
    _done(f"Converted {result.instances} instances → {result.written['tile']}", started)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
