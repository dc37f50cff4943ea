"""Command line entry point for global structure from motion."""

import logging
from pathlib import Path

import typer

from .core.errors import ConfigurationError, InputError
from .core.io import read_matches, read_scene, write_ply, write_run_report, write_scene
from .core.models.settings import GlobalSfMSettings, parse_rotation_method, parse_translation_method
from .core.pipeline import GlobalReconstructionEngine

app = typer.Typer(add_completion=False)


def _prepare_outdir(outdir: Path) -> None:
    if outdir.exists() and not outdir.is_dir():
        raise ConfigurationError(f"Output path {outdir} exists and is not a directory")
    try:
        outdir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot create output directory {outdir}: {e}") from e


@app.command()
def main(
    input_file: Path = typer.Option(
        ...,
        "--input-file",
        "-i",
        help="Scene description JSON (views, intrinsics, features)",
    ),
    matchdir: Path = typer.Option(
        ...,
        "--matchdir",
        "-m",
        help="Directory holding pairs.json with the relative motions of the scene",
    ),
    outdir: Path = typer.Option(
        ...,
        "--outdir",
        "-o",
        help="Directory where the outputs are written",
    ),
    colored_point_cloud: bool = typer.Option(
        False,
        "--colored-point-cloud",
        "-c",
        help="Sample track colors from the source images",
    ),
    rotation_averaging: int = typer.Option(
        2,
        "--rotation-averaging",
        "-r",
        help="Rotation averaging: 2 (default, L2) or 1 (L1)",
    ),
    translation_averaging: int = typer.Option(
        1,
        "--translation-averaging",
        "-t",
        help="Translation averaging: 1 (default, L1) or 2 (L2)",
    ),
    refine_focal_and_pp: int = typer.Option(
        1,
        "--refine-focal-and-pp",
        "-f",
        help="0: keep the provided focal and principal point, 1: refine them",
        min=0,
        max=1,
    ),
    refine_disto: int = typer.Option(
        1,
        "--refine-disto",
        "-d",
        help="0: keep the radial distortion, 1: refine the radial distortion",
        min=0,
        max=1,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log per-iteration solver details",
    ),
):
    """Reconstruct a scene from pairwise relative motions (global SfM)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        rotation_method = parse_rotation_method(rotation_averaging)
        translation_method = parse_translation_method(translation_averaging)
        scene = read_scene(input_file)
        motions = read_matches(matchdir)
        _prepare_outdir(outdir)
    except (ConfigurationError, InputError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)

    settings = GlobalSfMSettings(rotation_method=rotation_method, translation_method=translation_method)
    engine = GlobalReconstructionEngine(scene, motions, settings)
    result = engine.run(
        refine_focal_and_pp=bool(refine_focal_and_pp),
        refine_distortion=bool(refine_disto),
    )

    write_run_report(outdir / "run_report.json", result)

    if not result.success:
        typer.echo(f"Error: reconstruction failed: {result.failure_reason}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Global SfM took {result.computation_time:.2f} s")
    typer.echo(
        f"Posed views: {result.posed_views}, tracks: {result.valid_tracks}, "
        f"RMSE: {result.initial_rmse:.3f} -> {result.final_rmse:.3f} px"
    )

    if colored_point_cloud:
        colored = engine.colorize()
        typer.echo(f"Colored {colored} tracks")

    write_ply(outdir / "FinalColorized.ply", engine.state, colored=colored_point_cloud)
    write_scene(outdir / "SfM_output.json", engine.state, scene.features)


if __name__ == "__main__":
    app()
