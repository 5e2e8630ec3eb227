from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from ..config import ViewerConfig, load_config
from ..config.schema import AppearanceConfig, OutputConfig, ReliefConfig, ViewportConfig
from ..core.exporter import stl_filename
from ..core.sampler import DecodeError
from ..examples.synthetic import generate_depthmap
from ..render.lights import LightingPreset
from ..render.materials import MaterialPreset
from ..render.probe import EnvironmentProbe
from ..render.screenshot import SCREENSHOT_FILENAME
from ..sdk.run import export_from_config

app = typer.Typer(help="Depthmap relief utilities")
depthmap_app = typer.Typer(help="Synthetic depthmap helpers")
app.add_typer(depthmap_app, name="depthmap")


def _configure_logging(level: str) -> None:
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=numeric, format="[%(levelname)s] %(message)s")
    logging.getLogger("depthrelief").setLevel(numeric)


def _run(cfg: ViewerConfig, output_dir: Optional[Path]) -> None:
    try:
        result = export_from_config(cfg, output_dir=output_dir)
    except DecodeError as exc:
        raise typer.BadParameter(str(exc), param_hint="IMAGE") from exc
    for path in (result.stl_path, result.screenshot_path):
        if path is not None:
            typer.echo(f"Wrote {path} ({result.triangles} triangles)")


def _config_from_options(
    image: Path,
    output: Path,
    size: float,
    thickness: float,
    detail: int,
    material: MaterialPreset,
    lighting: LightingPreset,
    stl: bool,
    screenshot: bool,
    width: int = 1280,
    height: int = 720,
) -> ViewerConfig:
    output = output.resolve()
    directory = output.parent
    name = output.stem if stl else "depthmap-model"
    try:
        return ViewerConfig(
            image=image.resolve(),
            relief=ReliefConfig(size=size, thickness=thickness, detail=detail),
            appearance=AppearanceConfig(material=material, lighting=lighting),
            viewport=ViewportConfig(width=width, height=height),
            output=OutputConfig(directory=directory, name=name, stl=stl, screenshot=screenshot),
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.command("export")
def export(
    config: Path = typer.Argument(..., exists=True, readable=True, help="Path to YAML configuration file."),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Override output directory."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Export an STL (and optionally a screenshot) as described by a YAML config."""

    _configure_logging(log_level)
    try:
        cfg = load_config(config)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="CONFIG") from exc
    _run(cfg, output_dir)


@app.command("stl")
def stl(
    image: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Depthmap image."),
    output: Path = typer.Option(Path(stl_filename("depthmap-model")), "--output", "-o", help="Output .stl path."),
    size: float = typer.Option(1.0, "--size", help="Side length of the relief (1.0 - 3.0)."),
    thickness: float = typer.Option(0.04, "--thickness", help="Relief depth as a fraction of size (0.02 - 0.06)."),
    detail: int = typer.Option(1536, "--detail", help="Vertices per side (clamped to 2 - 2048)."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (e.g. INFO, DEBUG)."),
) -> None:
    """Convert a depthmap image to a binary STL relief."""

    if output.suffix.lower() != ".stl":
        raise typer.BadParameter("Output must end with .stl", param_hint="--output")
    _configure_logging(log_level)
    cfg = _config_from_options(image, output, size, thickness, detail,
                               MaterialPreset.METAL, LightingPreset.OUTDOOR, stl=True, screenshot=False)
    _run(cfg, None)


@app.command("screenshot")
def screenshot(
    image: Path = typer.Argument(..., exists=True, readable=True, dir_okay=False, help="Depthmap image."),
    output_dir: Path = typer.Option(Path("."), "--output-dir", "-o", help=f"Directory receiving {SCREENSHOT_FILENAME}."),
    size: float = typer.Option(1.0, "--size"),
    thickness: float = typer.Option(0.04, "--thickness"),
    detail: int = typer.Option(1536, "--detail"),
    material: MaterialPreset = typer.Option(MaterialPreset.METAL, "--material"),
    lighting: LightingPreset = typer.Option(LightingPreset.OUTDOOR, "--lighting"),
    width: int = typer.Option(1280, "--width", help="Viewport width; sets the screenshot aspect ratio."),
    height: int = typer.Option(720, "--height", help="Viewport height; sets the screenshot aspect ratio."),
    log_level: str = typer.Option("INFO", "--log-level"),
) -> None:
    """Render a 2048px-wide PNG of the relief (needs an OpenGL context)."""

    _configure_logging(log_level)
    cfg = _config_from_options(image, output_dir / SCREENSHOT_FILENAME, size, thickness, detail,
                               material, lighting, stl=False, screenshot=True, width=width, height=height)
    _run(cfg, output_dir)


@app.command("probe")
def probe(
    output: Path = typer.Argument(..., help="Output PNG path for the prefiltered environment map."),
    width: int = typer.Option(256, "--width", help="Equirect width in pixels."),
) -> None:
    """Write the procedural reflection probe as an equirectangular PNG."""

    from PIL import Image

    if width < 8 or width % 2:
        raise typer.BadParameter("width must be an even number >= 8", param_hint="--width")
    with EnvironmentProbe(width=width, height=width // 2).generate() as texture:
        out = output.resolve()
        out.parent.mkdir(parents=True, exist_ok=True)
        Image.fromarray(texture.to_uint8()).save(out, format="PNG")
    typer.echo(f"Wrote environment probe to {out}")


@depthmap_app.command("generate")
def depthmap_generate(
    output: Path = typer.Argument(..., help="Output depthmap path (.png)."),
    preset: str = typer.Option("dome", "--preset", help="Synthetic depthmap preset (dome, ramp, ripple)."),
    size: int = typer.Option(256, "--size", help="Image side length in pixels."),
) -> None:
    """Generate a synthetic depthmap useful for demos."""

    out = output.resolve()
    try:
        generate_depthmap(preset=preset, size=size, path=out)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(f"Wrote synthetic depthmap to {out}")


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
