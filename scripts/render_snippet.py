#!/usr/bin/env python3
"""
Snippet Rendering CLI

Compiles a LaTeX snippet and saves the cropped rendering as PNG, or checks the
configured typesetter and measurer.

Commands:
    render - Compile a snippet and save the cropped image
    check  - Validate the pdflatex and Ghostscript executables

Examples:\n

    render_snippet.py render '$x^2 + y^2 = z^2$'                     # Render at zoom 1

    render_snippet.py render '$\\int_0^1 f$' --zoom 4 -o int.png       # Larger output

    render_snippet.py render '\\[ \\mathbb{R} \\]' -P '\\usepackage{amsmath}'  # Extra preamble

    render_snippet.py check --latex /opt/texlive/bin/pdflatex          # Validate a path
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from typing_extensions import Annotated

from texsnip.contexts.compilation import check_paths, get_paths, paths_ok
from texsnip.contexts.rendering import RenderCache
from texsnip.contexts.rendering.logger import setup_rendering_logger
from texsnip.utils.pdf_processing import page_count

load_dotenv()
LOGS_PATH = Path(os.getenv("LOGS_PATH", "logs"))


app = typer.Typer(
    help="Render LaTeX snippets to cropped images via pdflatex and Ghostscript",
    add_completion=False,
    invoke_without_command=True,
)


@app.callback()
def main(ctx: typer.Context):
    """Show help by default when no command is provided."""
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit()


@app.command("render")
def render_command(
    source: Annotated[
        str,
        typer.Argument(help="LaTeX fragment, e.g. '$x^2$'"),
    ],
    preamble: Annotated[
        str,
        typer.Option("--preamble", "-P", help="Extra preamble lines"),
    ] = "",
    zoom: Annotated[
        float,
        typer.Option("--zoom", "-z", help="Scale factor (1.0 = 72 dpi)", min=0.1, max=20.0),
    ] = 1.0,
    inline: Annotated[
        bool,
        typer.Option("--inline", "-i", help="Transparent background for placement in text"),
    ] = False,
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="PNG file to write"),
    ] = Path("snippet.png"),
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Echo debug output (chains, geometry)"),
    ] = False,
):
    """
    Compile a snippet and save the cropped rendering.

    Examples:\n

        $ render_snippet.py render '$x^2$'                    # snippet.png at zoom 1

        $ render_snippet.py render '$x^2$' -z 3 -o x2.png     # Three times larger
    """
    log_dir = LOGS_PATH / f"render_{datetime.now():%Y%m%d_%H%M%S}"
    log_file = setup_rendering_logger(log_dir, console_level="DEBUG" if verbose else "WARNING")

    typer.secho(f"\nRendering: {source}", fg=typer.colors.BLUE, bold=True)
    typer.echo(f"Zoom: {zoom}")
    typer.echo("")

    if not paths_ok():
        paths = get_paths()
        typer.secho(
            f"Error: executables not usable (latex={paths.latex}, gs={paths.ghostscript})\n",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=1)

    with RenderCache(source, preamble) as cache:
        image = cache.render(zoom=zoom, inline=inline)
        box = cache.bounding_box
        pages = page_count(cache.document_path) if cache.document_path else None

        if image.width == 0 or image.height == 0:
            typer.secho("✗ Rendering failed", fg=typer.colors.RED, bold=True)
            typer.echo(f"  Log: {log_file}")
            typer.echo("")
            raise typer.Exit(code=1)

        image.save(output)

    typer.secho("✓ Rendering succeeded", fg=typer.colors.GREEN, bold=True)
    typer.echo(f"  Box: ({box.x:.2f}, {box.y:.2f}, {box.width:.2f}, {box.height:.2f}) pt")
    typer.echo(f"  Size: {image.width} x {image.height} px")
    typer.echo(f"  Pages: {pages}")
    typer.echo(f"  Image: {output}")
    typer.echo(f"  Log: {log_file}")
    typer.echo("")


@app.command("check")
def check_command(
    latex: Annotated[
        Optional[Path],
        typer.Option("--latex", help="Typesetter to validate (default: configured)"),
    ] = None,
    ghostscript: Annotated[
        Optional[Path],
        typer.Option("--gs", help="Measurer to validate (default: configured)"),
    ] = None,
):
    """
    Validate the typesetter and measurer executables.

    Examples:\n

        $ render_snippet.py check                                  # Configured paths

        $ render_snippet.py check --latex pdflatex --gs gswin64c   # Candidate paths
    """
    configured = get_paths()
    latex = latex or configured.latex
    ghostscript = ghostscript or configured.ghostscript

    typer.echo(f"  LaTeX compiler: {latex}")
    typer.echo(f"  Ghostscript: {ghostscript}")

    if check_paths(latex, ghostscript):
        typer.secho("✓ Executables usable", fg=typer.colors.GREEN, bold=True)
        raise typer.Exit(code=0)

    typer.secho("✗ Executables not found or not executable", fg=typer.colors.RED, bold=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
