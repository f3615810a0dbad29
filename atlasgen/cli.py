"""
atlasgen CLI - Command-line interface for atlasing glTF/GLB models
"""

import logging
import sys

import click
from pydantic import ValidationError

from atlasgen import __version__
from atlasgen.convert import default_output_path, load, process_file
from atlasgen.document.gltf_io import read_gltf
from atlasgen.document.model import TEXTURE_SLOTS
from atlasgen.exceptions import AtlasCapacityError, InputDefectError
from atlasgen.schema.layout import load_layout
from atlasgen.schema.options import DEFAULT_CHANNELS, AtlasOptions
from atlasgen.verify import verify_document


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    atlasgen - Pack glTF textures into atlases and merge geometry into one draw call.

    Examples:
        atlasgen atlas scene.glb -o scene.atlas.glb
        atlasgen atlas models/ --folder --max-bins 2
        atlasgen verify scene.atlas.glb --layout layout.json
    """
    pass


@cli.command()
@click.argument('input_path')
@click.option('-o', '--output', default=None, help='Output path (.glb or .gltf). Default: <name>.atlas.glb')
@click.option('--folder', is_flag=True, help='INPUT_PATH is a folder; merge all .glb/.gltf files in it')
@click.option('--channels', default=','.join(DEFAULT_CHANNELS), show_default=True,
              help='Comma list of channels to atlas (baseColor,normal,orm,emissive)')
@click.option('--padding', default=2, show_default=True, type=int, help='Padding (pixels) between atlas rects')
@click.option('--max-size', default=4096, show_default=True, type=int, help='Atlas max dimension (power of two)')
@click.option('--format-basecolor', default='webp', show_default=True, help='Atlas format for baseColor (png|jpeg|webp)')
@click.option('--format-normal', default='webp', show_default=True, help='Atlas format for normal (png|webp)')
@click.option('--format-orm', default='webp', show_default=True, help='Atlas format for ORM (png|webp)')
@click.option('--format-emissive', default='webp', show_default=True, help='Atlas format for emissive (png|jpeg|webp)')
@click.option('--quality', default=85, show_default=True, type=int, help='Quality (0-100) for jpeg/webp')
@click.option('--max-bins', default=1, show_default=True, type=int, help='Maximum atlas bins per channel')
@click.option('--resize-mode', default='downscale', show_default=True, type=click.Choice(['downscale', 'none']),
              help='Allow downscaling oversized inputs and overfull atlases')
@click.option('--resize-ceil', default=4096, show_default=True, type=int, help='Ceiling for source textures when downscaling')
@click.option('--no-density', is_flag=True, help='Size textures by resolution only, ignoring surface area')
@click.option('--workers', default=4, show_default=True, type=int, help='Threads for texture resizing')
@click.option('--dump-layout', default=None, help='Write atlas layout JSON to this file')
@click.option('--skip-atlas', is_flag=True, help='Skip atlasing; only load and re-save')
@click.option('--verbose', '-v', is_flag=True, help='Show detailed progress')
def atlas(input_path, output, folder, channels, padding, max_size, format_basecolor, format_normal,
          format_orm, format_emissive, quality, max_bins, resize_mode, resize_ceil, no_density,
          workers, dump_layout, skip_atlas, verbose):
    """
    Atlas a model's textures and collapse it into a single mesh and material.

    Examples:
        atlasgen atlas chair.glb
        atlasgen atlas chair.glb -o out.gltf --format-basecolor jpeg --quality 90
        atlasgen atlas props/ --folder --dump-layout layout.json
    """
    _configure_logging(verbose)
    try:
        options = AtlasOptions(
            channels=channels,
            max_size=max_size,
            padding=padding,
            formats={
                'basecolor': format_basecolor,
                'normal': format_normal,
                'orm': format_orm,
                'emissive': format_emissive,
            },
            quality=quality,
            max_bins=max_bins,
            resize_mode=resize_mode,
            resize_ceil=resize_ceil,
            density_aware=not no_density,
            workers=workers,
        )
        output = output or default_output_path(input_path, folder=folder)

        click.echo(f"Processing: {input_path}")
        result = process_file(input_path, options=options, folder=folder, skip_atlas=skip_atlas)

        if dump_layout and not skip_atlas:
            result.dump_layout(dump_layout)
            click.echo(f"Wrote layout to {dump_layout}")

        if verbose and not skip_atlas:
            for record in result.layout:
                sizes = ', '.join(f"{a.width}x{a.height}" for a in record.atlases)
                click.echo(f"  {record.channel}: {len(record.atlases)} bin(s) [{sizes}]")

        click.echo(f"Saving to: {output}")
        result.save(output)
        click.secho(f"✓ Success! Atlased model saved to {output}", fg='green')

    except FileNotFoundError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except ValidationError as e:
        click.secho(f"Invalid options: {e}", fg='red', err=True)
        sys.exit(1)
    except AtlasCapacityError as e:
        click.secho(f"Capacity Error: {e}", fg='red', err=True)
        sys.exit(1)
    except InputDefectError as e:
        click.secho(f"Input Error: {e}", fg='red', err=True)
        sys.exit(1)
    except ValueError as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)
    except Exception as e:
        click.secho(f"Unexpected error: {e}", fg='red', err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('input_path')
@click.option('--folder', is_flag=True, help='INPUT_PATH is a folder; merge all .glb/.gltf files in it')
def inspect(input_path, folder):
    """
    Report materials, textures and texture slot usage.

    Example:
        atlasgen inspect chair.glb
    """
    try:
        document = load(input_path, folder=folder).document
    except (FileNotFoundError, ValueError, InputDefectError) as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)

    click.echo(f"Detected {len(document.materials)} material(s), {len(document.textures)} texture(s).")
    texture_index = {id(t): i for i, t in enumerate(document.textures)}
    for material in document.materials:
        for slot in TEXTURE_SLOTS:
            info = getattr(material, slot)
            if info is None:
                continue
            index = texture_index.get(id(info.texture), '-')
            transform = ' transform' if info.transform is not None else ''
            click.echo(
                f"  texture #{index} | slot={slot} | material={material.name or '(unnamed)'} "
                f"| texcoord={info.tex_coord}{transform}"
            )


@cli.command()
@click.argument('input_path')
@click.option('-l', '--layout', 'layout_path', required=True, help='Layout JSON written by `atlasgen atlas --dump-layout`')
@click.option('--tolerance', default=0.05, show_default=True, type=float, help='UV tolerance (fraction of atlas)')
def verify(input_path, layout_path, tolerance):
    """
    Verify a processed model against its atlas layout.

    Prints a JSON report; exits with status 1 when errors are found.

    Example:
        atlasgen verify chair.atlas.glb --layout layout.json
    """
    try:
        document = read_gltf(input_path)
        layout = load_layout(layout_path)
    except (FileNotFoundError, ValueError, InputDefectError) as e:
        click.secho(f"Error: {e}", fg='red', err=True)
        sys.exit(1)

    report = verify_document(document, layout, tolerance=tolerance)
    click.echo(report.model_dump_json(indent=2))
    if not report.ok:
        click.secho(f"✗ {len(report.errors)} error(s) found", fg='red', err=True)
        sys.exit(1)


def main():
    """Entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
