"""Command line interface for bagkeeper."""
import logging
from pathlib import Path
from typing import Optional
import click

from bagkeeper.algorithms import DEFAULT_ALGORITHM
from bagkeeper.bagkeeper import make_bag, validate_bag
from bagkeeper.checksum import DEFAULT_WORKERS
from bagkeeper.errors import BagError
from bagkeeper.metadata import load_metadata_json
from bagkeeper.reader import open_bag


def configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def parse_tags(ctx, param, values) -> dict:
    """Turn repeated KEY=VALUE options into tags, repeated keys become lists."""
    tags = {}
    for item in values:
        key, separator, value = item.partition('=')
        if not separator or not key.strip():
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'")
        key = key.strip()
        if key in tags:
            existing = tags[key] if isinstance(tags[key], list) else [tags[key]]
            tags[key] = existing + [value]
        else:
            tags[key] = value
    return tags


@click.group()
def cli():
    """Create and validate BagIt bags."""


@cli.command()
@click.option(
    '-d',
    '--bag-directory',
    type=click.Path(writable=True, file_okay=False, path_type=Path),
    help='Directory to create the bag in',
)
@click.option('-a', '--algorithm', default=DEFAULT_ALGORITHM, show_default=True, help='Checksum algorithm')
@click.option('-t', '--tag', 'tags', multiple=True, callback=parse_tags, metavar='KEY=VALUE', help='bag-info tag, can be repeated')
@click.option(
    '--metadata-json',
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='JSON file with bag-info tags',
)
@click.option('--env-tags/--no-env-tags', default=False, help='Read bag-info tags from BAGIT_* environment variables')
@click.option('-v', '--verbose/--no-verbose', default=False, help='Print more information about the process')
@click.argument('source_dir', type=click.Path(exists=True, file_okay=False, path_type=Path))
def make(
  bag_directory: Optional[Path],
  algorithm: str,
  tags: dict,
  metadata_json: Optional[Path],
  env_tags: bool,
  verbose: bool,
  source_dir: Path,
):
    """Bag a copy of every file in SOURCE_DIR."""
    configure_logging(verbose)
    bag_info = {}
    try:
        if metadata_json:
            bag_info.update(load_metadata_json(metadata_json))
        bag_info.update(tags)
        bag = make_bag(source_dir, bag_directory, algorithm, tags=bag_info, env_tags=env_tags)
    except (BagError, ValueError) as error:
        raise click.ClickException(str(error))

    manifest = bag.manifests[algorithm]
    click.echo(f"Created bag '{bag.root}' with {len(manifest)} file(s) ({bag.metadata.payload_oxum})")


@cli.command()
@click.option('-a', '--algorithm', default=None, help='Checksum algorithm, defaults to the strongest manifest in the bag')
@click.option('-w', '--workers', default=DEFAULT_WORKERS, show_default=True, type=click.IntRange(min=1), help='Files checksummed in parallel')
@click.option('-v', '--verbose/--no-verbose', default=False, help='Print more information about the process')
@click.argument('bag_directory', type=click.Path(file_okay=False, path_type=Path))
def validate(algorithm: Optional[str], workers: int, verbose: bool, bag_directory: Path):
    """Check every file in the bag at BAG_DIRECTORY against its manifests."""
    configure_logging(verbose)
    try:
        report = validate_bag(bag_directory, algorithm, max_workers=workers)
    except (BagError, ValueError) as error:
        raise click.ClickException(str(error))

    if verbose:
        for path in report.unexpected_files:
            click.echo(f"Not in manifest: {path}")
    if not report.is_valid:
        for problem in report.problems():
            click.echo(problem, err=True)
        click.echo(f"Bag '{bag_directory}' is invalid", err=True)
        click.get_current_context().exit(1)
    click.echo(f"Bag '{bag_directory}' is valid ({len(report.payload)} payload file(s), {report.label})")


@cli.command()
@click.argument('bag_directory', type=click.Path(file_okay=False, path_type=Path))
def info(bag_directory: Path):
    """Print the tags and manifests of the bag at BAG_DIRECTORY."""
    try:
        bag = open_bag(bag_directory)
    except BagError as error:
        raise click.ClickException(str(error))

    for key, value in bag.metadata.declaration:
        click.echo(f"{key}: {value}")
    if bag.metadata.info is not None:
        for key, value in bag.metadata.info:
            click.echo(f"{key}: {value}")
    click.echo(f"Manifests: {', '.join(bag.labels)}")
    if bag.tag_manifests:
        click.echo(f"Tag manifests: {', '.join(sorted(bag.tag_manifests))}")
    for feature in bag.unsupported:
        click.echo(f"Warning: {feature}", err=True)


if __name__ == "__main__":
    cli()
