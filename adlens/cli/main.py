"""
Main CLI entry point for AdLens
"""

import click

from .. import __version__
from .creatives import creatives


@click.group()
@click.version_option(version=__version__)
def cli():
    """
    AdLens - Meta ad creative resolution and caching

    Resolve the best image, video and copy for Meta ads and keep durable
    copies in Supabase Storage.
    """
    pass


# Register command groups
cli.add_command(creatives)


if __name__ == '__main__':
    cli()
