"""
Creative CLI Commands

Commands for fetching Meta ad creatives into a workspace's store and
caching their media.
"""

import asyncio
import logging
from typing import Tuple

import click

from ..core.database import get_supabase_client
from ..services.creative_fetch_service import CreativeFetchService, MediaCacheError
from ..services.creative_repository import MetaConnectionError
from ..services.models import BatchFetchResult, CreativeRecord, MediaType


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S"
)

logger = logging.getLogger(__name__)


def _build_service() -> CreativeFetchService:
    return CreativeFetchService(get_supabase_client())


def _echo_record(record: CreativeRecord) -> None:
    click.echo(f"Ad {record.ad_id} [{record.creative_type.value}] {record.fetch_status.value}")
    click.echo(f"   Image: {record.image_url or '-'} ({record.thumbnail_quality.value})")
    if record.video_url:
        click.echo(f"   Video: {record.video_url}")
    if record.cached_image_url:
        click.echo(f"   Cached: {record.cached_image_url}")
    if record.title:
        click.echo(f"   Title: {record.title}")
    click.echo(f"   Attempts: {record.fetch_attempts}")


def _echo_result(result: BatchFetchResult, as_json: bool) -> None:
    if as_json:
        click.echo(result.model_dump_json(indent=2))
        return

    for record in result.records.values():
        _echo_record(record)
    for ad_id, error in result.errors.items():
        click.echo(f"❌ Ad {ad_id}: {error}")

    click.echo()
    click.echo(
        f"✅ {len(result.records)} creatives "
        f"({result.cached_count} from store, {result.fetched_count} fetched), "
        f"{len(result.errors)} errors"
    )


@click.group()
def creatives():
    """Meta ad creative commands"""
    pass


@creatives.command()
@click.argument('ad_id')
@click.option('--account', '-a', required=True, help='Meta ad account ID (act_...)')
@click.option('--workspace', '-w', required=True, help='Workspace ID')
@click.option('--force', is_flag=True, help='Re-fetch from Meta even if stored')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def fetch(ad_id: str, account: str, workspace: str, force: bool, as_json: bool):
    """
    Fetch the creative for one ad

    Example:
        adlens creatives fetch 120210000000000001 --account act_123 --workspace <uuid> --force
    """
    _run(workspace, (ad_id,), account, force, as_json)


@creatives.command()
@click.argument('ad_ids', nargs=-1, required=True)
@click.option('--account', '-a', required=True, help='Meta ad account ID (act_...)')
@click.option('--workspace', '-w', required=True, help='Workspace ID')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def batch(ad_ids: Tuple[str, ...], account: str, workspace: str, as_json: bool):
    """
    Fetch creatives for many ads

    Example:
        adlens creatives batch 1202100001 1202100002 --account act_123 --workspace <uuid>
    """
    _run(workspace, ad_ids, account, False, as_json)


@creatives.command('cache-media')
@click.argument('ad_id')
@click.argument('media_url')
@click.option('--type', 'media_type', type=click.Choice([t.value for t in MediaType]), default=MediaType.VIDEO.value,
              show_default=True, help='Kind of media being cached')
@click.option('--workspace', '-w', required=True, help='Workspace ID')
@click.option('--json', 'as_json', is_flag=True, help='Print the result as JSON')
def cache_media(ad_id: str, media_url: str, media_type: str, workspace: str, as_json: bool):
    """
    Store a durable copy of one ad media file

    Example:
        adlens creatives cache-media 120210000000000001 "https://video.xx.fbcdn.net/...mp4" --workspace <uuid>
    """
    try:
        service = _build_service()
        cached = asyncio.run(
            service.cache_media_for_workspace(workspace, ad_id, media_url, MediaType(media_type))
        )
    except MediaCacheError as e:
        click.echo(f"❌ {e}", err=True)
        raise click.exceptions.Exit(1)
    except ValueError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        raise click.exceptions.Exit(1)

    if as_json:
        click.echo(cached.model_dump_json(indent=2))
        return

    click.echo(f"✅ Cached {cached.media_type.value} for ad {ad_id} ({cached.file_size:,} bytes)")
    click.echo(f"   Path: {cached.path}")
    click.echo(f"   URL: {cached.cached_url}")


def _run(workspace: str, ad_ids: Tuple[str, ...], account: str, force: bool, as_json: bool) -> None:
    try:
        service = _build_service()
        if not as_json:
            click.echo(f"Fetching {len(ad_ids)} creative(s) for workspace {workspace}...")
            click.echo()

        result = asyncio.run(
            service.fetch_for_workspace(workspace, list(ad_ids), account, force_refresh=force)
        )
        _echo_result(result, as_json)

        if result.errors and not result.records:
            raise click.exceptions.Exit(1)

    except MetaConnectionError as e:
        click.echo(f"❌ {e}", err=True)
        raise click.exceptions.Exit(1)
    except ValueError as e:
        click.echo(f"❌ Configuration error: {e}", err=True)
        raise click.exceptions.Exit(1)
