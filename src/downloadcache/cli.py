from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import click

from .config import CacheSettings, load_settings
from .downloader import DownloadCache
from .errors import ConfigurationError, DownloadCacheError
from .keys import derive_key
from .models import DownloadSummary
from .util.logging import setup_logging


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--cache-dir", type=click.Path(path_type=str), help="Cache root directory")
@click.option("--fetcher", type=click.Choice(["aiohttp", "httpx", "requests"], case_sensitive=False), help="HTTP client used on a cache miss")
@click.option("--user-agent", type=str, help="Custom user agent")
@click.option("--timeout", type=float, help="Connect/read timeout in seconds")
@click.option("--logs-dir", type=click.Path(path_type=str), help="Also log to a rotating file here")
@click.option("-v", "--verbose", is_flag=True, help="Log cache hits and misses")
@click.pass_context
def main(ctx: click.Context, verbose: bool, **kwargs) -> None:
    """Content-keyed download cache."""
    try:
        settings = load_settings(kwargs)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    setup_logging(settings.logs_dir, logging.DEBUG if verbose else logging.INFO)
    ctx.obj = settings


async def _fetch(settings: CacheSettings, identifier: str, out_path: Optional[Path]) -> Optional[DownloadSummary]:
    async with DownloadCache.from_settings(settings) as cache:
        if out_path is not None:
            return await cache.fetch_to_file(identifier, out_path)
        stdout = click.get_binary_stream("stdout")
        async with await cache.fetch(identifier) as stream:
            async for chunk in stream:
                stdout.write(chunk)
        stdout.flush()
        return None


async def _clear(settings: CacheSettings, identifier: str) -> bool:
    async with DownloadCache.from_settings(settings) as cache:
        return await cache.clear(identifier)


@main.command()
@click.argument("identifier")
@click.option("--out", "out_path", type=click.Path(path_type=Path, dir_okay=False), help="Write to this file instead of stdout")
@click.pass_obj
def fetch(settings: CacheSettings, identifier: str, out_path: Optional[Path]) -> None:
    """Fetch IDENTIFIER through the cache."""
    try:
        summary = asyncio.run(_fetch(settings, identifier, out_path))
    except DownloadCacheError as exc:
        raise click.ClickException(str(exc)) from exc
    if summary is not None:
        click.echo(json.dumps(summary.as_dict(), indent=2))


@main.command()
@click.argument("identifier")
@click.pass_obj
def clear(settings: CacheSettings, identifier: str) -> None:
    """Remove the cached entry for IDENTIFIER, if any."""
    try:
        removed = asyncio.run(_clear(settings, identifier))
    except DownloadCacheError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(
        json.dumps(
            {
                "identifier": identifier,
                "key": derive_key(identifier, settings.hash_algorithm),
                "removed": removed,
            },
            indent=2,
        )
    )


@main.command()
@click.argument("identifier")
@click.pass_obj
def key(settings: CacheSettings, identifier: str) -> None:
    """Print the cache key (entry file name) for IDENTIFIER."""
    click.echo(derive_key(identifier, settings.hash_algorithm))


if __name__ == "__main__":  # pragma: no cover
    main()
