from __future__ import annotations

import json

import click
import uvicorn

from .config import load_consumer_settings, load_owner_settings
from .consumer.app import create_app as create_consumer_app
from .errors import ImageCacheError
from .owner.app import build_cache, create_app as create_owner_app
from .util.logging import setup_logging


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def main():
    """Image cache owner and consumer services."""


@main.command()
@click.option("--port", type=int, help="Listening port")
@click.option("--host", type=str, help="Bind address")
@click.option("--data-dir", type=click.Path(path_type=str), help="Shared data directory")
@click.option("--image-url", type=str, help="Remote image source")
@click.option("--ttl-ms", type=int, help="Generation lifetime in milliseconds")
@click.option("--logs-dir", type=click.Path(path_type=str), help="Log directory")
def owner(**kwargs):
    """Serve the cache owner (/touch, /meta, /healthz)."""
    settings = load_owner_settings(kwargs)
    setup_logging(settings.logs_dir, settings.log_level)
    app = create_owner_app(settings)
    click.echo(f"image-cache listening on {settings.port} using {settings.data_dir}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


@main.command()
@click.option("--port", type=int, help="Listening port")
@click.option("--host", type=str, help="Bind address")
@click.option("--data-dir", type=click.Path(path_type=str), help="Shared data directory")
@click.option("--touch-url", type=str, help="Owner /touch endpoint")
@click.option("--pingpong-url", type=str, help="Ping-pong counter endpoint")
@click.option("--logs-dir", type=click.Path(path_type=str), help="Log directory")
def consumer(**kwargs):
    """Serve the front end (/image.jpg, /, /healthz)."""
    settings = load_consumer_settings(kwargs)
    setup_logging(settings.logs_dir, settings.log_level)
    app = create_consumer_app(settings)
    click.echo(f"log-output listening on {settings.port} using {settings.data_dir}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


@main.command()
@click.option("--data-dir", type=click.Path(path_type=str), help="Shared data directory")
@click.option("--image-url", type=str, help="Remote image source")
@click.option("--ttl-ms", type=int, help="Generation lifetime in milliseconds")
def touch(**kwargs):
    """Run one ensure-fresh pass in-process and print the outcome."""
    settings = load_owner_settings(kwargs)
    setup_logging(settings.logs_dir, settings.log_level)
    cache = build_cache(settings)
    try:
        result = cache.ensure_fresh()
    except ImageCacheError as exc:
        click.echo(json.dumps({"ok": False, "error": str(exc)}, indent=2))
        raise SystemExit(1)
    click.echo(json.dumps({"ok": True, **result.to_payload(), "view": cache.view().to_payload()}, indent=2))


@main.command()
@click.option("--data-dir", type=click.Path(path_type=str), help="Shared data directory")
def meta(**kwargs):
    """Print the current metadata and image stat without changing anything."""
    settings = load_owner_settings(kwargs)
    cache = build_cache(settings)
    click.echo(json.dumps({"ok": True, "view": cache.view().to_payload()}, indent=2))


if __name__ == "__main__":  # pragma: no cover
    main()
