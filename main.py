#!/usr/bin/env python3
"""
Main CLI entrypoint for the blog content client.
"""

import asyncio
import json
import logging
import os
import sys
import time
from pathlib import Path

import click
from dotenv import load_dotenv

from models import ContentSettings, Memo, now_iso
from services.errors import ContentError
from services.github_api import GitHubAPIClient
from services.local_client import LocalFileSystemClient
from services.smart_client import SmartClient

# Load environment variables
load_dotenv()


def _run(coro):
    try:
        return asyncio.run(coro)
    except ContentError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def _api_client(ctx: click.Context) -> GitHubAPIClient:
    token = ctx.obj["token"]
    if not token:
        click.echo("Error: a GitHub token is required. Set GITHUB_TOKEN or pass --token", err=True)
        sys.exit(1)
    return GitHubAPIClient(token, ctx.obj["settings"])


@click.group()
@click.option('--token', default=None, help='GitHub access token (defaults to GITHUB_TOKEN)')
@click.option('--verbose', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, token, verbose):
    """Read and write blog content stored in a GitHub repository."""
    level = logging.DEBUG if verbose or os.getenv("DEBUG_LOGGING") else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["token"] = token or os.getenv("GITHUB_TOKEN")
    ctx.obj["settings"] = ContentSettings.from_env()
    ctx.obj["client"] = SmartClient(ctx.obj["token"], ctx.obj["settings"])


@cli.command()
@click.option('--drafts', is_flag=True, help='Include drafts (requires a token)')
@click.pass_context
def posts(ctx, drafts):
    """List blog posts, newest first."""
    client: SmartClient = ctx.obj["client"]
    result = _run(client.get_all_blog_posts() if drafts else client.get_blog_posts())
    for post in sorted(result, key=lambda p: p.date, reverse=True):
        marker = " [draft]" if post.is_draft else ""
        click.echo(f"{post.date[:10]}  {post.id}  {post.title}{marker}")
    click.echo(f"{len(result)} posts ({client.describe_source()})")


@cli.command()
@click.argument('name')
@click.pass_context
def post(ctx, name):
    """Print one blog post."""
    result = _run(ctx.obj["client"].get_blog_post(name))
    if result is None:
        click.echo(f"Error: post {name} not found", err=True)
        sys.exit(1)
    click.echo(result.content)


@cli.command()
@click.pass_context
def memos(ctx):
    """List memos."""
    for memo in _run(ctx.obj["client"].get_memos()):
        click.echo(f"{memo.timestamp}  {memo.content}")


@cli.command('memo-add')
@click.argument('content')
@click.option('--image', default=None, help='Image URL to attach')
@click.pass_context
def memo_add(ctx, content, image):
    """Create a memo."""
    memo = Memo(id=str(int(time.time() * 1000)), content=content, timestamp=now_iso(), image=image)
    created = _run(ctx.obj["client"].create_memo(memo))
    click.echo(f"Created memo {created.id}")


@cli.command()
@click.pass_context
def links(ctx):
    """Print site links as JSON."""
    click.echo(json.dumps(_run(ctx.obj["client"].get_links()), indent=2))


@cli.command('manifest-ensure')
@click.pass_context
def manifest_ensure(ctx):
    """Create the blog manifest if the repository has none."""
    api = _api_client(ctx)

    async def run():
        owner = ctx.obj["settings"].github_username or await api.get_authenticated_owner()
        await api.manifest_manager(owner).ensure_manifest_exists()

    _run(run())
    click.echo("Blog manifest is present")


@cli.command('manifest-rebuild')
@click.option('--local', 'local_only', is_flag=True, help='Rebuild the manifest in the local data directory')
@click.pass_context
def manifest_rebuild(ctx, local_only):
    """Regenerate the blog manifest from the files in data/blog."""
    if local_only:
        local = LocalFileSystemClient(Path(ctx.obj["settings"].data_dir))
        manifest = _run(local.update_local_manifest())
    else:
        api = _api_client(ctx)

        async def run():
            owner = ctx.obj["settings"].github_username or await api.get_authenticated_owner()
            return await api.manifest_manager(owner).rebuild_from_directory()

        manifest = _run(run())
    click.echo(f"Manifest: {len(manifest.published)} published, {len(manifest.drafts)} drafts")


@cli.command()
@click.pass_context
def init(ctx):
    """Create the data/ skeleton and manifest in the content repository."""
    api = _api_client(ctx)

    async def run():
        owner = ctx.obj["settings"].github_username or await api.get_authenticated_owner()
        await api.ensure_content_structure(owner)
        await api.manifest_manager(owner).ensure_manifest_exists()

    _run(run())
    click.echo("Content repository initialised")


@cli.command()
@click.pass_context
def health(ctx):
    """Check that the content source is reachable."""
    client: SmartClient = ctx.obj["client"]
    if _run(client.check_repository_health()):
        click.echo(f"✅ {client.describe_source()} content source reachable")
    else:
        click.echo(f"❌ {client.describe_source()} content source unreachable")
        sys.exit(1)


if __name__ == '__main__':
    cli()
