"""
dtel CLI - access tokens and edge node resolution.
"""

import asyncio
import json
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .auth import AccessToken, AccessTokenOptions, TokenVerifier, VideoGrant, derive_public_key
from .config import get_config
from .edge import build_resolver
from .exceptions import DtelError

console = Console()


def setup_logging(verbose: bool = False):
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[logging.StreamHandler()]
    )


def run_async(coro):
    """Run an async function."""
    return asyncio.run(coro)


def fail(error: Exception):
    console.print(f"[red]✗ {error}[/red]")
    sys.exit(1)


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--api-key', envvar='API_KEY', help='API key (env: API_KEY)')
@click.option('--api-secret', envvar='API_SECRET', help='Hex API secret (env: API_SECRET)')
@click.pass_context
def main(ctx, verbose, api_key, api_secret):
    """dtel - access tokens and edge node resolution"""
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    setup_logging(verbose)

    config = get_config()
    ctx.obj['config'] = config
    ctx.obj['api_key'] = api_key or config.api_key
    ctx.obj['api_secret'] = api_secret or config.api_secret


# ============ Tokens ============

@main.group()
def token():
    """Issue and verify access tokens."""
    pass


@token.command('create')
@click.option('--identity', '-i', help='Participant identity (required to join)')
@click.option('--ttl', help='Lifetime in seconds or a span like 10h')
@click.option('--name', '-n', help='Display name')
@click.option('--metadata', help='Opaque metadata passed to participants')
@click.option('--webhook-url', help='Notification URL')
@click.option('--room', '-r', help='Room the grant applies to')
@click.option('--join/--no-join', default=True, help='Grant room join')
@click.option('--publish/--no-publish', default=True, help='Grant publishing')
@click.option('--subscribe/--no-subscribe', default=True, help='Grant subscribing')
@click.option('--grant', 'grant_json', help='Full video grant as JSON (overrides flags)')
@click.pass_context
def token_create(ctx, identity, ttl, name, metadata, webhook_url, room, join, publish, subscribe, grant_json):
    """Mint a signed token and print it."""
    config = ctx.obj['config']

    try:
        if grant_json:
            grant = VideoGrant.model_validate(json.loads(grant_json))
        else:
            grant = VideoGrant(
                room_join=join,
                room=room,
                can_publish=publish,
                can_subscribe=subscribe,
            )

        access_token = AccessToken(
            ctx.obj['api_key'],
            ctx.obj['api_secret'],
            AccessTokenOptions(
                identity=identity,
                ttl=ttl or config.default_ttl,
                name=name,
                metadata=metadata,
                webhook_url=webhook_url,
            ),
        )
        access_token.add_grant(grant)
        jwt = access_token.to_jwt()
    except (DtelError, ValueError) as e:
        fail(e)

    click.echo(jwt)


@token.command('verify')
@click.argument('jwt')
@click.pass_context
def token_verify(ctx, jwt):
    """Verify a token and show its claims."""
    try:
        claims = TokenVerifier(ctx.obj['api_key'], ctx.obj['api_secret']).verify(jwt)
    except DtelError as e:
        fail(e)

    console.print("\n[bold green]✓ Token valid[/bold green]\n")

    table = Table(show_header=False, box=None)
    table.add_column("Claim", style="dim")
    table.add_column("Value")

    table.add_row("Identity", f"[cyan]{claims.identity or '-'}[/cyan]")
    table.add_row("Name", claims.name or "-")
    table.add_row("Metadata", claims.metadata or "-")
    if claims.content_hash:
        table.add_row("SHA-256", claims.content_hash)
    if claims.webhook_url:
        table.add_row("Webhook", claims.webhook_url)
    if claims.video:
        table.add_row("Video grant", json.dumps(claims.video.to_dict()))

    console.print(table)
    console.print()


@main.group()
def keys():
    """Inspect keys derived from the API secret."""
    pass


@keys.command('public')
@click.pass_context
def keys_public(ctx):
    """Print the public key PEM verifiers need."""
    secret = ctx.obj['api_secret']
    if not secret:
        fail("api-secret must be set")
    try:
        click.echo(derive_public_key(secret), nl=False)
    except DtelError as e:
        fail(e)


# ============ Edge nodes ============

@main.group()
def nodes():
    """Inspect registered edge nodes."""
    pass


@nodes.command('list')
@click.pass_context
def nodes_list(ctx):
    """List nodes in the registry."""
    config = ctx.obj['config']

    async def do_list():
        resolver = build_resolver(config)
        try:
            return await resolver.directory.list_active_nodes(locate=True)
        finally:
            await resolver.close()

    try:
        records = run_async(do_list())
    except DtelError as e:
        fail(e)

    allowed = set(config.resolver.allowed_nodes)

    table = Table(title="Edge nodes")
    table.add_column("Node ID", style="cyan")
    table.add_column("Address")
    table.add_column("Active")
    table.add_column("Allowed")
    table.add_column("Location", style="dim")

    for node in records:
        location = node.location
        table.add_row(
            node.node_id,
            node.dotted_address,
            "[green]yes[/green]" if node.active else "[red]no[/red]",
            "yes" if node.node_id in allowed else "-",
            f"{location.latitude:.2f}, {location.longitude:.2f}" if location else "-",
        )

    console.print(table)


@nodes.command('order')
@click.option('--client-ip', help='Client address to order for')
@click.option('--ordering', type=click.Choice(['geo', 'random']), help='Candidate ordering')
@click.pass_context
def nodes_order(ctx, client_ip: Optional[str], ordering: Optional[str]):
    """Show allow-listed nodes in the order they would be tried."""
    config = ctx.obj['config']
    if ordering:
        config.resolver.ordering = ordering

    async def do_order():
        resolver = build_resolver(config)
        try:
            candidates = await resolver.order_candidates(client_ip)
            return [(node, resolver.endpoint_for(node)) for node in candidates]
        finally:
            await resolver.close()

    try:
        ranked = run_async(do_order())
    except DtelError as e:
        fail(e)

    table = Table(title=f"Candidates for {client_ip}" if client_ip else "Candidates")
    table.add_column("#", style="dim")
    table.add_column("Node ID", style="cyan")
    table.add_column("Address")
    table.add_column("Endpoint")

    for rank, (node, endpoint) in enumerate(ranked, 1):
        table.add_row(str(rank), node.node_id, node.dotted_address, endpoint)

    console.print(table)


@main.command()
@click.option('--client-ip', help='Client address to resolve for')
@click.option('--ordering', type=click.Choice(['geo', 'random']), help='Candidate ordering')
@click.option('--selection', type=click.Choice(['probe', 'immediate']), help='Candidate selection')
@click.pass_context
def resolve(ctx, client_ip: Optional[str], ordering: Optional[str], selection: Optional[str]):
    """Print the edge endpoint a client should connect to."""
    config = ctx.obj['config']
    if ordering:
        config.resolver.ordering = ordering
    if selection:
        config.resolver.selection = selection

    async def do_resolve():
        resolver = build_resolver(config)
        try:
            return await resolver.resolve_endpoint(client_ip)
        finally:
            await resolver.close()

    try:
        url = run_async(do_resolve())
    except DtelError as e:
        fail(e)

    click.echo(url)


@main.command()
@click.option('--host', '-h', default=None, help='Host to bind to')
@click.option('--port', '-p', default=None, type=int, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
@click.pass_context
def serve(ctx, host: Optional[str], port: Optional[int], reload: bool):
    """Start the dtel API server."""
    config = ctx.obj['config']
    host = host or config.server.host
    port = port or config.server.port

    console.print(f"\n[bold blue]Starting dtel server[/bold blue]")
    console.print(f"   Listening on: http://{host}:{port}")
    console.print(f"   Press Ctrl+C to stop\n")

    from .api.server import run_server

    run_server(host=host, port=port, reload=reload)


if __name__ == '__main__':
    main()
