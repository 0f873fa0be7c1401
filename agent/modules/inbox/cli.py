"""Command line entry points for the producer, relay and consumer."""

from __future__ import annotations

import asyncio
import json

import click
import httpx

from modules.inbox.context import SessionSnapshotContext
from modules.inbox.errors import AllEndpointsFailed, InboxError
from modules.inbox.models import InboxFilter
from modules.inbox.producer import InboxProducer
from modules.inbox.sync_client import ACCEPT, SKIP, SyncClient
from shared.config import get_settings


def run_async(coro):
    """Run an async function in a new event loop."""
    return asyncio.run(coro)


@click.group()
def cli():
    """Swipe inbox: browser-session sync, relay server and swipe client."""
    pass


# --- Relay ---


@cli.command()
def serve():
    """Run the relay server."""
    from modules.inbox.main import run

    run()


# --- Producer ---


@cli.command()
@click.option("--snapshot", default=None, help="Session snapshot JSON (defaults to SESSION_SNAPSHOT_PATH)")
@click.option("--unread", is_flag=True, help="Only bundles with unread items")
@click.option("--mentioned", is_flag=True, help="Only bundles that mention you")
@click.option("--bundle-type", default=None, help="Restrict to one bundle type, e.g. comment")
@click.option("--dry-run", is_flag=True, help="Fetch and report without pushing to the relay")
def sync(snapshot, unread, mentioned, bundle_type, dry_run):
    """Fetch the inbox from the browser session and push it to the relay."""
    settings = get_settings()
    producer = InboxProducer(
        SessionSnapshotContext(snapshot or settings.session_snapshot_path),
        settings=settings,
    )
    inbox_filter = InboxFilter(unread=unread, mentioned=mentioned, bundle_type=bundle_type)

    try:
        if dry_run:
            fetched = run_async(producer.fetch(inbox_filter))
            click.echo(
                f"Fetched {len(fetched.notifications)} notifications for workspace "
                f"{fetched.workspace_id} via {fetched.candidate} (not pushed)"
            )
            return
        report = run_async(producer.sync(inbox_filter))
    except AllEndpointsFailed as e:
        hint = " Your session looks expired; log in again." if e.session_expired else ""
        raise click.ClickException(f"{e}.{hint}")
    except InboxError as e:
        raise click.ClickException(str(e))
    except httpx.HTTPError as e:
        raise click.ClickException(f"Relay push failed: {e}")

    click.echo(
        f"Synced {report.count} notifications for workspace {report.workspace_id} via {report.candidate}"
    )


# --- Consumer ---


# (infinitive, past tense) per accept operation.
_ACCEPT_VERBS = {"clear": ("clear", "Cleared"), "mark_read": ("mark read", "Marked read")}


def _client(relay_url: str | None, mark_read: bool = False) -> SyncClient:
    return SyncClient(relay_url=relay_url, accept_operation="mark_read" if mark_read else "clear")


@cli.command()
@click.option("--relay-url", default=None, help="Relay base URL (defaults to RELAY_URL)")
@click.option("--limit", default=3, show_default=True, help="Number of cards to show")
@click.option("--as-json", is_flag=True, help="Print cards as JSON")
def pull(relay_url, limit, as_json):
    """Show the top cards of the relay snapshot."""
    client = _client(relay_url)
    try:
        run_async(client.pull())
    except httpx.HTTPError as e:
        raise click.ClickException(f"Relay unavailable: {e}")

    cards = client.render(limit=limit)
    if as_json:
        click.echo(json.dumps({"remaining": client.remaining, "cards": cards}, indent=2))
        return
    if not cards:
        click.echo("Inbox zero.")
        return
    for card in cards:
        location = " / ".join(p for p in (card["space"], card["list"]) if p)
        click.echo(f"[{card['type']}] {card['title']}  ({card['age']})  id={card['id']}")
        if location:
            click.echo(f"    {location}")
        if card["description"]:
            click.echo(f"    {card['description'][:120]}")
    click.echo(f"{client.remaining} remaining")


@cli.command()
@click.argument("identity")
@click.argument("direction", type=click.Choice([ACCEPT, SKIP]))
@click.option("--relay-url", default=None, help="Relay base URL (defaults to RELAY_URL)")
@click.option("--mark-read", is_flag=True, help="Accept marks read instead of clearing")
def swipe(identity, direction, relay_url, mark_read):
    """Swipe one card: accept clears or marks it read remotely, skip only hides it."""
    client = _client(relay_url, mark_read)

    async def _swipe():
        await client.pull()
        return await client.swipe(identity, direction)

    try:
        outcome = run_async(_swipe())
    except httpx.HTTPError as e:
        raise click.ClickException(f"Relay unavailable: {e}")

    if direction == SKIP:
        click.echo(f"Skipped {identity}; it returns on the next sync.")
        return
    verb, done = _ACCEPT_VERBS[client.accept_operation]
    if outcome.error:
        raise click.ClickException(f"Could not {verb} {identity}: {outcome.error}")
    click.echo(f"{done} {identity}; {outcome.remaining_count} remaining.")


if __name__ == "__main__":
    cli()
