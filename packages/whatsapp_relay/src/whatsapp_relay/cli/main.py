"""
WhatsApp Relay CLI

Command-line interface for WhatsApp Relay administration.

Commands:
- check-number: Validate and normalize phone numbers locally
- sample-payload: Print the relay payload produced for a sample message
- status: Show the session status of a running relay API
- chats: List the chats of a running relay API
- send: Send a message through a running relay API
- send-bulk: Send the same message to several numbers
"""

import os
import time
from typing import Any, Optional

import httpx
import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from basecore.settings import get_settings
from whatsapp_relay.providers.base import ChatInfo, ContactInfo, InboundEvent
from whatsapp_relay.routing.identifiers import IdentifierNormalizer
from whatsapp_relay.service.formatter import format_payload

app = typer.Typer(
    name="whatsapp-relay",
    help="WhatsApp Relay CLI",
)

console = Console()

DEFAULT_API_URL = os.getenv("RELAY_API_URL", "http://localhost:8080")


def get_normalizer() -> IdentifierNormalizer:
    """Build a normalizer from settings."""
    settings = get_settings()
    return IdentifierNormalizer(
        country_code=settings.COUNTRY_CODE,
        mobile_prefix=settings.MOBILE_PREFIX,
    )


def _api_client(api_url: str) -> httpx.Client:
    """HTTP client for the relay API."""
    return httpx.Client(base_url=api_url.rstrip("/"), timeout=30.0)


def _call_api(
    api_url: str,
    method: str,
    path: str,
    json_data: dict[str, Any] | None = None,
    params: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Call the relay API, exiting with an error message on failure."""
    try:
        with _api_client(api_url) as client:
            response = client.request(method, path, json=json_data, params=params)
    except httpx.RequestError as e:
        rprint(f"[red]Could not reach relay API at {api_url}: {e}[/red]")
        raise typer.Exit(1)

    try:
        body = response.json()
    except ValueError:
        body = {"error": {"message": response.text}}

    if response.status_code >= 400 or not body.get("success", False):
        error = body.get("error") or {}
        message = error.get("message") if isinstance(error, dict) else str(error)
        rprint(f"[red]Request failed ({response.status_code}): {message or 'unknown error'}[/red]")
        raise typer.Exit(1)

    return body.get("data") or {}


@app.command()
def check_number(
    numbers: list[str] = typer.Argument(..., help="Phone numbers to check"),
):
    """
    Validate phone numbers and show their canonical and WhatsApp forms.

    Exits with status 1 if any number is invalid.
    """
    normalizer = get_normalizer()

    table = Table(title="Phone numbers")
    table.add_column("Input")
    table.add_column("Valid")
    table.add_column("Normalized")
    table.add_column("WhatsApp ID")
    table.add_column("Display")

    all_valid = True
    for number in numbers:
        valid = normalizer.is_valid(number)
        all_valid = all_valid and valid
        table.add_row(
            number,
            "[green]yes[/green]" if valid else "[red]no[/red]",
            normalizer.normalize(number),
            normalizer.to_network_form(number) if valid else "-",
            normalizer.format_for_display(number) if valid else "-",
        )

    console.print(table)

    if not all_valid:
        raise typer.Exit(1)


@app.command()
def sample_payload(
    sender: str = typer.Option("91134083140", help="Sender phone number"),
    text: str = typer.Option("Hola!", help="Message body"),
    name: Optional[str] = typer.Option(None, help="Sender display name"),
):
    """
    Print the relay payload the engine would POST for a message.
    """
    normalizer = get_normalizer()
    if not normalizer.is_valid(sender):
        rprint(f"[red]Invalid phone number: {sender}[/red]")
        raise typer.Exit(1)

    address = normalizer.to_network_form(sender)
    event = InboundEvent(
        message_id=f"sample_{int(time.time())}",
        sender=address,
        recipient=normalizer.to_network_form("1100000000"),
        timestamp=time.time(),
        body=text,
    )
    contact = ContactInfo(contact_id=address, number=normalizer.normalize(sender), pushname=name)
    payload = format_payload(event, contact, ChatInfo(chat_id=address), normalizer)

    if payload is None:
        rprint("[red]Could not build payload[/red]")
        raise typer.Exit(1)

    console.print_json(data=payload.to_wire())


@app.command()
def status(
    api_url: str = typer.Option(DEFAULT_API_URL, help="Relay API base URL"),
):
    """
    Show session status from a running relay API.
    """
    data = _call_api(api_url, "GET", "/status")

    color = "green" if data.get("isConnected") else "yellow"
    rprint(f"[{color}]Session: {data.get('status', 'unknown')}[/{color}]")
    rprint(f"  Reconnect attempts: {data.get('reconnectAttempts', 0)}")
    if data.get("reconnectExhausted"):
        rprint("  [red]Reconnection exhausted, restart required[/red]")
    if data.get("hasPairingToken"):
        rprint("  Pairing token available at /qr")
    rprint(f"  In-flight deliveries: {data.get('inFlightDeliveries', 0)}")


@app.command()
def chats(
    chat_type: Optional[str] = typer.Option(None, "--type", help="Only 'group' or 'private' chats"),
    limit: int = typer.Option(50, help="Maximum number of chats"),
    api_url: str = typer.Option(DEFAULT_API_URL, help="Relay API base URL"),
):
    """
    List the chats of a running relay API.
    """
    if chat_type is not None and chat_type not in ("group", "private"):
        rprint(f"[red]Unknown chat type: {chat_type} (use 'group' or 'private')[/red]")
        raise typer.Exit(1)

    params: dict[str, Any] = {"limit": limit}
    if chat_type:
        params["type"] = chat_type

    data = _call_api(api_url, "GET", "/chats", params=params)

    table = Table(title=f"Chats: {data.get('returned', 0)} of {data.get('filtered', 0)}")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Unread", justify="right")
    table.add_column("Last message", style="dim")

    for chat in data.get("chats", []):
        last = chat.get("lastMessage") or {}
        table.add_row(
            str(chat.get("id")),
            str(chat.get("name")),
            str(chat.get("type")),
            str(chat.get("unreadCount", 0)),
            str(last.get("body", ""))[:40],
        )

    console.print(table)


@app.command()
def send(
    to: str = typer.Argument(..., help="Recipient phone number"),
    message: str = typer.Argument(..., help="Message text"),
    reply_to: Optional[str] = typer.Option(None, help="Message ID to reply to"),
    api_url: str = typer.Option(DEFAULT_API_URL, help="Relay API base URL"),
):
    """
    Send a message through a running relay API.
    """
    payload: dict[str, Any] = {"to": to, "message": message}
    if reply_to:
        payload["replyTo"] = reply_to

    data = _call_api(api_url, "POST", "/send-message", payload)

    rprint("[green]Message sent successfully![/green]")
    rprint(f"  Message ID: {data.get('messageId')}")
    rprint(f"  To: {data.get('to')}")


@app.command()
def send_bulk(
    message: str = typer.Argument(..., help="Message text"),
    numbers: list[str] = typer.Argument(..., help="Recipient phone numbers"),
    delay: int = typer.Option(1000, help="Pause between sends (ms)"),
    api_url: str = typer.Option(DEFAULT_API_URL, help="Relay API base URL"),
):
    """
    Send the same message to several numbers.
    """
    data = _call_api(
        api_url,
        "POST",
        "/send-bulk",
        {"numbers": numbers, "message": message, "delay": delay},
    )

    table = Table(title=f"Bulk send: {data.get('successful', 0)}/{data.get('total', 0)} sent")
    table.add_column("Number")
    table.add_column("Result")
    table.add_column("Detail", style="dim")

    for result in data.get("results", []):
        table.add_row(str(result.get("number")), "[green]sent[/green]", str(result.get("messageId")))
    for failure in data.get("errors", []):
        table.add_row(str(failure.get("number")), "[red]failed[/red]", str(failure.get("message")))

    console.print(table)

    if data.get("failed"):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
