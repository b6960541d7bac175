#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import random
from pathlib import Path
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from mumble_client.client import Client
from mumble_client.config import ClientSettings
from mumble_client.gate import Outbound
from mumble_client.handler import Handler
from mumble_client.keys import ClientCertificate, load_certificate, save_certificate
from mumble_client.state import ClientInfo, get_channel_by_name
from mumble_shared.errors import ConfigError, MumbleError
from mumble_shared.log import configure_root_logging
from mumble_shared.messages import ControlMessage, TextMessage
from mumble_shared.utils import parse_endpoint

app = typer.Typer(help="Control channel client for Mumble-style voice servers")
console = Console()


def _load_settings(
    config: Optional[Path],
    host: Optional[str],
    port: Optional[int],
    username: Optional[str],
    insecure: bool,
    cafile: Optional[Path],
    certfile: Optional[Path],
    keyfile: Optional[Path],
    log_level: Optional[str],
) -> ClientSettings:
    """Defaults < YAML file < MUMBLE_* environment < command line; --port beats a port in --host."""
    settings = ClientSettings.from_env(ClientSettings.from_file(config))
    if host:
        try:
            settings.host, settings.port = parse_endpoint(host, default_port=settings.port)
        except ValueError as e:
            raise ConfigError(f"Invalid --host: {e}") from e
    if port:
        settings.port = port
    if username:
        settings.username = username
    if insecure:
        settings.verify_certificate = False
    if cafile:
        settings.cafile = cafile
    if certfile:
        settings.certfile = certfile
        settings.keyfile = keyfile
    if log_level:
        settings.log_level = log_level
    settings.validate()
    configure_root_logging(settings.log_level)
    return settings


class QuietHandler(Handler):
    async def ready(self, outbound: Outbound, client_info: ClientInfo) -> None:
        pass

    async def handle(self, outbound: Outbound, message: ControlMessage, client_info: ClientInfo) -> None:
        pass

    async def finish(self, outbound: Outbound, client_info: ClientInfo) -> None:
        pass


class ShuffleBot(QuietHandler):
    """Posts the members of a channel in random order, e.g. to pick a speaking order."""

    def __init__(self, channel_name: str) -> None:
        self.channel_name = channel_name

    async def ready(self, outbound: Outbound, client_info: ClientInfo) -> None:
        channel = get_channel_by_name(client_info, self.channel_name)
        if channel is None:
            raise LookupError(f"no channel named {self.channel_name!r}")
        names = channel.member_names()
        random.shuffle(names)
        result = "Order: <p>{}</p>".format("</p><p>".join(names))
        await outbound.send_text_message(result, channel.channel_id)
        console.print(f"Posted order for [bold]{self.channel_name}[/]: {', '.join(names)}")


class Listener(QuietHandler):
    """Prints text messages as they arrive."""

    async def ready(self, outbound: Outbound, client_info: ClientInfo) -> None:
        if client_info.welcome_text:
            console.print(f"[dim]{client_info.welcome_text}[/]")
        console.print(f"[bold green]Connected[/] as {client_info.username} (session {client_info.session_id})")

    async def handle(self, outbound: Outbound, message: ControlMessage, client_info: ClientInfo) -> None:
        if not isinstance(message, TextMessage):
            return
        names: Dict[int, str] = {user.session: user.name or "?" for user in client_info.users()}
        sender = names.get(message.actor, f"#{message.actor}") if message.actor is not None else "server"
        console.print(f"[bold cyan]{sender}[/]: {message.message}")


def _channel_table(info: ClientInfo) -> Table:
    table = Table(title=f"Channels ({len(info.channels)})")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Parent", justify="right")
    table.add_column("Members")
    for channel_id in sorted(info.channels):
        channel = info.channels[channel_id]
        parent = channel.info.parent
        table.add_row(
            str(channel_id),
            channel.name or "",
            "" if parent is None else str(parent),
            ", ".join(channel.member_names()),
        )
    return table


def _execute(coro) -> None:
    try:
        asyncio.run(coro)
    except (MumbleError, ConfigError) as e:
        console.print(f"[red]{type(e).__name__}[/]: {escape(str(e))}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        console.print("[dim]Interrupted[/]")


def _config_option():
    return typer.Option(None, "--config", help="YAML settings file")


def _host_option():
    return typer.Option(None, help="Server host, optionally host:port (MUMBLE_HOST)")


def _port_option():
    return typer.Option(None, help="Server port (MUMBLE_PORT)")


def _username_option():
    return typer.Option(None, help="Username to connect as (MUMBLE_USERNAME)")


def _insecure_option():
    return typer.Option(False, "--insecure", help="Do not verify the server certificate")


def _cafile_option():
    return typer.Option(None, help="CA bundle used to verify the server (MUMBLE_CAFILE)")


def _cert_option():
    return typer.Option(None, help="Client certificate PEM file")


def _key_option():
    return typer.Option(None, help="Private key for --certfile, if not inside it")


def _log_level_option():
    return typer.Option(None, help="DEBUG, INFO, WARNING or ERROR")


@app.command()
def channels(
    config: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    port: Optional[int] = _port_option(),
    username: Optional[str] = _username_option(),
    insecure: bool = _insecure_option(),
    cafile: Optional[Path] = _cafile_option(),
    certfile: Optional[Path] = _cert_option(),
    keyfile: Optional[Path] = _key_option(),
    log_level: Optional[str] = _log_level_option(),
):
    """Connect, print the channel tree with its members and disconnect."""

    async def main_loop() -> None:
        settings = _load_settings(config, host, port, username, insecure, cafile, certfile, keyfile, log_level)
        client = await Client.connect_with(QuietHandler(), settings)
        try:
            console.print(_channel_table(client.info))
        finally:
            await client.disconnect()

    _execute(main_loop())


@app.command()
def shuffle(
    channel: str = typer.Argument(..., help="Name of the channel to shuffle"),
    once: bool = typer.Option(False, "--once", help="Disconnect right after posting"),
    config: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    port: Optional[int] = _port_option(),
    username: Optional[str] = _username_option(),
    insecure: bool = _insecure_option(),
    cafile: Optional[Path] = _cafile_option(),
    certfile: Optional[Path] = _cert_option(),
    keyfile: Optional[Path] = _key_option(),
    log_level: Optional[str] = _log_level_option(),
):
    """Post the members of CHANNEL in random order to that channel."""

    async def main_loop() -> None:
        settings = _load_settings(config, host, port, username, insecure, cafile, certfile, keyfile, log_level)
        client = await Client.connect_with(ShuffleBot(channel), settings)
        if once:
            await client.disconnect()
        else:
            await client.run()

    _execute(main_loop())


@app.command()
def listen(
    config: Optional[Path] = _config_option(),
    host: Optional[str] = _host_option(),
    port: Optional[int] = _port_option(),
    username: Optional[str] = _username_option(),
    insecure: bool = _insecure_option(),
    cafile: Optional[Path] = _cafile_option(),
    certfile: Optional[Path] = _cert_option(),
    keyfile: Optional[Path] = _key_option(),
    log_level: Optional[str] = _log_level_option(),
):
    """Stay connected and print text messages until the server drops us."""

    async def main_loop() -> None:
        settings = _load_settings(config, host, port, username, insecure, cafile, certfile, keyfile, log_level)
        client = await Client.connect_with(Listener(), settings)
        await client.run()

    _execute(main_loop())


@app.command()
def gencert(
    name: str = typer.Argument(..., help="Common name for the certificate"),
    out: Path = typer.Option(Path.home() / ".mumble-control" / "client", help="Output path without suffix"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing certificate"),
):
    """Generate a self-signed client certificate (.pem + .key)."""
    existing = load_certificate(out)
    if existing is not None and not force:
        console.print(f"Certificate already exists at {out.with_suffix('.pem')} ({existing.fingerprint()})")
        raise typer.Exit(code=1)
    cert = ClientCertificate.generate(name)
    save_certificate(out, cert)
    console.print(f"[bold green]Saved[/] {out.with_suffix('.pem')} and {out.with_suffix('.key')}")
    console.print(f"Fingerprint: {cert.fingerprint()}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
