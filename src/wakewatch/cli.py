"""Command-line interface for wakewatch."""

import logging
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click

from wakewatch import __version__

if TYPE_CHECKING:
    from wakewatch.config.store import PreferenceStore
    from wakewatch.core.orchestrator import WakeOrchestrator

DEFAULT_CONFIG = Path.home() / ".config" / "wakewatch" / "config.yaml"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def _exit_with_errors(errors: list[str]) -> NoReturn:
    click.echo("Config validation errors:", err=True)
    for e in errors:
        click.echo(f"  • {e}", err=True)
    sys.exit(1)


def _load_engine(config: str) -> "WakeOrchestrator":
    from wakewatch.core.errors import ConfigError
    from wakewatch.core.orchestrator import WakeOrchestrator

    try:
        return WakeOrchestrator.from_config(Path(config))
    except ConfigError as exc:
        _exit_with_errors(str(exc).split("; "))


def _load_store(config: str) -> "PreferenceStore":
    from wakewatch.config.loader import load_config, validate_config
    from wakewatch.config.store import PreferenceStore

    path = Path(config)
    raw = load_config(path) if path.exists() else None
    if raw is not None:
        errors = validate_config(raw)
        if errors:
            _exit_with_errors(errors)
    return PreferenceStore(path)


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="wakewatch")
@click.option(
    "--config",
    "-c",
    default=str(DEFAULT_CONFIG),
    envvar="WAKEWATCH_CONFIG",
    show_default=True,
    help="Path to wakewatch config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config: str, verbose: bool) -> None:
    """wakewatch: wake a LAN host and watch it come up."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── wake command ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for the device")
@click.option("--timeout", default=180.0, show_default=True, help="Seconds to wait")
@click.pass_context
def wake(ctx: click.Context, wait: bool, timeout: float) -> None:
    """Send a Wake-on-LAN packet to the configured device."""
    from wakewatch.core.events import WakeResult

    engine = _load_engine(ctx.obj["config"])
    engine.set_foreground(True)
    engine.start()
    try:
        engine.sync_link()
        result = engine.wake_device()
        device = engine.device.value
        if result != WakeResult.SUCCESS:
            click.echo(f"✗  Wake failed: {result.value}", err=True)
            sys.exit(2)
        click.echo(f"WOL packet sent to {device.mac_address} ({device.address})")
        if not wait:
            return
        click.echo(f"Waiting up to {timeout:.0f}s for {device.address}…")
        state = engine.wait_until_settled(timeout).connection_state
        click.echo(f"Device is {state.value}")
        if state.value != "connected":
            sys.exit(3)
    finally:
        engine.stop()


# ── check command ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--timeout", default=5.0, show_default=True, help="Seconds to wait")
@click.pass_context
def check(ctx: click.Context, timeout: float) -> None:
    """Probe the configured device once."""
    engine = _load_engine(ctx.obj["config"])
    engine.set_foreground(True)
    engine.start()
    try:
        engine.sync_link()
        if not engine.check_device_connectivity():
            click.echo("Device not checked: Wi-Fi down or device on another subnet", err=True)
            sys.exit(2)
        device = engine.wait_until_settled(timeout)
        click.echo(f"{device.address}: {device.connection_state.value}")
    finally:
        engine.stop()


# ── status command ────────────────────────────────────────────────────────────


@main.command()
@click.option("--timeout", default=5.0, show_default=True, help="Seconds to wait for a probe")
@click.pass_context
def status(ctx: click.Context, timeout: float) -> None:
    """Show Wi-Fi and device state."""
    engine = _load_engine(ctx.obj["config"])
    engine.set_foreground(True)
    engine.start()
    try:
        engine.sync_link()
        engine.wait_until_settled(timeout)
        snap = engine.status()
    finally:
        engine.stop()

    wifi, device = snap["wifi"], snap["device"]
    click.echo(f"{'':<8} {'STATE':<14} {'ADDRESS':<17} {'DETAIL'}")
    click.echo("─" * 64)
    click.echo(
        f"{'wifi':<8} {wifi['state']:<14} {wifi['address']:<17} "
        f"broadcast {wifi['broadcast_address']} mask {wifi['subnet_mask']}"
    )
    click.echo(
        f"{'device':<8} {device['state']:<14} {device['address']:<17} mac {device['mac_address']}"
    )


# ── watch command ─────────────────────────────────────────────────────────────


@main.command()
@click.option(
    "--foreground/--background",
    default=False,
    show_default=True,
    help="Foreground suppresses availability notifications",
)
@click.pass_context
def watch(ctx: click.Context, foreground: bool) -> None:
    """Track Wi-Fi and device state until interrupted."""
    from wakewatch.core.state import DeviceState, WifiState

    engine = _load_engine(ctx.obj["config"])
    engine.set_foreground(foreground)

    def _on_wifi(old: WifiState, new: WifiState) -> None:
        click.echo(f"wifi    {new.connection_state.value:<14} {new.local_address}")

    def _on_device(old: DeviceState, new: DeviceState) -> None:
        click.echo(f"device  {new.connection_state.value:<14} {new.address}")

    engine.wifi.subscribe(_on_wifi)
    engine.device.subscribe(_on_device)
    engine.start()
    click.echo(f"Watching {engine.settings.interface}, Ctrl-C to stop")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        pass
    finally:
        engine.stop()


# ── serve command ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind host")
@click.option("--port", default=8000, show_default=True, help="Bind port")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int) -> None:
    """Start the wakewatch JSON API server."""
    import uvicorn

    from wakewatch.api.routes import create_app

    engine = _load_engine(ctx.obj["config"])
    app = create_app(engine=engine)
    click.echo(f"Starting wakewatch API at http://{host}:{port}")
    uvicorn.run(app, host=host, port=port)


# ── prefs group ───────────────────────────────────────────────────────────────


@main.group()
def prefs() -> None:
    """Show and change device preferences."""


@prefs.command("show")
@click.pass_context
def prefs_show(ctx: click.Context) -> None:
    """Print the current preferences."""
    for key, value in _load_store(ctx.obj["config"]).snapshot().items():
        click.echo(f"{key:<28} {value}")


@prefs.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def prefs_set(ctx: click.Context, key: str, value: str) -> None:
    """Set a preference (device IP, device MAC or subnet mask)."""
    from wakewatch.core.errors import WakewatchError

    try:
        changed = _load_store(ctx.obj["config"]).set(key, value)
    except WakewatchError as exc:
        click.echo(f"✗  {exc}", err=True)
        sys.exit(1)
    click.echo(f"{key} = {value}" if changed else f"{key} unchanged")


# ── net group ─────────────────────────────────────────────────────────────────


@main.group()
def net() -> None:
    """Subnet arithmetic and packet helpers."""


@net.command("broadcast")
@click.argument("address")
@click.argument("mask")
def net_broadcast(address: str, mask: str) -> None:
    """Print the broadcast address of ADDRESS under MASK."""
    from wakewatch.core.errors import InvalidFormat
    from wakewatch.core.netmath import broadcast_address

    try:
        click.echo(broadcast_address(address, mask))
    except InvalidFormat as exc:
        click.echo(f"✗  {exc}", err=True)
        sys.exit(1)


@net.command("same-subnet")
@click.argument("first")
@click.argument("second")
@click.argument("mask")
def net_same_subnet(first: str, second: str, mask: str) -> None:
    """Exit 0 if FIRST and SECOND share a subnet under MASK, 2 otherwise."""
    from wakewatch.core.errors import InvalidFormat
    from wakewatch.core.netmath import same_subnet

    try:
        same = same_subnet(first, second, mask)
    except InvalidFormat as exc:
        click.echo(f"✗  {exc}", err=True)
        sys.exit(1)
    click.echo("yes" if same else "no")
    if not same:
        sys.exit(2)


@net.command("packet")
@click.argument("mac")
def net_packet(mac: str) -> None:
    """Print the magic packet for MAC as hex, one 6-byte group per line."""
    from wakewatch.core.errors import InvalidFormat
    from wakewatch.core.wol import build_magic_packet

    try:
        packet = build_magic_packet(mac)
    except InvalidFormat as exc:
        click.echo(f"✗  {exc}", err=True)
        sys.exit(1)
    for i in range(0, len(packet), 6):
        click.echo(packet[i : i + 6].hex(":"))


if __name__ == "__main__":
    main()
