"""TunGo dashboard CLI.

This module provides:
- demo: run a full dashboard session against a simulated data plane

The demo needs no tunnel. It waits for a mode, activates a runtime fed by
random traffic, and loops on reconfigure and disconnect the way a real
daemon drives the session.
"""

import asyncio
import logging
import random
from pathlib import Path

import typer
from rich.console import Console

from tungo_tui.buffer import RuntimeLogBuffer, subscribe_feed
from tungo_tui.config import Settings
from tungo_tui.configurator import ConfiguratorOptions
from tungo_tui.exceptions import (
    ConfiguratorError,
    RuntimeDisconnectedError,
    SessionClosedError,
    SessionQuitError,
)
from tungo_tui.session import Session
from tungo_tui.telemetry import StaticTelemetry, TrafficSnapshot
from tungo_tui.types import Mode, RuntimeOptions

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="tungo-tui",
    help="Operator dashboard for the TunGo tunnel daemon",
    no_args_is_help=True,
)


@app.callback()
def _root() -> None:
    """Operator dashboard for the TunGo tunnel daemon."""


async def simulate_dataplane(
    telemetry: StaticTelemetry,
    done: asyncio.Event,
    ready: asyncio.Event,
    connect_delay: float,
    disconnect_after: float,
) -> None:
    """
    Feed random traffic into telemetry until done is set.

    Args:
        telemetry: Snapshot sink read by the dashboard
        done: Runtime context; set here to simulate a dropped link
        ready: Set once the simulated client has connected
        connect_delay: Seconds before ready is set
        disconnect_after: Seconds of traffic before the link drops (0 = never)
    """
    loop = asyncio.get_running_loop()
    logger.info("Connecting to demo server")
    await asyncio.sleep(connect_delay)
    ready.set()
    logger.info("Connected")

    started = loop.time()
    rx_total = 0
    tx_total = 0
    while not done.is_set():
        rx_rate = random.randint(0, 4_000_000)
        tx_rate = random.randint(0, 1_000_000)
        rx_total += rx_rate // 2
        tx_total += tx_rate // 2
        telemetry.set(TrafficSnapshot(rx_rate, tx_rate, rx_total, tx_total))
        if random.random() < 0.2:
            logger.info(f"rx={rx_rate} B/s tx={tx_rate} B/s")

        if disconnect_after > 0 and loop.time() - started >= disconnect_after:
            logger.warning("Simulated link loss")
            done.set()
            return
        await asyncio.sleep(0.5)


async def run_demo(
    server_supported: bool,
    disconnect_after: float,
    settings: Settings,
    console: Console | None = None,
) -> int:
    """
    Drive a session the way the daemon does.

    Returns:
        Process exit code
    """
    buffer = RuntimeLogBuffer(settings.log_capacity)
    feed = subscribe_feed(buffer)
    session = Session(
        ConfiguratorOptions(server_supported=server_supported, log_feed=feed),
        log_buffer=buffer,
        console=console,
        settings=settings,
    )
    await session.start()
    try:
        while True:
            mode = await session.wait_for_mode()
            logger.info(f"Mode selected: {mode.value}")
            while True:
                done = asyncio.Event()
                ready = asyncio.Event()
                telemetry = StaticTelemetry()
                plane = asyncio.create_task(
                    simulate_dataplane(telemetry, done, ready, 1.5, disconnect_after)
                )
                session.activate_runtime(
                    done,
                    RuntimeOptions(
                        mode=mode,
                        log_feed=feed,
                        ready=ready if mode == Mode.CLIENT else None,
                        telemetry=telemetry,
                    ),
                )
                try:
                    reconfigure = await session.wait_for_runtime_exit()
                except RuntimeDisconnectedError:
                    logger.warning("Data plane disconnected, restarting")
                    continue
                finally:
                    done.set()
                    plane.cancel()
                    await asyncio.gather(plane, return_exceptions=True)
                if reconfigure:
                    break
                return 0
    except SessionQuitError:
        return 0
    except (ConfiguratorError, SessionClosedError) as exc:
        logger.error(f"Session ended: {exc}")
        return 1
    finally:
        await session.close()


@app.command("demo")
def demo(
    no_server: bool = typer.Option(
        False, "--no-server", help="Hide the Server mode"
    ),
    disconnect_after: float = typer.Option(
        0.0, "--disconnect-after", "-d", help="Drop the simulated link after N seconds (0 = never)"
    ),
    settings_path: Path | None = typer.Option(
        None, "--settings", "-s", help="UI preferences file (default: TUNGO_UI_SETTINGS_PATH)"
    ),
) -> None:
    """Run the dashboard against a simulated data plane.

    Press Tab to switch screens, Esc to stop the tunnel and reconfigure,
    ctrl+c to exit.
    """
    console = Console()
    settings = Settings()
    if settings_path is not None:
        settings = settings.model_copy(update={"settings_path": settings_path})

    code = asyncio.run(run_demo(not no_server, disconnect_after, settings, console))
    if code != 0:
        console.print("[red]Dashboard session failed[/red]")
    raise typer.Exit(code)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
