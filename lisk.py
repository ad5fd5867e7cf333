#!/usr/bin/env python3
"""
Lisk CLI

Operations wrapper that starts, stops, rebuilds and monitors a Lisk node
together with its PostgreSQL database and optional Redis cache, on
mainnet, testnet or devnet.

    lisk.py <command> <network> [-p pm2-config.json] [-u URL] [-f file.db.gz] [-0]
"""

import os
from contextlib import contextmanager
import httpx
import typer
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional
from typing_extensions import Annotated

from core import console
from core.config import NETWORKS, ConfigManager, resolve_node_config
from core.database import PostgresController
from core.result import FatalError
from core.shell import CommandRunner
from services.autostart_service import register_autostart
from services.cache_service import RedisController
from services.node_service import NodeController
from services.pm2_client import Pm2Client
from services.snapshot_service import SnapshotFetcher, SnapshotSource
from services.status_service import StatusReporter

cli = typer.Typer(name="lisk", help="Lisk node operations wrapper", add_completion=False)
SCRIPT_PATH = Path(__file__).resolve()

HELP_TEXT = """
Command Options for lisk.py

All options may be passed [-p <PM2-config.json>]

start_node                            Starts a Nodejs process for Lisk
start                                 Starts the Nodejs process and PostgreSQL Database for Lisk
stop_node                             Stops a Nodejs process for Lisk
stop                                  Stop the Nodejs process and PostgreSQL Database for Lisk
reload                                Restarts the Nodejs process for Lisk
rebuild [-u URL] [-f file.db.gz] [-0] Rebuilds the PostgreSQL database
start_db                              Starts the PostgreSQL database
stop_db                               Stops the PostgreSQL database
coldstart                             Creates the PostgreSQL database and configures config.json for Lisk
cleanup                               Removes all pm2 managed processes and stops pm2
lisky                                 Launches Lisky
logs                                  Displays and tails logs for Lisk
status                                Displays the status of the PID associated with Lisk
help                                  Displays this message"""

# --- Component Factory ---

def install_root() -> Path:
    return Path(os.environ.get("LISK_HOME") or Path.cwd()).resolve()


def create_runner(settings: ConfigManager) -> CommandRunner:
    return CommandRunner(cwd=settings.root, bin_dir=settings.path("paths", "bin_dir"))


def create_http_client() -> httpx.Client:
    return httpx.Client(follow_redirects=True, timeout=httpx.Timeout(30.0, read=300.0))


class Components:
    """Every controller for one invocation, wired to the same resolved config and runner."""
    def __init__(self, settings: ConfigManager, network: str, runner: CommandRunner,
                 descriptor: Optional[Path] = None, snapshot: Optional[SnapshotSource] = None):
        self.settings = settings
        self.runner = runner
        self.descriptor = descriptor
        self.config = resolve_node_config(settings, network, descriptor)
        self.snapshot = snapshot or SnapshotSource.resolve(settings, network)

        self.database = PostgresController(settings, self.config, runner)
        self.cache = RedisController(settings, self.config, runner)
        self.pm2 = Pm2Client(runner)
        self.status = StatusReporter(settings, self.config, runner, self.pm2, self.database)
        self.lisk = NodeController(self.config, self.pm2, self.cache, self.status)

    @contextmanager
    def fetcher(self) -> Iterator[SnapshotFetcher]:
        with create_http_client() as client:
            yield SnapshotFetcher(self.snapshot, client)

    def register_autostart(self):
        return register_autostart(
            self.runner,
            SCRIPT_PATH,
            self.settings.root,
            self.config.network,
            self.settings.path("paths", "cron_log"),
            self.descriptor,
        )

# --- Commands ---

def coldstart(c: Components):
    with console.quiet():
        c.lisk.stop()
        c.database.stop()
    c.database.init_data_dir()
    c.database.start()
    c.database.create_user()
    c.database.create_database()
    with c.fetcher() as fetcher:
        c.database.populate(fetcher)
    c.register_autostart()
    c.lisk.start()


def start(c: Components):
    c.database.start()
    c.lisk.start()


def stop(c: Components):
    c.lisk.stop()
    c.database.stop()


def rebuild(c: Components):
    c.lisk.stop()
    c.database.start()
    c.database.create_database()
    with c.fetcher() as fetcher:
        fetcher.fetch()
    c.database.restore(c.snapshot.path)
    c.lisk.start()


def tail_logs(c: Components):
    c.runner.foreground(["tail", "-f", str(c.config.log_file)])


def lisky(c: Components):
    c.runner.foreground(["node", str(c.settings.path("paths", "lisky"))])


def show_help(c: Components):
    typer.echo(HELP_TEXT)


COMMANDS: Dict[str, Callable[[Components], None]] = {
    "start": start,
    "stop": stop,
    "start_node": lambda c: c.lisk.start(),
    "stop_node": lambda c: c.lisk.stop(),
    "start_db": lambda c: c.database.start(),
    "stop_db": lambda c: c.database.stop(),
    "reload": lambda c: c.lisk.reload(),
    "rebuild": rebuild,
    "coldstart": coldstart,
    "cleanup": lambda c: c.lisk.cleanup(),
    "logs": tail_logs,
    "lisky": lisky,
    "status": lambda c: c.status.check(),
    "help": show_help,
}


def _running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _unrecognized():
    typer.secho("Error: Unrecognized command.", fg=typer.colors.RED)
    typer.echo("")
    typer.echo(f"Available commands are: {' '.join(COMMANDS)}")
    typer.echo(HELP_TEXT)


@cli.command()
def main(
    command: Annotated[str, typer.Argument(help="What to do, see `help`.")],
    network: Annotated[Optional[str], typer.Argument(help="mainnet, testnet or devnet.")] = None,
    pm2_config: Annotated[Optional[Path], typer.Option("-p", "--pm2-config", help="Alternate PM2 descriptor.")] = None,
    url: Annotated[Optional[str], typer.Option("-u", "--url", help="Base URL to download the snapshot from.")] = None,
    snapshot_file: Annotated[Optional[str], typer.Option("-f", "--file", help="Local snapshot to restore.")] = None,
    bundled: Annotated[bool, typer.Option("-0", "--bundled-snapshot", help="Restore the snapshot shipped in etc/.")] = False,
):
    """Runs one Lisk operation against the given network."""
    if _running_as_root():
        typer.secho("Error: Lisk should not be run be as root. Exiting.", fg=typer.colors.RED)
        raise typer.Exit(1)

    root = install_root()
    settings = ConfigManager(root / "etc" / "lisk.yml", root)
    console.setup_logging(
        settings.path("paths", "log_file"),
        level=settings.get("logging", "level", default="INFO"),
        max_bytes=int(settings.get("logging", "max_bytes", default=5_000_000)),
        backup_count=int(settings.get("logging", "backup_count", default=3)),
    )

    if network not in NETWORKS:
        typer.echo("No network specified. Please specify a network: mainnet, testnet, devnet")
        typer.echo("Exiting...")
        raise typer.Exit(0)

    if pm2_config is not None and not pm2_config.is_absolute():
        pm2_config = root / pm2_config
    if pm2_config is not None and not pm2_config.is_file():
        typer.secho("PM2-config.json not found. Please verify the file exists and try again.", fg=typer.colors.RED)
        raise typer.Exit(1)

    console.logger.info("Lisk configured for %s network", network)

    try:
        snapshot = SnapshotSource.resolve(settings, network, url=url, snapshot_file=snapshot_file, bundled=bundled)
        components = Components(settings, network, create_runner(settings), pm2_config, snapshot)

        action = COMMANDS.get(command)
        if action is None:
            _unrecognized()
            return
        action(components)
    except FatalError as e:
        console.failure(e.message)
        raise typer.Exit(e.exit_code)


def run():
    cli()


if __name__ == "__main__":
    cli()
