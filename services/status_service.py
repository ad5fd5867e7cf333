from dataclasses import dataclass
from typing import Callable, Optional

from core import console
from core.config import ConfigManager, ResolvedConfig
from core.database import PostgresController
from core.result import FatalError
from core.shell import CommandRunner, wait_until
from services.pm2_client import Pm2Client


@dataclass(frozen=True)
class ProcessStatus:
    pid: Optional[int]
    alive: bool


class StatusReporter:
    """Reports whether the node is up under pm2 and how far its chain has synced."""
    def __init__(self, settings: ConfigManager, node: ResolvedConfig, runner: CommandRunner,
                 pm2: Pm2Client, database: PostgresController,
                 wait: Optional[Callable[..., bool]] = None):
        self.node = node
        self.runner = runner
        self.pm2 = pm2
        self.database = database
        self.timeout = float(settings.get("readiness", "timeout_seconds", default=10))
        self.interval = float(settings.get("readiness", "interval_seconds", default=0.5))
        self.wait = wait or wait_until

    def read_pid(self) -> Optional[int]:
        pid_path = self.pm2.pid_path(self.node.app_name)
        if pid_path is None or not pid_path.is_file():
            return None
        content = pid_path.read_text().strip()
        return int(content) if content.isdigit() else None

    def process_status(self) -> ProcessStatus:
        pid = self.read_pid()
        if pid is None:
            return ProcessStatus(pid=None, alive=False)
        return ProcessStatus(pid=pid, alive=self.runner.succeeds(["ps", "-p", str(pid)]))

    def check(self, wait: bool = False) -> ProcessStatus:
        """Prints the node PID and block height. A dead node aborts the invocation."""
        if wait:
            self.wait(lambda: self.process_status().alive, self.timeout, self.interval)

        self.pm2.describe(self.node.app_name)
        status = self.process_status()
        if not status.alive:
            raise FatalError("Lisk is not running")

        console.success(f"Lisk is running as PID: {status.pid}")
        console.info(f"Current Block Height: {self.database.height()}")
        return status
