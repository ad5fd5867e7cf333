from typing import List, Optional

from core import console
from core.config import ConfigManager, ResolvedConfig
from core.result import FatalError, Result
from core.shell import CommandRunner


class RedisController:
    """
    Starts and stops the bundled redis-server.
    Does nothing when caching is disabled, and leaves a server on the
    OS-default port alone since that one is managed by the system.
    """
    def __init__(self, settings: ConfigManager, node: ResolvedConfig, runner: CommandRunner):
        self.node = node
        self.runner = runner
        self.server = settings.path("redis", "server")
        self.cli = settings.path("redis", "cli")
        self.config_file = settings.path("redis", "config")
        self.pid_file = settings.path("redis", "pid_file")
        self.default_port = int(settings.get("redis", "default_port", default=6379))

    @property
    def enabled(self) -> bool:
        return self.node.cache_enabled

    def externally_managed(self) -> bool:
        return self.node.redis_port == self.default_port

    def start(self) -> Result:
        if not self.enabled:
            return Result.success()

        if self.externally_managed():
            console.success("Using OS Redis-Server, skipping startup")
        elif not self.pid_file.exists():
            if not self.runner.succeeds([str(self.server), str(self.config_file)]):
                raise FatalError("Failed to start Redis-Server.")
            console.success("Redis-Server started successfully.")
        else:
            console.success("Redis-Server is already running")
        return Result.success()

    def stop(self) -> Result:
        if not self.enabled:
            return Result.success()

        if self.externally_managed():
            console.success("OS Redis-Server detected, skipping shutdown")
        elif self.pid_file.exists():
            if self.runner.succeeds(self.shutdown_command()):
                console.success("Redis-Server stopped successfully.")
            else:
                console.failure("Failed to stop Redis-Server.")
                return self._kill()
        else:
            console.success("Redis-Server already stopped")
        return Result.success()

    def shutdown_command(self) -> List[str]:
        command = [str(self.cli), "-p", str(self.node.redis_port)]
        if self.node.redis_password:
            command += ["-a", self.node.redis_password]
        return command + ["shutdown"]

    def _read_pid(self) -> Optional[str]:
        lines = self.pid_file.read_text().split()
        return lines[-1] if lines else None

    def _kill(self) -> Result:
        pid = self._read_pid()
        if pid is None or not self.runner.succeeds(["kill", "-9", pid]):
            console.failure("Failed to kill Redis-Server.")
            return Result.fail(f"could not kill pid {pid}")
        # redis-server only removes its pid file on a clean shutdown
        self.pid_file.unlink(missing_ok=True)
        console.success("Redis-Server killed")
        return Result.success()
