import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.shell import CommandRunner


class Pm2Client:
    """Thin wrapper over the pm2 CLI."""
    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def start(self, descriptor: Path) -> bool:
        return self.runner.succeeds(["pm2", "start", str(descriptor)])

    def delete(self, descriptor: Path) -> bool:
        return self.runner.succeeds(["pm2", "delete", str(descriptor)])

    def describe(self, app_name: str) -> bool:
        return self.runner.succeeds(["pm2", "describe", app_name])

    def jlist(self) -> List[Dict[str, Any]]:
        """The process table as structured data; empty if pm2 is unavailable."""
        result = self.runner.run(["pm2", "jlist"])
        if result.returncode != 0:
            return []
        try:
            processes = json.loads(result.stdout)
        except json.JSONDecodeError:
            return []
        return processes if isinstance(processes, list) else []

    def pid_path(self, app_name: str) -> Optional[Path]:
        for process in self.jlist():
            if process.get("name") == app_name:
                path = (process.get("pm2_env") or {}).get("pm_pid_path")
                return Path(path) if path else None
        return None

    def cleanup(self):
        """Removes every managed process and stops the pm2 daemon."""
        self.runner.run(["pm2", "delete", "all"])
        self.runner.run(["pm2", "kill"])
