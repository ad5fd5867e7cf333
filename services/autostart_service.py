import shlex
import sys
from pathlib import Path
from typing import List, Optional

from core import console
from core.result import Result
from core.shell import CommandRunner


def build_entry(script: Path, root: Path, network: str, cron_log: Path, descriptor: Optional[Path] = None) -> str:
    # cron starts jobs from $HOME, so the install root is pinned both as cwd and as LISK_HOME
    command = f"{shlex.quote(sys.executable)} {shlex.quote(str(script))} start {network}"
    if descriptor is not None:
        command += f" -p {shlex.quote(str(descriptor))}"
    quoted_root = shlex.quote(str(root))
    return f"@reboot cd {quoted_root} && LISK_HOME={quoted_root} {command} > {shlex.quote(str(cron_log))} 2>&1"


def replace_entry(crontab: str, script: Path, entry: str) -> List[str]:
    """Drops earlier autostart lines for this script and appends the new one."""
    marker = f"{script.name} start"
    lines = [line for line in crontab.splitlines() if marker not in line]
    return lines + [entry]


def register_autostart(runner: CommandRunner, script: Path, root: Path, network: str, cron_log: Path,
                       descriptor: Optional[Path] = None) -> Result:
    """Makes the node start again after a reboot via an @reboot crontab line."""
    if runner.which("crontab") is None:
        console.failure("Failed to execute crontab.")
        return Result.fail("crontab not found")

    current = runner.run(["crontab", "-l"])
    existing = current.stdout if current.returncode == 0 else ""
    lines = replace_entry(existing, script, build_entry(script, root, network, cron_log, descriptor))

    if not runner.succeeds(["crontab", "-"], input_text="\n".join(lines) + "\n"):
        console.failure("Failed to update crontab.")
        return Result.fail("crontab update failed")

    console.success("Crontab updated successfully.")
    return Result.success()
