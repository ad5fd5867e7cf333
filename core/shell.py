"""
Command runner for the external tools the wrapper drives
(pg_ctl, psql, redis-cli, pm2, crontab, tail, ...).

Every call is recorded in the transcript log together with its exit
status and captured output, so the console only shows the √/X lines.
"""

import logging
import os
import shutil
import subprocess
import sys
import tempfile
import time
from pathlib import Path
from typing import Callable, List, Optional

logger = logging.getLogger("lisk.shell")

COMMAND_NOT_FOUND = 127


def wait_until(predicate: Callable[[], bool], timeout: float, interval: float = 0.5,
               sleep: Callable[[float], None] = time.sleep,
               clock: Callable[[], float] = time.monotonic) -> bool:
    """Polls predicate until it holds or timeout seconds have passed. Checks at least once."""
    deadline = clock() + timeout
    while True:
        if predicate():
            return True
        if clock() >= deadline:
            return False
        sleep(interval)


class CommandRunner:
    """Runs external commands from the install root with its bin/ directory on PATH."""
    def __init__(self, cwd: Path, bin_dir: Optional[Path] = None):
        self.cwd = cwd
        self.env = dict(os.environ)
        if bin_dir is not None:
            self.env["PATH"] = os.pathsep.join([str(bin_dir), self.env.get("PATH", "")])

    def which(self, name: str) -> Optional[str]:
        return shutil.which(name, path=self.env.get("PATH"))

    def run(self, command: List[str], input_text: Optional[str] = None) -> subprocess.CompletedProcess:
        """Runs a command to completion, capturing its output."""
        logger.debug("$ %s", " ".join(command))
        try:
            result = subprocess.run(
                command,
                input=input_text,
                capture_output=True,
                text=True,
                cwd=self.cwd,
                env=self.env,
                check=False,
            )
        except (FileNotFoundError, PermissionError) as e:
            logger.error("Cannot execute %s: %s", command[0], e)
            return subprocess.CompletedProcess(command, COMMAND_NOT_FOUND, "", str(e))

        self._log_output(result.returncode, result.stdout, result.stderr)
        return result

    def succeeds(self, command: List[str], input_text: Optional[str] = None) -> bool:
        return self.run(command, input_text=input_text).returncode == 0

    def pipe(self, producer: List[str], consumer: List[str]) -> int:
        """Runs `producer | consumer`. Returns the first non-zero exit status, or 0."""
        logger.debug("$ %s | %s", " ".join(producer), " ".join(consumer))
        # Producer stderr is spooled to a file so a chatty producer cannot stall on a full pipe
        with tempfile.TemporaryFile() as upstream_err:
            try:
                upstream = subprocess.Popen(producer, stdout=subprocess.PIPE, stderr=upstream_err,
                                            cwd=self.cwd, env=self.env)
            except (FileNotFoundError, PermissionError) as e:
                logger.error("Cannot execute %s: %s", producer[0], e)
                return COMMAND_NOT_FOUND

            try:
                downstream = subprocess.run(consumer, stdin=upstream.stdout, capture_output=True, text=True,
                                            cwd=self.cwd, env=self.env, check=False)
            except (FileNotFoundError, PermissionError) as e:
                logger.error("Cannot execute %s: %s", consumer[0], e)
                upstream.kill()
                upstream.wait()
                return COMMAND_NOT_FOUND
            finally:
                # The consumer owns the read end now
                upstream.stdout.close()

            upstream_code = upstream.wait()
            upstream_err.seek(0)
            upstream_stderr = upstream_err.read().decode(errors="replace")

        self._log_output(upstream_code, "", upstream_stderr)
        self._log_output(downstream.returncode, downstream.stdout, downstream.stderr)
        return upstream_code or downstream.returncode

    def foreground(self, command: List[str]) -> int:
        """Hands the terminal to a long-running command until it exits or Ctrl-C is pressed."""
        logger.debug("$ %s (foreground)", " ".join(command))
        try:
            p = subprocess.Popen(command, stdout=sys.stdout, stderr=subprocess.STDOUT, cwd=self.cwd, env=self.env)
        except (FileNotFoundError, PermissionError) as e:
            logger.error("Cannot execute %s: %s", command[0], e)
            return COMMAND_NOT_FOUND

        try:
            return p.wait()
        except KeyboardInterrupt:
            if p.poll() is None:
                p.terminate()
                try:
                    p.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    logger.warning("%s did not terminate gracefully. Forcing kill.", command[0])
                    p.kill()
                    p.wait()
            return p.returncode

    def _log_output(self, code: int, stdout: Optional[str], stderr: Optional[str]):
        for stream in (stdout, stderr):
            if stream and stream.strip():
                logger.info(stream.rstrip())
        logger.debug("exit status %s", code)
