import shutil
from pathlib import Path
from typing import Callable, Optional

from core import console
from core.config import ConfigManager, ResolvedConfig
from core.result import FatalError, Result
from core.shell import CommandRunner, wait_until

UNAVAILABLE = "Unavailable"
HEIGHT_QUERY = "select height from blocks order by height desc limit 1;"


def _sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _sql_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


class PostgresController:
    """
    Drives the PostgreSQL server through pg_ctl and the client tools.
    Whether the server is up is always detected from the process table,
    never remembered.
    """
    def __init__(self, settings: ConfigManager, node: ResolvedConfig, runner: CommandRunner,
                 wait: Optional[Callable[..., bool]] = None):
        self.node = node
        self.runner = runner
        self.data_dir = settings.path("postgresql", "data_dir")
        self.log_file = settings.path("postgresql", "log_file")
        self.process_name = settings.get("postgresql", "process_name")
        self.timeout = float(settings.get("readiness", "timeout_seconds", default=10))
        self.interval = float(settings.get("readiness", "interval_seconds", default=0.5))
        self.wait = wait or wait_until

    def _port(self):
        return ["-p", str(self.node.db_port)]

    def is_running(self) -> bool:
        return self.runner.succeeds(["pgrep", "-x", self.process_name])

    def is_accepting(self) -> bool:
        return self.runner.succeeds(["pg_isready", "-q", *self._port()])

    def start(self) -> Result:
        if self.is_running():
            console.success("Postgresql is running.")
            return Result.success()

        if not self.runner.succeeds(["pg_ctl", "-D", str(self.data_dir), "-l", str(self.log_file), "start"]):
            raise FatalError("Failed to start Postgresql.")
        console.success("Postgresql started successfully.")

        if not self.wait(self.is_accepting, self.timeout, self.interval):
            console.failure("Postgresql is not accepting connections yet.")
            return Result.fail("not accepting connections")
        return Result.success()

    def stop(self) -> Result:
        if not self.is_running():
            console.success("Postgresql is not running.")
            return Result.success()

        result = Result.success()
        if self.runner.succeeds(["pg_ctl", "-D", str(self.data_dir), "-l", str(self.log_file), "stop"]):
            console.success("Postgresql stopped successfully.")
        else:
            console.failure("Postgresql failed to stop.")
            result = Result.fail("graceful stop failed")

        if self.is_running():
            self.runner.run(["pkill", "-x", self.process_name, "-9"])
            console.success("Postgresql Killed.")
            if not self.wait(lambda: not self.is_running(), self.timeout, self.interval):
                console.failure("Postgresql is still running.")
                return Result.fail("still running after kill")
        return result

    def init_data_dir(self):
        """Wipes the data directory and initializes a fresh cluster in it."""
        shutil.rmtree(self.data_dir, ignore_errors=True)
        if not self.runner.succeeds(["pg_ctl", "initdb", "-D", str(self.data_dir)]):
            raise FatalError("Failed to initialize Postgresql data directory.")

    def create_user(self):
        """Recreates the application role and sets its password."""
        user = self.node.db_user
        self.runner.run(["dropuser", "--if-exists", *self._port(), user])
        self.runner.run(["createuser", "--createdb", *self._port(), user])
        statement = f"ALTER USER {_sql_identifier(user)} WITH PASSWORD {_sql_literal(self.node.db_password)};"
        if not self.runner.succeeds(["psql", "-qd", "postgres", *self._port(), "-c", statement]):
            raise FatalError("Failed to create Postgresql user.")
        console.success("Postgresql user created successfully.")

    def create_database(self):
        """Drops and recreates the application database."""
        self.runner.run(["dropdb", "--if-exists", *self._port(), self.node.db_name])
        if not self.runner.succeeds(["createdb", *self._port(), self.node.db_name]):
            raise FatalError("Failed to create Postgresql database.")
        console.success("Postgresql database created successfully.")

    def database_exists(self) -> bool:
        result = self.runner.run(["psql", "-ltAq", *self._port()])
        if result.returncode != 0:
            return False
        return any(line.startswith(f"{self.node.db_name}|") for line in result.stdout.splitlines())

    def populate(self, fetcher):
        # Runs right after create_database() in a cold start, so the database is always listed here
        if self.database_exists():
            fetcher.fetch()
            self.restore(fetcher.source.path)

    def restore(self, snapshot: Path):
        console.info(f"Restoring blockchain with {snapshot}")
        code = self.runner.pipe(
            ["gunzip", "-fcq", str(snapshot)],
            ["psql", "-q", "-U", self.node.db_user, "-d", self.node.db_name, *self._port()],
        )
        if code != 0:
            raise FatalError("Failed to restore blockchain.")
        console.success("Blockchain restored successfully.")

    def height(self) -> str:
        """Latest block height, or "Unavailable" when it cannot be read."""
        result = self.runner.run(["psql", "-d", self.node.db_name, "-t", *self._port(), "-c", HEIGHT_QUERY])
        height = result.stdout.strip() if result.returncode == 0 and result.stdout else ""
        return height or UNAVAILABLE
