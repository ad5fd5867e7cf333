import logging
from contextlib import contextmanager, nullcontext
from logging.handlers import RotatingFileHandler
from pathlib import Path

import typer

logger = logging.getLogger("lisk")

_quiet = False


def setup_logging(log_path: Path, level: str = "INFO", max_bytes: int = 5_000_000, backup_count: int = 3) -> logging.Logger:
    """Configures the rotating transcript that every invocation appends to."""
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    for handler in list(logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            logger.removeHandler(handler)
            handler.close()

    file_handler = RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s"))
    logger.addHandler(file_handler)
    return logger


@contextmanager
def quiet():
    """Sends console lines to the transcript only."""
    global _quiet
    previous = _quiet
    _quiet = True
    try:
        yield
    finally:
        _quiet = previous


def success(message: str):
    logger.info("√ %s", message)
    if not _quiet:
        typer.secho(f"√ {message}", fg=typer.colors.GREEN)


def failure(message: str):
    logger.error("X %s", message)
    if not _quiet:
        typer.secho(f"X {message}", fg=typer.colors.RED, bold=True)


def info(message: str):
    logger.info(message)
    if not _quiet:
        typer.echo(message)


class _SilentBar:
    def update(self, n_steps: int):
        pass


def progressbar(length: int, label: str):
    if _quiet:
        return nullcontext(_SilentBar())
    return typer.progressbar(length=length, label=label)
