import httpx
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from core import console
from core.config import ConfigManager
from core.result import FatalError


@dataclass(frozen=True)
class SnapshotSource:
    """Where the restore reads its blockchain.db.gz from, and whether it has to be downloaded first."""
    path: Path
    base_url: str
    download: bool
    # Name requested from the server, as given on the command line
    filename: Optional[str] = None

    @property
    def remote_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.filename or self.path.name}"

    @classmethod
    def resolve(cls, settings: ConfigManager, network: str, url: Optional[str] = None,
                snapshot_file: Optional[str] = None, bundled: bool = False) -> "SnapshotSource":
        base_url = url or f"{settings.get('snapshot', 'base_url').rstrip('/')}/{network}"

        if bundled:
            return cls(path=settings.path("snapshot", "bundled"), base_url=base_url, download=False)

        if snapshot_file:
            path = Path(snapshot_file)
            if not path.is_absolute():
                path = settings.root / path
            # A named file that does not exist yet is downloaded under that name
            return cls(path=path, base_url=base_url, download=not path.is_file(), filename=snapshot_file)

        filename = settings.get("snapshot", "filename")
        return cls(path=settings.root / filename, base_url=base_url, download=True, filename=filename)


class SnapshotFetcher:
    """Downloads the blockchain snapshot unless a local one was selected."""
    def __init__(self, source: SnapshotSource, client: httpx.Client):
        self.source = source
        self.client = client

    def fetch(self):
        if not self.source.download:
            console.success("Using Local Snapshot.")
            return

        target = self.source.path
        target.unlink(missing_ok=True)
        console.success(f"Downloading {self.source.filename or target.name} from {self.source.base_url}")

        try:
            self._download(self.source.remote_url, target)
        except (httpx.HTTPError, OSError) as e:
            console.logger.error("Snapshot download from %s failed: %s", self.source.remote_url, e)
            target.unlink(missing_ok=True)
            raise FatalError("Failed to download blockchain snapshot.")

        console.success("Blockchain snapshot downloaded successfully.")

    def _download(self, url: str, target: Path):
        with self.client.stream("GET", url) as response:
            response.raise_for_status()
            total = int(response.headers.get("Content-Length") or 0)
            with open(target, "wb") as f:
                if total:
                    with console.progressbar(total, f"Downloading {target.name}") as bar:
                        for chunk in response.iter_bytes():
                            f.write(chunk)
                            bar.update(len(chunk))
                else:
                    for chunk in response.iter_bytes():
                        f.write(chunk)
