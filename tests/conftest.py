import json
import subprocess
from dataclasses import replace
from pathlib import Path
from typing import List, Optional, Tuple

import pytest

from core.config import ConfigManager, resolve_node_config

NETWORK_DATABASES = {"mainnet": "lisk_main", "testnet": "lisk_test", "devnet": "lisk_dev"}
DESCRIPTORS = {"mainnet": "pm2-lisk-main.json", "testnet": "pm2-lisk-test.json", "devnet": "pm2-lisk-dev.json"}


class FakeRunner:
    """Stands in for CommandRunner: records every command and answers from a script."""
    def __init__(self):
        self.calls: List[List[str]] = []
        self.inputs: List[Optional[str]] = []
        self.foregrounds: List[List[str]] = []
        self.missing = set()
        self._responses: List[Tuple[Tuple[str, ...], List[Tuple[int, str]]]] = []

    def respond(self, prefix, *results):
        """Answers commands starting with prefix. Results are used in order, the last one repeats."""
        self._responses.insert(0, (tuple(prefix), list(results)))

    def _answer(self, command) -> Tuple[int, str]:
        for prefix, results in self._responses:
            if tuple(command[:len(prefix)]) == prefix:
                return results.pop(0) if len(results) > 1 else results[0]
        return 0, ""

    def which(self, name):
        return None if name in self.missing else f"/usr/bin/{name}"

    def run(self, command, input_text=None):
        self.calls.append(list(command))
        self.inputs.append(input_text)
        code, stdout = self._answer(command)
        return subprocess.CompletedProcess(command, code, stdout, "")

    def succeeds(self, command, input_text=None):
        return self.run(command, input_text=input_text).returncode == 0

    def pipe(self, producer, consumer):
        self.calls.append(list(producer) + ["|"] + list(consumer))
        self.inputs.append(None)
        code, _ = self._answer(producer)
        return code

    def foreground(self, command):
        self.calls.append(list(command))
        self.inputs.append(None)
        self.foregrounds.append(list(command))
        return 0

    def count(self, *prefix) -> int:
        return sum(1 for call in self.calls if tuple(call[:len(prefix)]) == prefix)

    def index(self, *prefix) -> int:
        for i, call in enumerate(self.calls):
            if tuple(call[:len(prefix)]) == prefix:
                return i
        raise AssertionError(f"{' '.join(prefix)} was never run; calls: {self.calls}")


def write_node_config(root: Path, network: str, **overrides):
    document = {
        "db": {"database": NETWORK_DATABASES.get(network, f"lisk_{network}"), "port": 5432, "password": "password"},
        "cacheEnabled": False,
        "redis": {"port": 6380, "password": None},
        "logFileName": "logs/lisk.log",
    }
    document.update(overrides)
    path = root / network / "config.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document))
    return path


def write_descriptor(path: Path, app_name: str, args):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"apps": [{"name": app_name, "script": "app.js", "args": args}]}))
    return path


@pytest.fixture
def install_root(tmp_path) -> Path:
    for network, descriptor in DESCRIPTORS.items():
        write_node_config(tmp_path, network)
        write_descriptor(tmp_path / "etc" / descriptor, f"lisk.{network}.app", f"-c ./{network}/config.json")
    (tmp_path / "etc" / "lisk.yml").write_text(
        "readiness:\n"
        "  timeout_seconds: 0\n"
        "  interval_seconds: 0\n"
    )
    return tmp_path


@pytest.fixture
def settings(install_root) -> ConfigManager:
    return ConfigManager(install_root / "etc" / "lisk.yml", install_root)


@pytest.fixture
def node_config(settings):
    return resolve_node_config(settings, "mainnet", user="lisk")


@pytest.fixture
def make_node(node_config):
    def _make(**changes):
        return replace(node_config, **changes)
    return _make


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def pid_file(tmp_path):
    def _write(pid: str = "4242") -> Path:
        path = tmp_path / "pids" / "lisk.pid"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"{pid}\n")
        return path
    return _write


def pm2_listing(app_name: str, pid_path: Path) -> str:
    return json.dumps([
        {"name": "other.app", "pm2_env": {"pm_pid_path": "/nowhere.pid"}},
        {"name": app_name, "pm2_env": {"pm_pid_path": str(pid_path)}},
    ])
