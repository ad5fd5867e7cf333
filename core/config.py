import copy
import getpass
import json
import yaml
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from core.result import FatalError

NETWORKS = ("mainnet", "testnet", "devnet")

DEFAULT_CONFIG = {
    "paths": {
        "bin_dir": "bin",
        "log_file": "logs/lisk.out",
        "cron_log": "cron.log",
        "lisky": "bin/lisky",
    },
    "logging": {
        "level": "INFO",
        "max_bytes": 5_000_000,
        "backup_count": 3,
    },
    "postgresql": {
        "data_dir": "blockchain.db",
        "log_file": "pgsql.log",
        "process_name": "postgres",
    },
    "redis": {
        "server": "bin/redis-server",
        "cli": "bin/redis-cli",
        "config": "etc/redis.conf",
        "pid_file": "redis/redis_6380.pid",
        "default_port": 6379,
    },
    "networks": {
        "mainnet": {"config": "mainnet/config.json", "pm2": "etc/pm2-lisk-main.json"},
        "testnet": {"config": "testnet/config.json", "pm2": "etc/pm2-lisk-test.json"},
        "devnet": {"config": "devnet/config.json", "pm2": "etc/pm2-lisk-dev.json"},
    },
    "snapshot": {
        "filename": "blockchain.db.gz",
        "base_url": "https://downloads.lisk.io/lisk",
        "bundled": "etc/blockchain.db.gz",
    },
    "readiness": {
        "timeout_seconds": 10,
        "interval_seconds": 0.5,
    },
}


class ConfigManager:
    """Handles loading of the wrapper's own settings from etc/lisk.yml."""
    def __init__(self, config_path: Path, root: Path):
        self.config_path = config_path
        self.root = root
        self.config = self.load_config()

    def load_config(self) -> Dict[str, Any]:
        """Loads configuration from YAML file."""
        defaults = copy.deepcopy(DEFAULT_CONFIG)
        if self.config_path.exists():
            with open(self.config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}
                # Recursively merge defaults
                return self._merge_defaults(defaults, config_data)
        return defaults

    def _merge_defaults(self, default: Dict, user: Dict) -> Dict:
        """Recursively merges user config into defaults."""
        for key, value in default.items():
            if key not in user:
                user[key] = value
            elif isinstance(value, dict) and isinstance(user.get(key), dict):
                user[key] = self._merge_defaults(value, user.get(key, {}))
        return user

    def get(self, *keys: str, default: Any = None) -> Any:
        """Gets a nested configuration value."""
        val = self.config
        for key in keys:
            if isinstance(val, dict):
                val = val.get(key)
            else:
                return default
        return val if val is not None else default

    def path(self, *keys: str) -> Path:
        """Gets a nested path value, resolved against the install root."""
        p = Path(self.get(*keys))
        return p if p.is_absolute() else self.root / p


@dataclass(frozen=True)
class ResolvedConfig:
    """Node settings for one invocation, read from the network's config.json and PM2 descriptor."""
    network: str
    config_path: Path
    descriptor_path: Path
    app_name: str
    db_name: str
    db_port: int
    db_user: str
    db_password: str
    cache_enabled: bool
    redis_port: Optional[int]
    redis_password: Optional[str]
    log_file: Path


def _load_json(path: Path, what: str) -> Dict[str, Any]:
    if not path.is_file():
        raise FatalError(f"{what} not found at {path}.")
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise FatalError(f"Unable to read {what} {path}: {e}")


def _require(document: Dict[str, Any], path: Path, *keys: str) -> Any:
    val: Any = document
    for key in keys:
        if not isinstance(val, dict) or val.get(key) is None:
            raise FatalError(f"Missing '{'.'.join(keys)}' in {path}.")
        val = val[key]
    return val


def _first_app(descriptor: Dict[str, Any], path: Path) -> Dict[str, Any]:
    apps = descriptor.get("apps")
    if not isinstance(apps, list) or not apps or not isinstance(apps[0], dict):
        raise FatalError(f"No apps declared in {path}.")
    return apps[0]


def config_path_from_descriptor(descriptor: Dict[str, Any], path: Path, root: Path) -> Path:
    """The node config is the second token of the app's args, e.g. "-c ./mainnet/config.json"."""
    args = _first_app(descriptor, path).get("args")
    tokens = args if isinstance(args, list) else str(args or "").split()
    if len(tokens) < 2:
        raise FatalError(f"No config path in apps[0].args of {path}.")
    config_path = Path(tokens[1])
    return config_path if config_path.is_absolute() else root / config_path


def normalize_password(value: Any) -> Optional[str]:
    # An unset password is serialized as the literal text "null" in some configs
    if value is None or value == "null":
        return None
    return str(value)


def resolve_node_config(settings: ConfigManager, network: str, descriptor: Optional[Path] = None,
                        user: Optional[str] = None) -> ResolvedConfig:
    """Reads the node settings for a network. Raises FatalError on a missing file or field."""
    if network not in NETWORKS:
        raise FatalError(f"Unknown network '{network}'.")

    descriptor_path = descriptor if descriptor is not None else settings.path("networks", network, "pm2")
    pm2_doc = _load_json(descriptor_path, "PM2 config")
    app_name = _require(_first_app(pm2_doc, descriptor_path), descriptor_path, "name")

    if descriptor is not None:
        config_path = config_path_from_descriptor(pm2_doc, descriptor_path, settings.root)
    else:
        config_path = settings.path("networks", network, "config")
    node_doc = _load_json(config_path, "Lisk config")

    redis = node_doc.get("redis") or {}
    redis_port = redis.get("port")
    cache_enabled = node_doc.get("cacheEnabled", False)

    return ResolvedConfig(
        network=network,
        config_path=config_path,
        descriptor_path=descriptor_path,
        app_name=str(app_name),
        db_name=str(_require(node_doc, config_path, "db", "database")),
        db_port=int(_require(node_doc, config_path, "db", "port")),
        db_user=user or getpass.getuser(),
        db_password=str(_require(node_doc, config_path, "db", "password")),
        cache_enabled=cache_enabled is True or cache_enabled == "true",
        redis_port=int(redis_port) if redis_port is not None else None,
        redis_password=normalize_password(redis.get("password")),
        log_file=settings.root / network / str(_require(node_doc, config_path, "logFileName")),
    )
