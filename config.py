"""
JSON-backed configuration with environment overrides.

The datastore URL and the shared secret are only ever read from the
environment (DSN, TOKEN); everything else can live in the JSON file.
"""
import json
import os

from errors import ConfigError

DEFAULTS = {
    "host": "0.0.0.0",
    "port": 8080,
    "presence_ttl": 30,  # seconds
    "agent_poll_interval": 1.0,  # seconds
    "agent_heartbeat_interval": 10.0,  # seconds
    "job_timeout": None,  # seconds, None = no limit
}

ENV_OVERRIDES = {
    "DSN": "dsn",
    "TOKEN": "token",
    "REMOTECMD_HOST": "host",
    "REMOTECMD_PORT": "port",
}

CFG_PATH = os.environ.get("REMOTECMD_CONFIG", "remotecmd_config.json")


class Config:
    def __init__(self, path=None, environ=None):
        self.path = path or CFG_PATH
        self.environ = os.environ if environ is None else environ
        self._load()

    def _load(self):
        self.data = {}
        if os.path.exists(self.path):
            with open(self.path, "r") as f:
                self.data = json.load(f)

    def _write(self, d):
        with open(self.path, "w") as f:
            json.dump(d, f, indent=2)

    def _from_env(self, key):
        for env_name, cfg_key in ENV_OVERRIDES.items():
            if cfg_key == key and self.environ.get(env_name):
                value = self.environ[env_name]
                if key == "port":
                    return int(value)
                return value
        return None

    def get(self, key, default=None):
        value = self._from_env(key)
        if value is not None:
            return value
        return self.data.get(key, DEFAULTS.get(key, default))

    def require(self, key):
        value = self.get(key)
        if value in (None, ""):
            env_name = next((e for e, k in ENV_OVERRIDES.items() if k == key), key)
            raise ConfigError(f"env {env_name.lower()} not found")
        return value

    def set(self, key, val):
        if key in ("dsn", "token"):
            raise ConfigError(f"{key} is read from the environment only")
        self.data[key] = val
        self._write(self.data)

    def all(self):
        merged = dict(DEFAULTS)
        merged.update(self.data)
        for key in ("host", "port"):
            value = self._from_env(key)
            if value is not None:
                merged[key] = value
        return merged
