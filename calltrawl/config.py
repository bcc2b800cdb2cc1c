"""Connection and behaviour settings."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace

DEFAULT_SERVER = "http://localhost:8001"

ENV_VARS = {
    "server": "RESONATE_SERVER",
    "token": "RESONATE_TOKEN",
    "username": "RESONATE_USERNAME",
    "password": "RESONATE_PASSWORD",
}


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class Config:
    server: str = DEFAULT_SERVER
    token: str = ""
    username: str = ""
    password: str = ""
    timeout: float = 10.0   # HTTP timeout, seconds
    refresh: float = 5.0    # auto-refresh interval, seconds; 0 disables
    limit: int = 50         # page size for roots and list

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Config:
        env = os.environ if environ is None else environ
        values = {}
        for name, var in ENV_VARS.items():
            val = env.get(var)
            if val:
                values[name] = val
        return cls(**values)

    def merged(self, **overrides) -> Config:
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if k in known and v is not None}
        return replace(self, **changes)

    def validate(self) -> Config:
        if not self.server.startswith(("http://", "https://")):
            raise ConfigError(f"Server URL must start with http:// or https://: {self.server!r}")
        if self.timeout < 0:
            raise ConfigError(f"Timeout must not be negative: {self.timeout}")
        if self.refresh < 0:
            raise ConfigError(f"Refresh interval must not be negative: {self.refresh}")
        if self.limit <= 0:
            raise ConfigError(f"Page limit must be positive: {self.limit}")
        return self
