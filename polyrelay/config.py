"""Configuration: dataclass with config.json > env > defaults."""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from .constants import CLOB_BASE_URL, POLYGON, RELAYER_URL, RPC_ENDPOINTS
from .errors import ValidationError

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"

_ENV_MAP = {
    "private_key": "POLY_PRIVATE_KEY",
    "signature_type": "POLY_SIGNATURE_TYPE",
    "chain_id": "POLY_CHAIN_ID",
    "creds_file": "POLY_CREDS_FILE",
    "builder_creds_file": "POLY_BUILDER_CREDS_FILE",
    "relay_url": "POLY_RELAY_URL",
    "clob_url": "POLY_CLOB_URL",
    "rpc_urls": "POLY_RPC_URLS",
    "log_level": "POLY_LOG_LEVEL",
}

# Never written back by save()
_SECRET_FIELDS = ("private_key",)


@dataclass
class Config:
    # Auth
    private_key: str = ""
    signature_type: int = 1              # 0 EOA, 1 proxy, 2 Safe
    creds_file: str = "creds.json"
    builder_creds_file: str = "builder_creds.json"

    # Network
    chain_id: int = POLYGON
    relay_url: str = RELAYER_URL
    clob_url: str = CLOB_BASE_URL
    rpc_urls: str = ""                   # comma-separated; empty = chain defaults

    # Logging
    log_level: str = "INFO"

    @classmethod
    def load(cls, config_dir: str) -> "Config":
        """Build a Config from *config_dir*/config.json, then POLY_* env vars."""
        from_file = _read_config_file(Path(config_dir) / CONFIG_FILE)
        values = {}
        for f in fields(cls):
            if f.name in from_file:
                raw = from_file[f.name]
            else:
                raw = os.environ.get(_ENV_MAP.get(f.name, ""))
                if raw is None:
                    continue
            values[f.name] = _coerce(f.name, raw, f.type)
        return cls(**values)

    def save(self, config_dir: str) -> None:
        path = Path(config_dir) / CONFIG_FILE
        data = {f.name: getattr(self, f.name) for f in fields(self) if f.name not in _SECRET_FIELDS}
        path.write_text(json.dumps(data, indent=2))
        logger.info("Config saved to %s", path)

    def update(self, overrides: dict) -> None:
        known = {f.name: f.type for f in fields(self)}
        for key, value in overrides.items():
            if key not in known:
                logger.warning("Unknown config key: %s", key)
                continue
            setattr(self, key, _coerce(key, value, known[key]))

    def validate(self) -> None:
        """Reject settings that cannot produce a working wallet."""
        if self.signature_type not in (0, 1, 2):
            raise ValidationError(f"signature_type must be 0, 1 or 2, got {self.signature_type}")
        if not self.rpc_endpoints():
            raise ValidationError(f"no RPC endpoints for chain {self.chain_id}; set POLY_RPC_URLS")

    def rpc_endpoints(self) -> list[str]:
        """Configured RPC URLs, or the built-in pool for chain_id."""
        urls = [u.strip() for u in self.rpc_urls.split(",") if u.strip()]
        return urls or list(RPC_ENDPOINTS.get(self.chain_id, []))

    def load_api_creds(self, config_dir: str) -> dict | None:
        """CLOB API creds from creds_file, if present."""
        return _load_creds_file(self.creds_file, config_dir)

    def load_builder_creds(self, config_dir: str) -> dict | None:
        """Builder API creds (relay auth) from builder_creds_file, if present."""
        return _load_creds_file(self.builder_creds_file, config_dir)


def _read_config_file(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Failed to load %s: %s", path, exc)
        return {}


def _load_creds_file(name: str, config_dir: str) -> dict | None:
    # A bare or absolute name wins over the config directory.
    for candidate in (Path(name), Path(config_dir) / name):
        if candidate.is_file():
            logger.debug("Loading credentials from %s", candidate)
            return json.loads(candidate.read_text())
    return None


def _coerce(name: str, value, type_hint):
    if type_hint is int or type_hint == "int":
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValidationError(f"config {name}: expected an integer, got {value!r}") from None
    return str(value)
