# podgate/config.py
"""
Configuration.

Loaded from YAML:

    owner_webid: https://alice.example/profile/card#me
    storage:
      auth_token: null
      timeout: 30
    ledger:
      rpc_url: http://127.0.0.1:8545
      timeout: 30
    containers:            # derived from the WebID when omitted
      inbox: https://alice.example/inbox/
      offers: https://alice.example/payable/
      private: https://alice.example/private/
    schedule:
      interval_seconds: 60
      max_workers: 8
    payload_marker: SOLIDBLOCKCHAIN_TX_DATA
    retain_offer_mismatches: false
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .vocab import PAYLOAD_MARKER

PROFILE_SUFFIX = "/profile/card#me"
TOKEN_ENV = "PODGATE_AUTH_TOKEN"


def pod_root(webid: str) -> str:
    """Root URL of the pod a WebID lives in (with trailing slash)."""
    if webid.endswith(PROFILE_SUFFIX):
        return webid[: -len(PROFILE_SUFFIX)] + "/"
    document = webid.split("#", 1)[0]
    scheme, _, rest = document.partition("://")
    host = rest.split("/", 1)[0]
    return f"{scheme}://{host}/"


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return section


def _container(url: Optional[str], default: str) -> str:
    url = url or default
    return url if url.endswith("/") else url + "/"


@dataclass
class Config:
    """Runtime configuration for both recurring tasks."""
    owner_webid: str
    inbox_url: str
    offers_url: str
    private_url: str
    rpc_url: str = "http://127.0.0.1:8545"
    auth_token: Optional[str] = None
    storage_timeout: float = 30
    ledger_timeout: float = 30
    interval_seconds: float = 60
    max_workers: int = 8
    payload_marker: str = PAYLOAD_MARKER
    retain_offer_mismatches: bool = False

    @classmethod
    def for_owner(cls, owner_webid: str, **overrides) -> "Config":
        """Configuration with containers derived from the owner's WebID."""
        root = pod_root(owner_webid)
        values = {
            "inbox_url": root + "inbox/",
            "offers_url": root + "payable/",
            "private_url": root + "private/",
        }
        values.update(overrides)
        return cls(owner_webid=owner_webid, **values)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        owner_webid = data.get("owner_webid")
        if not owner_webid:
            raise ConfigError("owner_webid is required")

        storage = _section(data, "storage")
        ledger = _section(data, "ledger")
        containers = _section(data, "containers")
        schedule = _section(data, "schedule")
        root = pod_root(owner_webid)

        try:
            config = cls(
                owner_webid=owner_webid,
                inbox_url=_container(containers.get("inbox"), root + "inbox/"),
                offers_url=_container(containers.get("offers"), root + "payable/"),
                private_url=_container(containers.get("private"), root + "private/"),
                rpc_url=ledger.get("rpc_url", "http://127.0.0.1:8545"),
                auth_token=os.environ.get(TOKEN_ENV) or storage.get("auth_token"),
                storage_timeout=float(storage.get("timeout", 30)),
                ledger_timeout=float(ledger.get("timeout", 30)),
                interval_seconds=float(schedule.get("interval_seconds", 60)),
                max_workers=int(schedule.get("max_workers", 8)),
                payload_marker=data.get("payload_marker", PAYLOAD_MARKER),
                retain_offer_mismatches=bool(data.get("retain_offer_mismatches", False)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration value: {e}") from e

        if config.interval_seconds <= 0:
            raise ConfigError("schedule.interval_seconds must be positive")
        if config.max_workers < 1:
            raise ConfigError("schedule.max_workers must be at least 1")
        return config

    @classmethod
    def from_yaml(cls, yaml_content: str) -> "Config":
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}") from e
        return cls.from_dict(data or {})

    @classmethod
    def from_file(cls, path: Path | str) -> "Config":
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path) as f:
            return cls.from_yaml(f.read())
