"""
Indexer configuration loader.

Settings come from a YAML file, from environment variables, or both. When
both are given, environment variables win. YAML keys may be written in
snake_case or camelCase:

    rpc_http_url: https://rpc.example.org
    rpc_ws_url: wss://rpc.example.org/ws
    token_contract: "0x5fbdb2315678afecb367f032d93f642f64180aa3"
    market_contract: "0xe7f1725e7734ce288f8367e1bb143e90bb3f0512"
    token_deploy_height: 1200000
    market_deploy_height: 1200450
    step_size: 10000
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import yaml
from pydantic import Field

from market_indexer.chain import ContractAddresses, ContractRole
from market_indexer.chain.client import DEFAULT_REQUEST_TIMEOUT
from market_indexer.monitor import DEFAULT_DRIFT_INTERVAL
from market_indexer.sync import (
    DEFAULT_BACKFILL_DELAY,
    DEFAULT_CONFIRMATION_DEPTH,
    DEFAULT_MAX_INFLIGHT_WINDOWS,
    DEFAULT_STEP_SIZE,
    SyncSettings,
)
from market_indexer.sync.supervisor import DEFAULT_START_STAGGER
from market_indexer.types import Address, StrictBaseModel

ENVIRONMENT_VARIABLES: Final[dict[str, str]] = {
    "RPC_HTTP_URL": "rpc_http_url",
    "RPC_WS_URL": "rpc_ws_url",
    "TOKEN_CONTRACT": "token_contract",
    "MARKET_CONTRACT": "market_contract",
    "TOKEN_CONTRACT_DEPLOY": "token_deploy_height",
    "MARKET_CONTRACT_DEPLOY": "market_deploy_height",
    "SYNC_STEP_SIZE": "step_size",
    "SYNC_BACKFILL_DELAY": "backfill_delay",
    "SYNC_MAX_INFLIGHT_WINDOWS": "max_inflight_windows",
    "SYNC_CONFIRMATION_DEPTH": "confirmation_depth",
    "SYNC_START_STAGGER": "start_stagger",
    "RPC_REQUEST_TIMEOUT": "request_timeout",
    "DRIFT_CHECK_INTERVAL": "drift_interval",
    "INDEXER_DB_PATH": "database_path",
}
"""Environment variable name -> configuration field."""


class IndexerConfig(StrictBaseModel):
    """
    Everything needed to wire an indexer process.

    Endpoints and contract addresses are required. Every tunable has a
    default matching the sync engine's defaults.
    """

    rpc_http_url: str
    """JSON-RPC HTTP endpoint used for historical queries and batches."""

    rpc_ws_url: str
    """JSON-RPC WebSocket endpoint used for live subscriptions."""

    token_contract: Address
    """Address of the token contract."""

    market_contract: Address
    """Address of the market contract."""

    token_deploy_height: int = Field(default=0, ge=0)
    """Resume height for token streams with no records."""

    market_deploy_height: int = Field(default=0, ge=0)
    """Resume height for market streams with no records."""

    step_size: int = Field(default=DEFAULT_STEP_SIZE, ge=0)
    """Backfill window step."""

    backfill_delay: float = Field(default=DEFAULT_BACKFILL_DELAY, ge=0)
    """Seconds between historical window requests."""

    max_inflight_windows: int = Field(default=DEFAULT_MAX_INFLIGHT_WINDOWS, ge=1)
    """Historical windows fetched concurrently per stream."""

    confirmation_depth: int = Field(default=DEFAULT_CONFIRMATION_DEPTH, ge=0)
    """Backfill stops this many blocks below the head."""

    start_stagger: float = Field(default=DEFAULT_START_STAGGER, ge=0)
    """Seconds between two stream starts."""

    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0)
    """Timeout of a single node round trip."""

    drift_interval: float = Field(default=DEFAULT_DRIFT_INTERVAL, gt=0)
    """Seconds between two drift checks."""

    database_path: str = "indexer.db"
    """SQLite file holding records and projections."""

    def sync_settings(self) -> SyncSettings:
        """Build the sync engine tunables."""
        return SyncSettings(
            step_size=self.step_size,
            backfill_delay=self.backfill_delay,
            max_inflight_windows=self.max_inflight_windows,
            confirmation_depth=self.confirmation_depth,
        )

    def contract_addresses(self) -> ContractAddresses:
        """Addresses of both indexed contracts."""
        return ContractAddresses(token=self.token_contract, market=self.market_contract)

    def deploy_heights(self) -> dict[ContractRole, int]:
        """Fallback resume height per contract."""
        return {
            ContractRole.TOKEN: self.token_deploy_height,
            ContractRole.MARKET: self.market_deploy_height,
        }

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> IndexerConfig:
        """
        Load configuration from environment variables.

        Raises:
            pydantic.ValidationError: If a required variable is missing or invalid.
        """
        return cls.model_validate(_read_env(os.environ if environ is None else environ))

    @classmethod
    def from_yaml_file(cls, path: Path | str) -> IndexerConfig:
        """
        Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist.
            yaml.YAMLError: If the file is not valid YAML.
            pydantic.ValidationError: If the data fails validation.
        """
        path = Path(path)
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml(cls, content: str) -> IndexerConfig:
        """Load configuration from a YAML string."""
        return cls.model_validate(yaml.safe_load(content) or {})

    @classmethod
    def load(
        cls, path: Path | str | None = None, environ: Mapping[str, str] | None = None
    ) -> IndexerConfig:
        """
        Load configuration from an optional YAML file overlaid with the environment.

        Args:
            path: YAML file to read first, if any.
            environ: Environment to read, `os.environ` by default.
        """
        data: dict[str, Any] = {}
        if path is not None:
            with Path(path).open(encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if not isinstance(loaded, dict):
                raise ValueError(f"{path}: expected a mapping at the top level")
            # Normalize camelCase keys so environment overrides hit the same entries.
            aliases = {info.alias: name for name, info in cls.model_fields.items()}
            data = {aliases.get(key, key): value for key, value in loaded.items()}

        data.update(_read_env(os.environ if environ is None else environ))
        return cls.model_validate(data)


def _read_env(environ: Mapping[str, str]) -> dict[str, str]:
    return {
        field_name: environ[name]
        for name, field_name in ENVIRONMENT_VARIABLES.items()
        if environ.get(name)
    }
