"""Tests for the command line entry point."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from market_indexer.__main__ import build_parser, load_config, main
from market_indexer.api import ApiServerConfig
from market_indexer.chain import StreamKind
from market_indexer.config import ENVIRONMENT_VARIABLES
from tests.market_indexer.helpers import MARKET_CONTRACT, TOKEN_CONTRACT

REQUIRED_ENV = {
    "RPC_HTTP_URL": "http://node.test/rpc",
    "RPC_WS_URL": "ws://node.test/ws",
    "TOKEN_CONTRACT": TOKEN_CONTRACT,
    "MARKET_CONTRACT": MARKET_CONTRACT,
}


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove every indexer variable from the environment."""
    for name in ENVIRONMENT_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def configured_env(clean_env: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Environment with only the required variables set."""
    for name, value in REQUIRED_ENV.items():
        clean_env.setenv(name, value)
    return clean_env


class TestParser:
    """Tests for argument parsing."""

    def test_defaults(self) -> None:
        """Without flags every stream, the API and the drift monitor are on."""
        args = build_parser().parse_args([])

        assert args.config is None
        assert args.db is None
        assert args.streams is None
        assert args.api_port == 8080
        assert not args.no_api
        assert not args.no_drift

    def test_repeated_streams(self) -> None:
        """--stream may be given several times."""
        args = build_parser().parse_args(["--stream", "OrderBid", "--stream", "OrderFilled"])

        assert args.streams == ["OrderBid", "OrderFilled"]

    def test_unknown_stream_is_rejected(self) -> None:
        """Only known stream names are accepted."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--stream", "OrderExploded"])


class TestLoadConfig:
    """Tests for resolving configuration from flags."""

    def test_db_flag_overrides(self, configured_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """--db replaces the configured database path."""
        args = build_parser().parse_args(["--db", str(tmp_path / "flag.db")])

        config = load_config(args)

        assert config.database_path == str(tmp_path / "flag.db")

    def test_config_file(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """--config reads the YAML file."""
        path = tmp_path / "indexer.yaml"
        path.write_text(
            "rpcHttpUrl: http://yaml.test/rpc\n"
            "rpcWsUrl: ws://yaml.test/ws\n"
            f'tokenContract: "{TOKEN_CONTRACT}"\n'
            f'marketContract: "{MARKET_CONTRACT}"\n'
        )

        config = load_config(build_parser().parse_args(["--config", str(path)]))

        assert config.rpc_http_url == "http://yaml.test/rpc"


class TestMain:
    """Tests for the process exit codes."""

    def test_missing_configuration_exits_2(self, clean_env: pytest.MonkeyPatch) -> None:
        """An incomplete configuration is reported without starting anything."""
        with (
            patch("market_indexer.__main__.setup_logging"),
            patch("market_indexer.__main__.run_indexer", new_callable=AsyncMock) as run,
        ):
            assert main([]) == 2

        run.assert_not_called()

    def test_missing_config_file_exits_2(
        self, configured_env: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """A --config path that does not exist is a configuration error."""
        with patch("market_indexer.__main__.setup_logging"):
            assert main(["--config", str(tmp_path / "absent.yaml")]) == 2

    def test_runs_selected_streams(self, configured_env: pytest.MonkeyPatch) -> None:
        """Selected streams and API settings reach the indexer."""
        with (
            patch("market_indexer.__main__.setup_logging"),
            patch(
                "market_indexer.__main__.run_indexer",
                new_callable=AsyncMock,
                return_value=True,
            ) as run,
        ):
            code = main(["--stream", "OrderBid", "--api-port", "9000", "--no-drift"])

        assert code == 0
        config, streams, api_config = run.await_args.args
        assert config.market_contract == MARKET_CONTRACT
        assert streams == [StreamKind.ORDER_BID]
        assert api_config == ApiServerConfig(port=9000)
        assert run.await_args.kwargs == {"drift_check": False}

    def test_no_api(self, configured_env: pytest.MonkeyPatch) -> None:
        """--no-api runs without an API server."""
        with (
            patch("market_indexer.__main__.setup_logging"),
            patch(
                "market_indexer.__main__.run_indexer",
                new_callable=AsyncMock,
                return_value=True,
            ) as run,
        ):
            main(["--no-api"])

        _, streams, api_config = run.await_args.args
        assert streams is None
        assert api_config is None

    def test_failed_streams_exit_1(self, configured_env: pytest.MonkeyPatch) -> None:
        """A run that ended with failed streams exits non-zero."""
        with (
            patch("market_indexer.__main__.setup_logging"),
            patch(
                "market_indexer.__main__.run_indexer",
                new_callable=AsyncMock,
                return_value=False,
            ),
        ):
            assert main([]) == 1
