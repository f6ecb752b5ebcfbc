"""
Tests for settings and the deployment registry.

Test plan:
- Defaults when nothing is set
- Every variable parsed; invalid values raise ValueError
- Per-chain RPC overrides reach the registry
- Registry: per-mode tables, unknown chains, warp route destinations
- format_units
"""

import pytest

from xchain_flows.config import Settings, load_settings
from xchain_flows.deployments import DeploymentRegistry, TokenType, format_units
from xchain_flows.errors import DeploymentNotFound
from xchain_flows.models import DeliveryMode


class TestLoadSettings:
    def test_defaults(self) -> None:
        settings = load_settings({})
        assert settings == Settings()
        assert settings.mode is DeliveryMode.SELF_HOSTED
        assert settings.poll_interval_ms == 3000
        assert settings.poll_interval_s == 3.0
        assert settings.history_limit == 50
        assert settings.storage_key == "hyperlane-history"
        assert settings.stale_after_s is None

    def test_all_variables(self) -> None:
        settings = load_settings(
            {
                "XCHAIN_MODE": "Hosted",
                "XCHAIN_POLL_INTERVAL_MS": "500",
                "XCHAIN_HISTORY_LIMIT": "10",
                "XCHAIN_STORAGE_KEY": "custom",
                "XCHAIN_DB_PATH": "/tmp/h.db",
                "XCHAIN_EXPLORER_API_URL": "http://explorer.test/api",
                "XCHAIN_HTTP_TIMEOUT_S": "5",
                "XCHAIN_STALE_AFTER_S": "3600",
                "XCHAIN_RPC_URL_11155111": "http://sepolia.test",
            }
        )
        assert settings.mode is DeliveryMode.HOSTED
        assert settings.poll_interval_s == 0.5
        assert settings.history_limit == 10
        assert settings.storage_key == "custom"
        assert settings.db_path == "/tmp/h.db"
        assert settings.explorer_api_url == "http://explorer.test/api"
        assert settings.http_timeout_s == 5.0
        assert settings.stale_after_s == 3600.0
        assert settings.rpc_overrides == {11155111: "http://sepolia.test"}

    @pytest.mark.parametrize(
        "env",
        [
            {"XCHAIN_MODE": "cloud"},
            {"XCHAIN_POLL_INTERVAL_MS": "fast"},
            {"XCHAIN_POLL_INTERVAL_MS": "0"},
            {"XCHAIN_HISTORY_LIMIT": "-1"},
            {"XCHAIN_STALE_AFTER_S": "0"},
            {"XCHAIN_RPC_URL_sepolia": "http://x"},
        ],
    )
    def test_invalid(self, env: dict[str, str]) -> None:
        with pytest.raises(ValueError):
            load_settings(env)


class TestRegistry:
    def test_mode_tables(self) -> None:
        hosted = DeploymentRegistry(DeliveryMode.HOSTED)
        self_hosted = DeploymentRegistry(DeliveryMode.SELF_HOSTED)
        assert 421614 in hosted.chain_ids()
        assert 1315 in self_hosted.chain_ids()
        assert hosted.warp_routes() == ()

    def test_require_unknown(self) -> None:
        registry = DeploymentRegistry(DeliveryMode.SELF_HOSTED)
        with pytest.raises(DeploymentNotFound):
            registry.require(0)
        assert registry.chain_name(0) == "Chain 0"
        assert registry.domain_id(0) is None

    def test_rpc_override(self) -> None:
        settings = load_settings({"XCHAIN_RPC_URL_43113": "http://fuji.test"})
        registry = DeploymentRegistry(DeliveryMode.SELF_HOSTED, rpc_overrides=settings.rpc_overrides)
        assert registry.require(43113).rpc_url == "http://fuji.test"

    def test_ip_destinations(self) -> None:
        registry = DeploymentRegistry(DeliveryMode.SELF_HOSTED)
        assert registry.destination_chains("IP", 1315) == (43113,)
        assert registry.destination_chains("IP", 80002) == ()
        assert registry.destination_chains("DOGE", 1315) == ()

    def test_collateral_needs_approval(self) -> None:
        usdc = DeploymentRegistry(DeliveryMode.SELF_HOSTED).warp_route("USDC")
        assert usdc is not None
        sepolia = usdc.token_on(11155111)
        assert sepolia is not None
        assert sepolia.type is TokenType.COLLATERAL
        assert sepolia.needs_approval
        assert not usdc.token_on(1315).needs_approval  # type: ignore[union-attr]

    def test_tx_url(self) -> None:
        deployment = DeploymentRegistry(DeliveryMode.HOSTED).require(11155111)
        assert deployment.tx_url("0xabc") == "https://sepolia.etherscan.io/tx/0xabc"


class TestFormatUnits:
    def test_values(self) -> None:
        assert format_units(1_500_000, 6) == "1.5"
        assert format_units(10**18, 18) == "1"
        assert format_units(0, 6) == "0"
