"""Tests for core data models."""

import pytest

from crafty_broker.models import (
    ApiEnvelope,
    ApiResult,
    ConfigTypeError,
    CraftyBrokerConfig,
    FailureKind,
    InvalidConfigError,
    LifecycleResult,
    Outcome,
    PollingConfig,
    ServerAddress,
    ServerConfig,
    parse_broker_config,
)

from fakes import crafty_payload, make_crafty_config, make_server_config


class TestCraftyBrokerConfig:
    def test_host_field_names(self):
        config = make_crafty_config()
        assert config.server_id == "7f3b2c1e"
        assert config.crafty_address == "https://crafty.local:8443"
        assert config.insecure_mode is False
        assert config.remove_action == "delete"

    def test_python_field_names(self):
        config = CraftyBrokerConfig(server_id="1", token="t", insecure_mode=True)
        assert config.insecure_mode is True

    def test_defaults(self):
        config = CraftyBrokerConfig.model_validate({"serverID": "1", "token": "t"})
        assert config.crafty_address == "https://localhost:8443"
        assert config.address is None

    def test_structural_equality(self):
        assert make_crafty_config() == make_crafty_config()
        assert make_crafty_config() != make_crafty_config(token="other")
        assert make_crafty_config() != make_crafty_config(insecureMode=True)

    def test_frozen(self):
        config = make_crafty_config()
        with pytest.raises(Exception):
            config.server_id = "other"

    def test_token_hidden_in_repr(self):
        assert "secret-token" not in repr(make_crafty_config())

    def test_endpoint(self):
        endpoint = make_crafty_config(insecureMode=True).endpoint()
        assert endpoint.resource_id == "7f3b2c1e"
        assert endpoint.auth_token.get_secret_value() == "secret-token"
        assert endpoint.insecure_transport is True

    def test_invalid_remove_action(self):
        with pytest.raises(Exception):
            make_crafty_config(removeAction="shred")


class TestParseBrokerConfig:
    def test_crafty(self):
        config = parse_broker_config(make_server_config())
        assert isinstance(config, CraftyBrokerConfig)

    def test_wrong_discriminant(self):
        with pytest.raises(ConfigTypeError):
            parse_broker_config(ServerConfig(name="x", type="velocity", config=crafty_payload()))

    def test_invalid_payload(self):
        with pytest.raises(InvalidConfigError):
            parse_broker_config(ServerConfig(name="x", type="crafty", config={"token": "t"}))


class TestApiEnvelope:
    def test_unknown_keys_ignored(self):
        envelope = ApiEnvelope.model_validate(
            {"status": "ok", "data": {"running": False, "new_metric": 1}, "trace_id": "abc"}
        )
        assert envelope.ok
        assert envelope.data.running is False

    def test_error_fields(self):
        envelope = ApiEnvelope.model_validate(
            {"status": "error", "error": "INVALID_JSON", "errorData": "bad body", "info": None}
        )
        assert not envelope.ok
        assert envelope.describe_error() == "INVALID_JSON: bad body"

    def test_error_without_detail(self):
        assert "None" in ApiEnvelope().describe_error()

    def test_stats_field_drift(self):
        """Decorative fields may change type between Crafty versions."""
        envelope = ApiEnvelope.model_validate(
            {"status": "ok", "data": {"running": True, "mem": 0, "players": ["steve"]}}
        )
        assert envelope.data.running is True


class TestApiResult:
    def test_from_ok_envelope(self):
        result = ApiResult.from_envelope(ApiEnvelope(status="ok"), http_status=200)
        assert result.outcome == Outcome.OK
        assert result.failure is None

    def test_from_error_envelope(self):
        result = ApiResult.from_envelope(ApiEnvelope(status="error", error="NOT_AUTHORIZED"))
        assert result.outcome == Outcome.ERROR
        assert result.failure == FailureKind.REJECTED
        assert result.error_detail == "NOT_AUTHORIZED"

    def test_immutable(self):
        result = ApiResult.error(FailureKind.PARSE, "bad")
        with pytest.raises(Exception):
            result.outcome = Outcome.OK


class TestLifecycleModels:
    def test_polling_defaults(self):
        polling = PollingConfig()
        assert polling.poll_interval_seconds == 0.1
        assert polling.convergence_timeout_seconds == 10.0
        assert polling.abort_on_unknown is True

    def test_polling_bounds(self):
        with pytest.raises(Exception):
            PollingConfig(poll_interval_seconds=0)

    def test_result_helpers(self):
        ok = LifecycleResult.ok("start")
        failed = LifecycleResult.failed("start", FailureKind.TIMEOUT, "too slow")
        assert ok.success and ok.failure is None
        assert not failed.success and failed.detail == "too slow"

    def test_port_bounds(self):
        with pytest.raises(Exception):
            ServerAddress(host="h", port=0)
