"""Tests for Sentry and logging setup."""

from unittest.mock import patch

from devbridge_shared import SentryConfig, configure_logging, init_sentry
from devbridge_shared.sentry import _build_integrations, forward_to_sentry, scrub_event


class TestInitSentry:
    """Tests for init_sentry."""

    def test_no_dsn(self, monkeypatch) -> None:
        monkeypatch.delenv("SENTRY_DSN", raising=False)

        with patch("devbridge_shared.sentry.sentry_sdk.init") as init:
            assert init_sentry("devbridge-control") is False

        init.assert_not_called()

    def test_with_dsn(self) -> None:
        config = SentryConfig(
            service_name="devbridge-control",
            dsn="https://key@sentry.example.com/1",
            environment="production",
        )

        with (
            patch("devbridge_shared.sentry.sentry_sdk.init") as init,
            patch("devbridge_shared.sentry.sentry_sdk.set_tag") as set_tag,
        ):
            assert init_sentry("devbridge-control", config) is True

        kwargs = init.call_args.kwargs
        assert kwargs["environment"] == "production"
        assert kwargs["traces_sample_rate"] == 0.2
        assert kwargs["send_default_pii"] is False
        set_tag.assert_called_once_with("service", "devbridge-control")

    def test_agent_integrations(self) -> None:
        """The agent has no web framework integrations."""
        names = {
            type(i).__name__
            for i in _build_integrations(
                SentryConfig(service_name="devbridge-agent", enable_web_integrations=False)
            )
        }

        assert names == {"AsyncioIntegration", "LoggingIntegration"}


class TestScrubEvent:
    """Tests for event scrubbing."""

    def test_scrubs_credentials(self) -> None:
        event = {
            "request": {"headers": {"authorization": "Bearer x", "accept": "*/*"}},
            "extra": {
                "relay_connection_string": "Endpoint=sb://...;SharedAccessKey=abc",
                "webpubsub_key": "k",
                "device_id": "dev-1",
            },
        }

        scrubbed = scrub_event(event)

        assert scrubbed["request"]["headers"]["authorization"] == "[Filtered]"
        assert scrubbed["request"]["headers"]["accept"] == "*/*"
        assert scrubbed["extra"]["relay_connection_string"] == "[Filtered]"
        assert scrubbed["extra"]["webpubsub_key"] == "[Filtered]"
        assert scrubbed["extra"]["device_id"] == "dev-1"


class TestConfigureLogging:
    """Tests for logging setup."""

    def test_returns_logger(self) -> None:
        logger = configure_logging("devbridge-test", json_format=True)

        with patch("devbridge_shared.sentry.sentry_sdk.add_breadcrumb") as breadcrumb:
            logger.info("Tunnel ready", device_id="dev-1")

        breadcrumb.assert_called_once()
        assert breadcrumb.call_args.kwargs["data"]["device_id"] == "dev-1"


class TestScrubBreadcrumbs:
    """Tests for scrubbing log breadcrumbs."""

    def test_nested_bridge_environment(self) -> None:
        event = {
            "breadcrumbs": {
                "values": [
                    {
                        "message": "Creating bridge resource",
                        "data": {
                            "name": "devbridge-bridge",
                            "environment": {
                                "AZRELAY_CONN_STRING": "Endpoint=sb://...",
                                "Local__PubSubKey": "k",
                                "AZRELAY_HYBRID_CONNECTION": "dev-1",
                            },
                        },
                    }
                ]
            }
        }

        data = scrub_event(event)["breadcrumbs"]["values"][0]["data"]

        assert data["name"] == "devbridge-bridge"
        assert data["environment"]["AZRELAY_CONN_STRING"] == "[Filtered]"
        assert data["environment"]["Local__PubSubKey"] == "[Filtered]"
        assert data["environment"]["AZRELAY_HYBRID_CONNECTION"] == "dev-1"


class TestForwardToSentry:
    """Tests for the structlog to Sentry processor."""

    def test_error_is_captured_with_device_tags(self) -> None:
        event = {
            "event": "Tunnel operation failed",
            "level": "error",
            "device_id": "dev-1",
            "operation": "create",
        }

        with (
            patch("devbridge_shared.sentry.sentry_sdk.add_breadcrumb"),
            patch("devbridge_shared.sentry.sentry_sdk.isolation_scope") as isolation_scope,
            patch("devbridge_shared.sentry.sentry_sdk.capture_message") as capture,
        ):
            forward_to_sentry(None, "error", event)

        scope = isolation_scope.return_value.__enter__.return_value
        scope.set_tag.assert_any_call("device_id", "dev-1")
        scope.set_tag.assert_any_call("operation", "create")
        capture.assert_called_once_with("Tunnel operation failed", level="error")

    def test_info_is_only_a_breadcrumb(self) -> None:
        with (
            patch("devbridge_shared.sentry.sentry_sdk.add_breadcrumb") as breadcrumb,
            patch("devbridge_shared.sentry.sentry_sdk.capture_message") as capture,
        ):
            forward_to_sentry(None, "info", {"event": "Tunnel ready", "level": "info"})

        breadcrumb.assert_called_once()
        capture.assert_not_called()
