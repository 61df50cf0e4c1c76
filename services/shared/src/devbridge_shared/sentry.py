"""Sentry initialization and unified logging for devbridge services.

Log events are structlog key/value events. Every event becomes a Sentry
breadcrumb, and error events are captured with their `device_id` and
`operation` keys promoted to Sentry tags so that tunnel failures can be
grouped per device.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

if TYPE_CHECKING:
    from sentry_sdk.types import Event

EventCallback = Callable[[dict[str, Any], dict[str, Any]], dict[str, Any] | None]

PRODUCTION_TRACES_SAMPLE_RATE = 0.2
DEV_TRACES_SAMPLE_RATE = 1.0

FILTERED = "[Filtered]"

# Relay connection strings and pub/sub keys end up in bridge environments
SENSITIVE_KEYS = ("password", "token", "secret", "key", "conn_string", "connection_string")
SENSITIVE_HEADERS = ("authorization", "cookie", "x-api-key")

# Event keys that become Sentry tags on captured errors
TAG_KEYS = ("device_id", "operation", "method", "backend")

_EVENT_META_KEYS = frozenset({"event", "level", "timestamp", "logger", "service"})


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)


def _scrub_mapping(data: MutableMapping[str, Any]) -> None:
    for key, value in list(data.items()):
        if _is_sensitive(key):
            data[key] = FILTERED
        elif isinstance(value, MutableMapping):
            _scrub_mapping(value)


def scrub_event(event: dict[str, Any]) -> dict[str, Any]:
    """Filter credentials out of request headers, extras and breadcrumbs."""
    request = event.get("request")
    if isinstance(request, dict) and isinstance(request.get("headers"), dict):
        headers = request["headers"]
        for header in SENSITIVE_HEADERS:
            if header in headers:
                headers[header] = FILTERED

    extra = event.get("extra")
    if isinstance(extra, dict):
        _scrub_mapping(extra)

    breadcrumbs = event.get("breadcrumbs")
    values = breadcrumbs.get("values") if isinstance(breadcrumbs, dict) else breadcrumbs
    for crumb in values or []:
        if isinstance(crumb, dict) and isinstance(crumb.get("data"), dict):
            _scrub_mapping(crumb["data"])
    return event


def forward_to_sentry(
    _logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """structlog processor: breadcrumb every event, capture errors."""
    message = str(event_dict.get("event", ""))
    context = {k: v for k, v in event_dict.items() if k not in _EVENT_META_KEYS}

    sentry_sdk.add_breadcrumb(
        message=message,
        category="log",
        level=event_dict.get("level", "info"),
        data=context or None,
    )

    if method_name not in ("error", "exception", "critical"):
        return event_dict

    exc_info = event_dict.get("exc_info")
    with sentry_sdk.isolation_scope() as scope:
        for key in TAG_KEYS:
            if context.get(key) is not None:
                scope.set_tag(key, str(context[key]))
        if isinstance(exc_info, tuple):
            sentry_sdk.capture_exception(exc_info[1])
        else:
            for key, value in context.items():
                scope.set_extra(key, value)
            sentry_sdk.capture_message(
                message, level="error" if method_name == "error" else "fatal"
            )

    return event_dict


def _renderer(json_format: bool) -> Any:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    service_name: str,
    log_level: int | str = logging.INFO,
    json_format: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """
    Configure stdlib logging and structlog for a devbridge service.

    Call once at startup, after init_sentry().

    Args:
        service_name: Added to every event as `service`
        log_level: Minimum log level, as a number or a name like "DEBUG"
        json_format: JSON lines (True) or console output (False). If None,
                     console output is used only when ENVIRONMENT=development.

    Returns:
        Logger bound to the service name
    """
    if json_format is None:
        json_format = os.environ.get("ENVIRONMENT", "development") != "development"

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    # force=True drops handlers left by a previous call (uvicorn reload)
    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    def add_service(_logger: Any, _method: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            add_service,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            forward_to_sentry,
            _renderer(json_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))


@dataclass
class SentryConfig:
    """Configuration for Sentry SDK initialization."""

    service_name: str
    dsn: str | None = None
    environment: str | None = None
    release: str | None = None
    traces_sample_rate: float | None = None
    # Control plane only; the device agent runs no web framework
    enable_web_integrations: bool = True
    additional_integrations: list[Any] = field(default_factory=list)
    before_send: EventCallback | None = None

    def resolved_environment(self) -> str:
        return self.environment or os.environ.get("ENVIRONMENT", "development")

    def resolved_traces_rate(self) -> float:
        if self.traces_sample_rate is not None:
            return self.traces_sample_rate
        if self.resolved_environment() == "production":
            return PRODUCTION_TRACES_SAMPLE_RATE
        return DEV_TRACES_SAMPLE_RATE


def _build_integrations(cfg: SentryConfig) -> list[Any]:
    integrations: list[Any] = [
        AsyncioIntegration(),
        LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
    ]
    if cfg.enable_web_integrations:
        integrations += [
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ]
    return integrations + list(cfg.additional_integrations)


def init_sentry(service_name: str, config: SentryConfig | None = None) -> bool:
    """
    Initialize the Sentry SDK for a devbridge service.

    Returns:
        True if Sentry was initialized, False if no DSN is configured
    """
    cfg = config or SentryConfig(service_name=service_name)
    dsn = cfg.dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    def before_send(event: Event, hint: dict[str, Any]) -> Event | None:
        scrubbed = scrub_event(cast("dict[str, Any]", event))
        if cfg.before_send is not None:
            return cast("Event | None", cfg.before_send(scrubbed, hint))
        return cast("Event", scrubbed)

    sentry_sdk.init(
        dsn=dsn,
        environment=cfg.resolved_environment(),
        release=cfg.release or f"{service_name}@{os.environ.get('VERSION', '0.1.0')}",
        traces_sample_rate=cfg.resolved_traces_rate(),
        integrations=_build_integrations(cfg),
        before_send=before_send,
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=100,
        server_name=service_name,
        ignore_errors=[
            "ConnectionRefusedError",
            "ConnectionResetError",
            "asyncio.CancelledError",
            "KeyboardInterrupt",
            "SystemExit",
        ],
    )

    sentry_sdk.set_tag("service", service_name)
    return True
