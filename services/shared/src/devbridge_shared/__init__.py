"""Shared code for devbridge services."""

from devbridge_shared.sentry import SentryConfig, configure_logging, init_sentry

__version__ = "0.1.0"

__all__ = [
    "SentryConfig",
    "__version__",
    "configure_logging",
    "init_sentry",
]
