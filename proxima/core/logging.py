"""Logging and tracing setup for the ProximaGo dashboard."""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any
from urllib.parse import unquote

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from proxima import __version__
from proxima.core.config import Settings

# Third-party loggers that flood the console at INFO on every Streamlit rerun.
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")

_provider: TracerProvider | None = None


def parse_otlp_headers(raw: str | None) -> dict[str, str]:
    """Parse ``OTEL_EXPORTER_OTLP_HEADERS`` style ``key=value`` pairs (values may be percent-encoded)."""

    headers: dict[str, str] = {}
    for pair in (raw or "").split(","):
        key, sep, value = pair.partition("=")
        if sep and key.strip():
            headers[key.strip()] = unquote(value.strip())
    return headers


def logging_config(settings: Settings) -> dict[str, Any]:
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    quiet = max(level, logging.WARNING)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"console": {"format": settings.log_format}},
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stderr",
            }
        },
        "loggers": {
            "proxima": {"level": level},
            **{name: {"level": quiet} for name in _NOISY_LOGGERS},
        },
        "root": {"handlers": ["console"], "level": quiet},
    }


def configure_logging(settings: Settings) -> logging.Logger:
    """Install the console handler and return the ``proxima`` logger."""

    dictConfig(logging_config(settings))
    logger = logging.getLogger("proxima")
    logger.debug("Logging configured for %s (%s)", settings.app_name, settings.environment)
    return logger


def init_tracer(settings: Settings) -> TracerProvider | None:
    """Export gateway spans over OTLP/HTTP when tracing is enabled; idempotent across reruns."""

    global _provider

    if not settings.otel_enabled:
        return None
    if _provider is not None:
        return _provider

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    exporter = OTLPSpanExporter(
        endpoint=settings.otel_exporter_otlp_endpoint or None,
        headers=parse_otlp_headers(settings.otel_exporter_otlp_headers) or None,
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    trace.set_tracer_provider(provider)
    _provider = provider
    return provider

