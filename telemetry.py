#!/usr/bin/env python3
"""
Telemetry setup using OpenTelemetry.

This module configures tracing for aiohttp client requests, sqlite3 calls and
key pipeline spans (fetch, scrape, reconcile, store).

Environment variables:
  - OTEL_SERVICE_NAME (default: bangla-news)
  - OTEL_ENVIRONMENT (maps to deployment.environment)
  - OTEL_CONSOLE_EXPORT=true to print finished spans to stdout
  - DISABLE_TELEMETRY=true to fully disable

The module is safe to import multiple times; initialization is idempotent.
"""

from __future__ import annotations

import os
import atexit
import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional
import asyncio

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.instrumentation.sqlite3 import SQLite3Instrumentor

_init_lock = threading.Lock()
_initialized = False
_provider: Optional[TracerProvider] = None

_logger = logging.getLogger(__name__)


def init_telemetry(service_name: Optional[str] = None) -> None:
    """Initialize OpenTelemetry tracing and instrumentation.

    Safe to call multiple times. If DISABLE_TELEMETRY=true, it's a no-op.
    """
    global _initialized, _provider
    if os.environ.get("DISABLE_TELEMETRY", "false").lower() == "true":
        return
    if _initialized:
        return
    with _init_lock:
        if _initialized:
            return

        svc = service_name or os.environ.get("OTEL_SERVICE_NAME", "bangla-news")
        env = os.environ.get("OTEL_ENVIRONMENT")
        attrs = {"service.name": svc}
        if env:
            attrs["deployment.environment"] = env
        resource = Resource.create(attrs)

        # If a provider was already set by external auto-instrumentation, reuse it
        existing = trace.get_tracer_provider()
        if isinstance(existing, TracerProvider):
            provider = existing
        else:
            provider = TracerProvider(resource=resource)

        if os.environ.get("OTEL_CONSOLE_EXPORT", "false").lower() == "true":
            provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
            _logger.info("Telemetry initialized with console span exporter (service=%s)", svc)
        else:
            _logger.debug("Telemetry initialized without exporter (service=%s)", svc)

        if not isinstance(existing, TracerProvider):
            trace.set_tracer_provider(provider)
        _provider = provider

        # Instrumentation failures must never stop the aggregator
        for instrumentor in (AioHttpClientInstrumentor(), LoggingInstrumentor(), SQLite3Instrumentor()):
            try:
                instrumentor.instrument()
            except Exception as e:
                _logger.debug("Telemetry: %s not enabled: %s", type(instrumentor).__name__, e)

        _initialized = True

        def _shutdown():
            # TracerProvider.shutdown() flushes BatchSpanProcessor
            if _provider:
                _provider.shutdown()

        atexit.register(_shutdown)


AttrsFromArgs = Callable[..., Dict[str, Any]]


def _set_span_attributes(span, static_attrs, attr_from_args, args, kwargs) -> None:
    attributes = dict(static_attrs or {})
    if attr_from_args:
        try:
            attributes.update(attr_from_args(*args, **kwargs) or {})
        except Exception as e:
            # A broken attribute callback must not fail the traced call
            _logger.debug("Telemetry: span attributes unavailable: %s", e)
    span.set_attributes(attributes)


def trace_span(
    span_name: str,
    *,
    static_attrs: Optional[Dict[str, Any]] = None,
    attr_from_args: Optional[AttrsFromArgs] = None,
):
    """Wrap a sync or async function call in a span named ``span_name``.

    The tracer is named after the span's first dotted component
    ("proxy.fetch_text" is traced by "proxy"). ``attr_from_args`` receives the
    call's arguments and returns extra span attributes. Exceptions are recorded
    on the span and re-raised.
    """
    tracer = trace.get_tracer(span_name.split(".")[0])

    def _decorator(func):
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def _async_wrapper(*args, **kwargs):
                with tracer.start_as_current_span(span_name) as span:
                    _set_span_attributes(span, static_attrs, attr_from_args, args, kwargs)
                    return await func(*args, **kwargs)

            return _async_wrapper

        @functools.wraps(func)
        def _wrapper(*args, **kwargs):
            with tracer.start_as_current_span(span_name) as span:
                _set_span_attributes(span, static_attrs, attr_from_args, args, kwargs)
                return func(*args, **kwargs)

        return _wrapper

    return _decorator
