"""OpenTelemetry tracing for storage operations.

Spans are only emitted when CONOHA_OTEL_ENABLED is truthy. Without an
OpenTelemetry SDK configured by the application they are no-ops.

Security:
    - Never export tokens, passwords or request headers
    - Never export local filesystem paths (upload sources, download targets)
    - Only tenant id, container and object names, status and error kind
"""

from __future__ import annotations

import functools
import inspect
import os
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

CONOHA_OTEL_ENABLED_ENV = "CONOHA_OTEL_ENABLED"
TRACER_NAME = "conoha.object_store"

F = TypeVar("F", bound=Callable[..., Any])


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no", ""):
        return default
    return default


def is_tracing_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool(CONOHA_OTEL_ENABLED_ENV, False)


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace a StorageClient method.

    The decorated method's ``container_name`` and ``object_name`` arguments,
    if it has them, become span attributes. The returned StorageResult
    contributes its status code and error kind.

    Args:
        operation: Operation name (e.g., "list_containers", "upload_object").

    Returns:
        Decorated method that emits a span when tracing is enabled.
    """

    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            tracer = trace.get_tracer(TRACER_NAME)
            with tracer.start_as_current_span(f"{TRACER_NAME}.{operation}") as span:
                span.set_attribute("conoha.tenant_id", getattr(self, "tenant_id", "unknown"))
                bound = signature.bind_partial(self, *args, **kwargs)
                container_name = bound.arguments.get("container_name")
                object_name = bound.arguments.get("object_name")
                if container_name is not None:
                    span.set_attribute("conoha.container", str(container_name))
                if object_name is not None:
                    span.set_attribute("conoha.object", str(object_name))

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add StorageResult attributes to span safely."""
    status_code = getattr(result, "status_code", None)
    error = getattr(result, "error", None)
    if status_code is not None:
        span.set_attribute("http.response.status_code", status_code)
    if error is not None:
        span.set_attribute("error", True)
        span.set_attribute("conoha.error_kind", str(error))
