"""
OTLP exporters for trace entities and logs.

Supports both HTTP and gRPC protocols. The gRPC exporters take host:port, so
any scheme is stripped; the HTTP exporters take the full signal URL, so the
signal path is appended when missing.
"""

from typing import Any


def _grpc_endpoint(endpoint: str) -> str:
    return endpoint.replace("http://", "").replace("https://", "")


def _http_endpoint(endpoint: str, signal_path: str) -> str:
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith(signal_path):
        return endpoint
    return f"{endpoint}{signal_path}"


def create_otlp_trace_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """
    Create an OTLP span exporter for sending finished segments.

    Args:
        endpoint: OTLP endpoint URL
        protocol: "http" or "grpc"
        headers: Optional headers to include

    Returns:
        Configured SpanExporter
    """
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter

        return OTLPSpanExporter(endpoint=_grpc_endpoint(endpoint), headers=headers, **kwargs)

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[assignment]
        OTLPSpanExporter,
    )

    return OTLPSpanExporter(endpoint=_http_endpoint(endpoint, "/v1/traces"), headers=headers, **kwargs)


def create_otlp_log_exporter(
    endpoint: str = "http://localhost:4318",
    protocol: str = "http",
    headers: dict[str, str] | None = None,
    **kwargs: Any,
):
    """Create an OTLP log exporter ("http" or "grpc")."""
    if protocol == "grpc":
        from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

        return OTLPLogExporter(endpoint=_grpc_endpoint(endpoint), headers=headers, **kwargs)

    from opentelemetry.exporter.otlp.proto.http._log_exporter import (  # type: ignore[assignment]
        OTLPLogExporter,
    )

    return OTLPLogExporter(endpoint=_http_endpoint(endpoint, "/v1/logs"), headers=headers, **kwargs)
