"""
Configuration for segtrace.

Settings are read from config/config.yaml under the resources root and then
overridden by SEGTRACE_* environment variables:

  SEGTRACE_SERVICE_NAME   service.name on exported spans
  SEGTRACE_EXPORTER       console | file | otlp | none
  SEGTRACE_ENDPOINT       OTLP endpoint (default http://localhost:4318)
  SEGTRACE_PROTOCOL       http | grpc
  SEGTRACE_OUTPUT_FILE    JSON-lines file for the file exporter
  SEGTRACE_LOG_LEVEL      level for the segtrace loggers
  SEGTRACE_EXPORT_LOGS    also ship segtrace's own log records through OTEL (true/false)
  SEGTRACE_SAMPLED        sampling decision for new root segments (true/false)

When running from source, resource/ at project root is the resources root.
When the package is installed, set SEGTRACE_ROOT to a directory containing
config/ (no bundled resources otherwise; defaults apply).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .backend.ids import TRACE_HEADER_KEY
from .errors import ConfigurationError

EXPORTER_CHOICES = ("console", "file", "otlp", "none")
PROTOCOL_CHOICES = ("http", "grpc")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def get_resources_root() -> Path:
    """Return the root directory for config resources.

    Resolution order:
    1. SEGTRACE_ROOT env var (must contain config/)
    2. resource/ under directory containing pyproject.toml (when running from source)
    3. otherwise a path with no config in it, so load_settings() falls back to defaults
    """
    env_root = os.environ.get("SEGTRACE_ROOT")
    if env_root:
        p = Path(env_root).resolve()
        if p.is_dir():
            return p
    here = Path(__file__).resolve().parent
    for candidate in [here, *here.parents]:
        if (candidate / "pyproject.toml").is_file():
            return candidate / "resource"
    return Path(__file__).resolve().parent / "resources"


def default_config_path() -> Path:
    return get_resources_root() / "config" / "config.yaml"


def load_yaml(path: Path, default: Any = None) -> Any:
    """Load YAML file; return default on missing file. Parse errors raise ConfigurationError."""
    if default is None:
        default = {}
    if not path.exists():
        return default
    try:
        with path.open(encoding="utf-8") as f:
            data: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    return data if isinstance(data, dict) else default


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass
class HostDetectionSettings:
    """Environment variables that reveal a host-managed top-level segment."""

    marker_env: list[str] = field(default_factory=list)
    trace_header_env: str | None = None
    name: str = "host"


@dataclass
class TracingSettings:
    """Resolved settings for building a tracer."""

    service_name: str = "segtrace"
    exporter: str = "console"
    endpoint: str = "http://localhost:4318"
    protocol: str = "http"
    headers: dict[str, str] = field(default_factory=dict)
    output_file: str | None = None
    sampled: bool = True
    log_level: str = "WARNING"
    export_logs: bool = False
    trace_header_key: str = TRACE_HEADER_KEY
    host_detection: list[HostDetectionSettings] = field(default_factory=list)

    def validate(self) -> "TracingSettings":
        if self.exporter not in EXPORTER_CHOICES:
            raise ConfigurationError(
                f"exporter must be one of {', '.join(EXPORTER_CHOICES)}; got {self.exporter!r}"
            )
        if self.protocol not in PROTOCOL_CHOICES:
            raise ConfigurationError(
                f"protocol must be one of {', '.join(PROTOCOL_CHOICES)}; got {self.protocol!r}"
            )
        if self.exporter == "file" and not self.output_file:
            raise ConfigurationError("exporter 'file' requires output_file")
        if not self.service_name.strip():
            raise ConfigurationError("service_name must not be empty")
        return self


def _host_detection_from_yaml(raw: Any) -> list[HostDetectionSettings]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigurationError("host_detection must be a list")
    result: list[HostDetectionSettings] = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ConfigurationError("host_detection entries must be mappings")
        markers = entry.get("marker_env") or []
        if isinstance(markers, str):
            markers = [markers]
        if not isinstance(markers, list) or not markers:
            raise ConfigurationError("host_detection entries need a non-empty marker_env")
        header_env = entry.get("trace_header_env")
        result.append(
            HostDetectionSettings(
                marker_env=[str(m) for m in markers],
                trace_header_env=str(header_env) if header_env else None,
                name=str(entry.get("name") or "host"),
            )
        )
    return result


def _apply_yaml(settings: TracingSettings, data: dict[str, Any]) -> None:
    tracing = data.get("tracing")
    if isinstance(tracing, dict):
        for key in ("service_name", "exporter", "endpoint", "protocol", "output_file", "trace_header_key"):
            if tracing.get(key) is not None:
                setattr(settings, key, str(tracing[key]).strip())
        if tracing.get("sampled") is not None:
            settings.sampled = parse_bool(tracing["sampled"], "tracing.sampled")
        headers = tracing.get("headers")
        if isinstance(headers, dict):
            settings.headers = {str(k): str(v) for k, v in headers.items()}
    logging_block = data.get("logging")
    if isinstance(logging_block, dict):
        if logging_block.get("level") is not None:
            settings.log_level = str(logging_block["level"]).strip().upper()
        if logging_block.get("export") is not None:
            settings.export_logs = parse_bool(logging_block["export"], "logging.export")
    if "host_detection" in data:
        settings.host_detection = _host_detection_from_yaml(data.get("host_detection"))


def _apply_env(settings: TracingSettings) -> None:
    env = os.environ
    for var, attr_name in (
        ("SEGTRACE_SERVICE_NAME", "service_name"),
        ("SEGTRACE_EXPORTER", "exporter"),
        ("SEGTRACE_ENDPOINT", "endpoint"),
        ("SEGTRACE_PROTOCOL", "protocol"),
        ("SEGTRACE_OUTPUT_FILE", "output_file"),
    ):
        value = env.get(var, "").strip()
        if value:
            setattr(settings, attr_name, value.lower() if attr_name in ("exporter", "protocol") else value)
    level = env.get("SEGTRACE_LOG_LEVEL", "").strip()
    if level:
        settings.log_level = level.upper()
    if env.get("SEGTRACE_EXPORT_LOGS", "").strip():
        settings.export_logs = parse_bool(env["SEGTRACE_EXPORT_LOGS"], "SEGTRACE_EXPORT_LOGS")
    if env.get("SEGTRACE_SAMPLED", "").strip():
        settings.sampled = parse_bool(env["SEGTRACE_SAMPLED"], "SEGTRACE_SAMPLED")


def load_settings(config_path: Path | str | None = None) -> TracingSettings:
    """Load settings from YAML (if present) and apply SEGTRACE_* environment overrides."""
    path = Path(config_path) if config_path is not None else default_config_path()
    settings = TracingSettings()
    _apply_yaml(settings, load_yaml(path))
    _apply_env(settings)
    return settings.validate()
