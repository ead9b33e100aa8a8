import os
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "y")


class Settings:
    """
    Environment-backed defaults for the exporter.

      - MACKEREL_APIKEY: API key; required for push mode
      - MACKEREL_BASE_URL: API endpoint override (e.g. a proxy)
      - MACKEREL_EXPORT_INTERVAL: seconds between export cycles
      - MACKEREL_DEBUG: verbose logging of every cycle
      - MACKEREL_LOG_LEVEL: level of the "mackerel.exporter" loggers
      - OTEL_EXPORTER_OTLP_ENDPOINT: collector for traces of the demo app;
        tracing is off when unset
    """

    MACKEREL_APIKEY: str = os.getenv("MACKEREL_APIKEY", "")
    MACKEREL_BASE_URL: str = os.getenv("MACKEREL_BASE_URL", "https://api.mackerelio.com")
    MACKEREL_EXPORT_INTERVAL: float = float(os.getenv("MACKEREL_EXPORT_INTERVAL", "60"))
    MACKEREL_DEBUG: bool = _env_flag("MACKEREL_DEBUG")
    LOG_LEVEL: str = os.getenv("MACKEREL_LOG_LEVEL", "INFO")

    OTEL_EXPORTER_OTLP_ENDPOINT: str = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "")
    OTEL_SERVICE_NAME: str = os.getenv("OTEL_SERVICE_NAME", "mackerel-exporter-example")


settings = Settings()


class ExporterOptions(BaseModel):
    """
    Options of one exporter pipeline.

    In push mode values are posted to Mackerel and `api_key` is required.
    In pull mode they are kept in memory and served to mackerel-agent.
    """
    api_key: str = ""
    base_url: Optional[str] = None
    mode: Literal["push", "pull"] = "push"
    quantiles: List[float] = Field(
        default_factory=list,
        description="Quantiles reported for histograms, each in [0, 1].",
    )
    hints: List[str] = Field(
        default_factory=list,
        description='Graph names such as "http.handlers.#.latency" used to group metrics.',
    )
    resource: Dict[str, Any] = Field(
        default_factory=dict,
        description="Resource attributes (host.id, service.namespace, ...) of the meter provider.",
    )
    interval_seconds: float = Field(default=60.0, gt=0)
    timeout_seconds: float = Field(default=10.0, gt=0)
    debug: bool = False

    @field_validator("quantiles")
    @classmethod
    def _check_quantiles(cls, v: List[float]) -> List[float]:
        for q in v:
            if not 0.0 <= q <= 1.0:
                raise ValueError(f"quantile {q} is out of [0, 1]")
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> "ExporterOptions":
        values: Dict[str, Any] = {
            "api_key": settings.MACKEREL_APIKEY,
            "base_url": settings.MACKEREL_BASE_URL,
            "interval_seconds": settings.MACKEREL_EXPORT_INTERVAL,
            "debug": settings.MACKEREL_DEBUG,
        }
        values.update(overrides)
        return cls(**values)
