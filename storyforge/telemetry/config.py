"""Logging and OpenTelemetry setup for the CLI.

Reads its configuration from the environment:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default INFO)
- OTEL_SERVICE_NAME: service name on traces (default storyforge)
- OTEL_EXPORTER_OTLP_ENDPOINT: collector endpoint (default http://localhost:4317)
- OTEL_TRACES_EXPORTER: otlp, console or none (default none)
- OTEL_SDK_DISABLED: disable tracing entirely (default false)
"""

import logging
import os
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_telemetry_initialized = False
_strands_telemetry = None

NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "lancedb", "httpx")


class ExporterType(Enum):
    OTLP = "otlp"
    CONSOLE = "console"
    NONE = "none"


@dataclass
class TelemetryConfig:
    log_level: str = "INFO"
    service_name: str = "storyforge"
    otlp_endpoint: str = "http://localhost:4317"
    traces_exporter: ExporterType = ExporterType.NONE
    otel_disabled: bool = False

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        exporter_str = os.getenv("OTEL_TRACES_EXPORTER", "none").lower()
        try:
            exporter = ExporterType(exporter_str)
        except ValueError:
            logger.warning(f"Unknown exporter type '{exporter_str}', traces will not be exported")
            exporter = ExporterType.NONE

        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            service_name=os.getenv("OTEL_SERVICE_NAME", "storyforge"),
            otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317"),
            traces_exporter=exporter,
            otel_disabled=os.getenv("OTEL_SDK_DISABLED", "false").lower() in ("true", "1", "yes"),
        )


def _setup_logging(config: TelemetryConfig) -> None:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout carries the JSON result of the CLI
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    logging.getLogger("strands").setLevel(level)
    logging.getLogger("storyforge").setLevel(level)

    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logger.info(f"Logging configured: level={config.log_level}")


def _setup_tracing(config: TelemetryConfig) -> Any:
    """Install a tracer provider and hand it to Strands for agent spans."""
    if config.otel_disabled:
        logger.info("OpenTelemetry disabled via OTEL_SDK_DISABLED")
        return None

    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from strands.telemetry import StrandsTelemetry

    tracer_provider = TracerProvider(resource=Resource.create({SERVICE_NAME: config.service_name}))
    trace.set_tracer_provider(tracer_provider)
    telemetry = StrandsTelemetry(tracer_provider=tracer_provider)

    if config.traces_exporter == ExporterType.OTLP:
        telemetry.setup_otlp_exporter(endpoint=config.otlp_endpoint)
        logger.info(f"OTLP exporter configured: endpoint={config.otlp_endpoint}")
    elif config.traces_exporter == ExporterType.CONSOLE:
        telemetry.setup_console_exporter()
        logger.info("Console exporter configured")

    return telemetry


def init_telemetry(config: TelemetryConfig | None = None) -> None:
    """Configure logging and tracing once per process."""
    global _telemetry_initialized, _strands_telemetry

    if _telemetry_initialized:
        logger.debug("Telemetry already initialized, skipping")
        return

    config = config or TelemetryConfig.from_env()
    _setup_logging(config)
    _strands_telemetry = _setup_tracing(config)

    _telemetry_initialized = True
    logger.info(
        f"Telemetry initialized: service={config.service_name}, "
        f"exporter={config.traces_exporter.value}, otel_disabled={config.otel_disabled}"
    )


def is_telemetry_enabled() -> bool:
    return _telemetry_initialized and _strands_telemetry is not None
