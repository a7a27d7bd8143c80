"""OpenTelemetry tracing of LLM calls."""

import os

from strands.telemetry import StrandsTelemetry

DEFAULT_SERVICE_NAME = "chatsync"


def setup_tracing(service_name: str = DEFAULT_SERVICE_NAME) -> StrandsTelemetry | None:
    """Export reply-generation traces when an OTLP endpoint is configured.

    OTEL_SERVICE_NAME is left alone when already set.

    Returns:
        The telemetry instance, or None when OTEL_EXPORTER_OTLP_ENDPOINT is
        unset.
    """
    if not os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT"):
        return None

    os.environ.setdefault("OTEL_SERVICE_NAME", service_name)

    telemetry = StrandsTelemetry()
    telemetry.setup_otlp_exporter()
    return telemetry
