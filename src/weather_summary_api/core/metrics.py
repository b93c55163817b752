"""OpenTelemetry instruments shared by the cache, rate limiter and repository.

Instruments are created from the global meter and start reporting once
``setup_metrics`` in ``app.py`` installs the Prometheus-backed provider.
"""

from opentelemetry import metrics

meter = metrics.get_meter("weather_summary_api")

cache_requests = meter.create_counter(
    "weather_cache_requests",
    description="Cache lookups by namespace and result (hit/miss)",
)

rate_limit_rejections = meter.create_counter(
    "weather_rate_limit_rejections",
    description="Requests rejected by a rate limit layer",
)

upstream_requests = meter.create_counter(
    "weather_upstream_requests",
    description="Calls to the upstream weather provider by operation and outcome",
)
