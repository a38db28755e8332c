import time
import logging
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response as FastAPIResponse

logger = logging.getLogger(__name__)

# Prometheus metrics
request_count = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

request_duration = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)

job_count = Counter(
    'jobs_total',
    'Total conversion jobs that reached a terminal state',
    ['status']
)

job_duration = Histogram(
    'job_processing_duration_seconds',
    'Conversion job duration',
    ['status']
)


def record_job(status: str, duration: float) -> None:
    job_count.labels(status=status).inc()
    job_duration.labels(status=status).observe(duration)


UNMATCHED_ENDPOINT = "unmatched"


def route_template(scope) -> str:
    """Label for a request: the matched route pattern, never the concrete path.

    Job ids in ``/api/status/{job_id}`` would otherwise create a new series
    per job that outlives the job itself.
    """
    route = scope.get("route")
    return getattr(route, "path", None) or UNMATCHED_ENDPOINT


class MonitoringMiddleware:
    """Per-request counters and latency, labelled by route template"""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope["method"]
        path = scope["path"]
        start_time = time.time()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration = time.time() - start_time
                status_code = message["status"]
                # the router fills in scope["route"] before the response starts
                endpoint = route_template(scope)

                request_count.labels(method=method, endpoint=endpoint, status=status_code).inc()
                request_duration.labels(method=method, endpoint=endpoint).observe(duration)

                logger.info(f"{method} {path} ({endpoint}) - {status_code} - {duration:.3f}s")

            await send(message)

        await self.app(scope, receive, send_wrapper)


def setup_monitoring(app):
    """Setup monitoring middleware and endpoints"""

    app.add_middleware(MonitoringMiddleware)

    @app.get("/metrics")
    def get_metrics():
        """Prometheus metrics endpoint"""
        return FastAPIResponse(
            generate_latest(),
            media_type=CONTENT_TYPE_LATEST
        )
