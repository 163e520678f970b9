"""Reachability Probe service main module.

FastAPI service that checks which hosts currently answer, using one
concurrent check per host, and publishes the results as CloudEvents.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from .checks import CheckPrimitive, build_primitive
from .config import settings
from .directory import Directory, DirectoryError, build_directory
from .prober import (
    PlatformUnsupported,
    ProbeReport,
    ReachabilityProber,
    resolve_targets,
)
from .publisher import EventPublisher

# Configure logging - NEVER log the LDAP bind password
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# Global state
primitive: CheckPrimitive | None = None
directory: Directory | None = None
publisher: EventPublisher | None = None


class ProbeRequest(BaseModel):
    """Request model for a reachability probe.

    Omit ``targets`` to probe the computers returned by the directory.
    """

    targets: list[str] | None = Field(
        default=None, description="Hosts to check (default: directory lookup)"
    )
    name_filter: str = Field(
        default="*", description="Wildcard applied to directory computer names"
    )
    concurrency_limit: int | None = Field(
        default=None, ge=1, description="Maximum checks in flight"
    )
    per_check_timeout_ms: int | None = Field(
        default=None, gt=0, description="Deadline for each individual check"
    )
    overall_timeout_ms: int | None = Field(
        default=None, gt=0, description="Deadline for the whole probe"
    )
    scan_id: str | None = Field(default=None, description="Scan ID for orchestration")
    include_outcomes: bool = Field(
        default=False, description="Return per-host outcomes as well"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "targets": ["ws-001", "ws-002", "srv-db01"],
                "per_check_timeout_ms": 120,
                "scan_id": "scan-xyz",
            }
        }


class ProbeResponse(BaseModel):
    """Response model for probe request."""

    probe_id: str
    reachable: list[str]
    checked: int
    duration_ms: float
    outcomes: list[dict[str, Any]] | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    status: str
    service: str
    check_method: str
    check_supported: bool
    rabbitmq: bool


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    global primitive, directory, publisher

    logger.info("Starting Reachability Probe service...")

    primitive = build_primitive(settings.check_method, settings.tcp_ports_list)
    if not primitive.is_supported():
        logger.warning(f"{primitive.name} checks are not available on this host")

    directory = build_directory(settings)
    logger.info(f"Using {settings.directory_source} directory")

    if settings.publish_results:
        try:
            publisher = EventPublisher(settings.rabbitmq_url, settings.rabbitmq_exchange)
            await publisher.connect()
        except Exception as e:
            logger.error(f"Failed to connect to RabbitMQ: {type(e).__name__}")
            publisher = None

    logger.info(
        f"Reachability Probe service started on "
        f"{settings.server_host}:{settings.server_port}"
    )

    yield

    # Cleanup
    if publisher:
        await publisher.close()
        publisher = None

    logger.info("Reachability Probe service stopped")


app = FastAPI(
    title="Reachability Probe",
    description="Concurrent host reachability checks",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        service="reachability-probe",
    )


@app.get("/ready", response_model=ReadyResponse)
async def ready():
    """Readiness check - verifies the check primitive is usable."""
    supported = primitive is not None and primitive.is_supported()
    if not supported:
        raise HTTPException(status_code=503, detail="Check primitive not available")

    return ReadyResponse(
        status="ready",
        service="reachability-probe",
        check_method=primitive.name,
        check_supported=supported,
        rabbitmq=bool(publisher and publisher.is_connected),
    )


@app.get("/metrics")
async def metrics() -> PlainTextResponse:
    """Prometheus metrics endpoint."""
    return PlainTextResponse(
        content=generate_latest().decode("utf-8"),
        media_type=CONTENT_TYPE_LATEST,
    )


@app.get("/api/v1/stats")
async def get_stats() -> dict[str, Any]:
    """Get service statistics."""
    return {
        "service": "reachability-probe",
        "version": "1.0.0",
        "config": {
            "check_method": settings.check_method,
            "tcp_ports": settings.tcp_ports_list,
            "concurrency_limit": settings.concurrency_limit,
            "per_check_timeout_ms": settings.per_check_timeout_ms,
            "overall_timeout_ms": settings.overall_timeout_ms,
            "directory_source": settings.directory_source,
        },
    }


@app.post("/api/v1/probe", response_model=ProbeResponse)
async def probe_hosts(request: ProbeRequest, background_tasks: BackgroundTasks):
    """
    Check which hosts are reachable.

    Waits for every check to settle, then publishes the result in the
    background.
    """
    if primitive is None:
        raise HTTPException(status_code=503, detail="Probe service not initialized")

    overall_timeout_ms = request.overall_timeout_ms or settings.overall_timeout_ms
    try:
        prober = ReachabilityProber(
            primitive,
            concurrency_limit=request.concurrency_limit or settings.concurrency_limit,
            per_check_timeout_ms=(
                request.per_check_timeout_ms or settings.per_check_timeout_ms
            ),
            local_host=settings.local_host or None,
            overall_timeout_ms=overall_timeout_ms or None,
        )
        prober.ensure_supported()
        targets = await resolve_targets(request.targets, directory, request.name_filter)
        report = await prober.probe(targets)
    except PlatformUnsupported as e:
        logger.error(f"Probe rejected: {e}")
        raise HTTPException(status_code=503, detail=str(e))
    except DirectoryError as e:
        logger.error(f"Directory lookup failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    if publisher:
        background_tasks.add_task(_publish_report, report, request.scan_id)

    return ProbeResponse(
        probe_id=report.probe_id,
        reachable=report.reachable,
        checked=len(report.outcomes),
        duration_ms=report.duration_ms,
        outcomes=(
            [o.to_dict() for o in report.outcomes] if request.include_outcomes else None
        ),
    )


async def _publish_report(report: ProbeReport, scan_id: str | None) -> None:
    """Publish a probe report; failures are logged, never raised."""
    if not publisher:
        return

    try:
        publisher.set_scan_id(scan_id)
        await publisher.publish_reachability_probed(report)
    except Exception as e:
        logger.error(f"Publish failed for probe {report.probe_id}: {type(e).__name__}")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "reachability_probe.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=False,
    )
