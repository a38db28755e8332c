from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
import psutil
import os
import uuid
from datetime import datetime, timezone

SERVICE_NAME = "Audio Conversion API"
SERVICE_VERSION = "1.0.0"

health_router = APIRouter()


def check_downloads_dir(downloads_dir: str) -> None:
    """Raise OSError unless the downloads directory is writable"""
    os.makedirs(downloads_dir, exist_ok=True)
    test_file = os.path.join(downloads_dir, f".health_check_{uuid.uuid4().hex}")
    with open(test_file, "w") as f:
        f.write("health check")
    os.remove(test_file)


@health_router.get("/")
def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION
    }


@health_router.get("/detailed")
async def detailed_health_check(request: Request):
    """Detailed health check with dependencies"""
    state = request.app.state
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {}
    }

    # External tools
    report = await run_in_threadpool(state.dependency_checker)
    health_status["checks"]["tools"] = {
        "status": "healthy" if report.ok else "unhealthy",
        **report.to_dict()
    }
    if not report.ok:
        health_status["status"] = "unhealthy"

    # Jobs
    health_status["checks"]["jobs"] = {
        "status": "healthy",
        "counts": state.store.count_by_status(),
        "active_supervisors": state.scheduler.active_tasks
    }

    # System resources
    try:
        cpu_percent = psutil.cpu_percent(interval=None)
        memory = psutil.virtual_memory()
        disk = psutil.disk_usage(os.path.abspath(state.settings.downloads_dir))

        health_status["checks"]["system"] = {
            "status": "healthy",
            "cpu_percent": cpu_percent,
            "memory_percent": memory.percent,
            "disk_percent": disk.percent
        }

        if cpu_percent > 90 or memory.percent > 90 or disk.percent > 90:
            health_status["checks"]["system"]["status"] = "warning"

    except Exception as e:
        health_status["checks"]["system"] = {
            "status": "unhealthy",
            "error": str(e)
        }

    # File system check (downloads directory)
    try:
        check_downloads_dir(state.settings.downloads_dir)
        health_status["checks"]["filesystem"] = {"status": "healthy"}
    except OSError as e:
        health_status["checks"]["filesystem"] = {
            "status": "unhealthy",
            "error": str(e)
        }
        health_status["status"] = "unhealthy"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@health_router.get("/ready")
def readiness_check(request: Request):
    """Readiness probe: artifacts can be written"""
    try:
        check_downloads_dir(request.app.state.settings.downloads_dir)
        return {"status": "ready"}
    except OSError as e:
        raise HTTPException(
            status_code=503,
            detail={"status": "not ready", "error": str(e)}
        )


@health_router.get("/live")
def liveness_check():
    """Liveness probe"""
    return {"status": "alive"}
