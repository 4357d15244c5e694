"""
Rightsizer API -- run right-sizing reports over HTTP.

Connection settings come from RIGHTSIZER_* environment variables; each
request may narrow the scope or tune the decision parameters. GET routes
never touch a VM. Applying a resize needs an explicit POST with confirm=true.
"""
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core.config import RightsizeConfig
from ..core.errors import ConfigurationError, ProviderConnectionError
from ..core.logging import get_logger
from ..providers.factory import ProviderFactory
from ..runner import run_rightsizing
from .adapters.report_adapter import adapt_run_report

logger = get_logger(__name__)

# ─── App ─────────────────────────────────────────────────────────────────────
app = FastAPI(
    title="Rightsizer API",
    version=__version__,
    description="Right-size vSphere VM CPU / memory from vROps recommendations.",
)

# ─── CORS ── open for local/CLI usage ────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _split(value: Optional[str]):
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()] or None


async def _run(
    read_only: bool,
    groups: Optional[str],
    vms: Optional[str],
    tolerance: Optional[float],
    buffer: Optional[float],
    max_jobs: Optional[int],
    grouped: bool,
):
    try:
        config = RightsizeConfig.from_env().with_overrides(
            read_only=read_only,
            tolerance_fraction=tolerance,
            buffer_fraction=buffer,
            max_concurrent_jobs=max_jobs,
        ).validate()
        report = await run_rightsizing(
            config,
            group_names=_split(groups),
            resource_names=_split(vms),
            grouped=grouped,
        )
        return adapt_run_report(report)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ProviderConnectionError as e:
        logger.error(f"Provider connection failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Right-sizing run failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


# ─── Routes ──────────────────────────────────────────────────────────────────

@app.get("/api/health")
def health_check():
    """Quick liveness probe."""
    return {"status": "ok", "version": __version__}


@app.get("/api/providers/status")
async def get_provider_status():
    """
    Check that vCenter and vROps are reachable and accept the configured
    credentials. Runs concurrently, safe to call anytime.
    """
    try:
        return await ProviderFactory.get_all_statuses(RightsizeConfig.from_env())
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Provider status check failed: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/report")
async def report(
    groups: Optional[str] = Query(None, description="Comma-separated group names (default: all)"),
    vms: Optional[str] = Query(None, description="Comma-separated VM names to restrict the run to"),
    tolerance: Optional[float] = Query(None, description="Tolerance fraction, e.g. 0.15"),
    buffer: Optional[float] = Query(None, description="Buffer fraction, e.g. 0.15"),
    max_jobs: Optional[int] = Query(None, description="Concurrent workflows"),
    grouped: bool = Query(True, description="Use tag groups; false runs every VM as one batch"),
):
    """
    Read-only right-sizing report. Nothing is powered off or reconfigured.

    Examples:
      GET /api/report
      GET /api/report?groups=web-tier,db-tier
      GET /api/report?vms=app01,app02&tolerance=0.2
    """
    return await _run(True, groups, vms, tolerance, buffer, max_jobs, grouped)


@app.post("/api/rightsize")
async def rightsize(
    confirm: bool = Query(False, description="Must be true; VMs will be power-cycled"),
    groups: Optional[str] = Query(None, description="Comma-separated group names (default: all)"),
    vms: Optional[str] = Query(None, description="Comma-separated VM names to restrict the run to"),
    tolerance: Optional[float] = Query(None),
    buffer: Optional[float] = Query(None),
    max_jobs: Optional[int] = Query(None),
    grouped: bool = Query(True),
):
    """
    Read-write run: flagged VMs are shut down, resized and powered back on.

    Example:
      POST /api/rightsize?confirm=true&groups=web-tier
    """
    if not confirm:
        raise HTTPException(status_code=400, detail="Refusing to resize without confirm=true")
    logger.warning(f"Read-write run requested (groups={groups}, vms={vms})")
    return await _run(False, groups, vms, tolerance, buffer, max_jobs, grouped)


def main():
    """Entrypoint for the HTTP API server."""
    uvicorn.run("rightsizer.api.server:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
