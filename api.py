"""
FastAPI server for the Texas TDSP Resolution Engine.

Static tables load at import; the engine itself is built once on startup
and shared across requests. Endpoints are plain (sync) functions so the
blocking upstream calls run on the server's worker threads.
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from tdsp_engine.config import Config
from tdsp_engine.engine import ResolutionEngine
from tdsp_engine.errors import ErrorKind, InvalidAddress, NoMatchFound, ResolutionError
from tdsp_engine.models import MunicipalUtility
from tdsp_engine.validation import validate_address, validate_usage, validate_zip

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("api")

# ---------------------------------------------------------------------------
# Global engine (built once at startup)
# ---------------------------------------------------------------------------
engine: Optional[ResolutionEngine] = None


def load_dotenv(env_path: Path):
    """Load KEY=VALUE lines from a .env file without overriding the environment."""
    if not env_path.exists():
        return
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            key, val = line.split("=", 1)
            os.environ.setdefault(key.strip(), val.strip())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine on startup."""
    global engine
    t0 = time.time()
    load_dotenv(Path(__file__).parent / ".env")

    config = Config.from_env()
    engine = ResolutionEngine(config)
    logger.info(f"Engine ready in {time.time() - t0:.1f}s (cache backend: {config.cache_backend})")

    yield

    close = getattr(engine.cache, "close", None)
    if close:
        close()
    logger.info("Shutdown complete.")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Texas TDSP Resolution API",
    description="Resolve the transmission/distribution utility (TDSP) for a Texas ZIP code or address.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_INPUT_ERRORS = {
    ErrorKind.INVALID_ZIP_FORMAT,
    ErrorKind.NON_TEXAS_ZIP,
    ErrorKind.INVALID_ADDRESS,
    ErrorKind.INVALID_USAGE,
}


def status_for_error(e: ResolutionError) -> int:
    if e.kind in _INPUT_ERRORS:
        return 400
    if isinstance(e, NoMatchFound) or e.context.get("status") == 404:
        return 404
    if e.retryable:
        return 503
    return 502


@app.exception_handler(ResolutionError)
async def resolution_error_handler(request: Request, exc: ResolutionError):
    status = status_for_error(exc)
    if status >= 500:
        logger.warning(f"{request.url.path}: {exc.kind.value}: {exc.message}")
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------
class AnalyzeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    zip_code: Any = Field(..., alias="zipCode", description="5-digit Texas ZIP code")
    address: Optional[str] = Field(None, description="Street address (optional)")
    usage: Any = Field(None, description="Monthly usage in kWh (100-5000, default 1000)")
    return_alternatives: bool = Field(True, alias="returnAlternatives")


class EsiidLookupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    address: str = Field(..., description="Street address")
    zip_code: Any = Field(..., alias="zipCode")
    usage: Any = None
    return_alternatives: bool = Field(True, alias="returnAlternatives")


class HealthResponse(BaseModel):
    status: str
    engine_loaded: bool
    uptime_seconds: float
    tables: Optional[dict] = None
    esiid_api: Optional[dict] = None


_start_time = time.time()


def _require_engine() -> ResolutionEngine:
    if not engine:
        raise HTTPException(status_code=503, detail="Engine is still loading. Try again shortly.")
    return engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.get("/health", response_model=HealthResponse)
def health(deep: bool = Query(False, description="Also probe the ESIID registry")):
    """Health check. ``deep=true`` also checks the address registry."""
    return HealthResponse(
        status="ok" if engine else "loading",
        engine_loaded=engine is not None,
        uptime_seconds=round(time.time() - _start_time, 1),
        tables=engine.tables.stats if engine else None,
        esiid_api=engine.address_resolver.client.health_check() if engine and deep else None,
    )


@app.get("/analyze")
def analyze(
    zip_code: str = Query(..., alias="zip", description="5-digit Texas ZIP code"),
    address: Optional[str] = Query(None, description="Street address (optional)"),
    usage: Optional[str] = Query(None, description="Monthly usage in kWh"),
    return_alternatives: bool = Query(True),
):
    """
    Resolve the TDSP for a ZIP code.

    ``status`` is ``resolved``, ``municipal_utility`` or ``not_found``.
    Invalid input gets a 400 with a typed error body.
    """
    eng = _require_engine()
    outcome = eng.analyze(zip_code, address=address, usage=usage,
                          return_alternatives=return_alternatives)
    return JSONResponse(content=outcome.to_dict())


@app.post("/analyze")
def analyze_post(req: AnalyzeRequest):
    """POST variant of /analyze (camelCase JSON body)."""
    eng = _require_engine()
    outcome = eng.analyze(req.zip_code, address=req.address, usage=req.usage,
                          return_alternatives=req.return_alternatives)
    return JSONResponse(content=outcome.to_dict())


@app.post("/lookup-esiid")
def lookup_esiid(req: EsiidLookupRequest):
    """
    Address-level lookup for the address confirmation step.

    404 when the registry has no match for the address, 503 when the
    registry is unavailable (retry later).
    """
    eng = _require_engine()
    zip_code = validate_zip(req.zip_code)
    address = validate_address(req.address)
    if address is None:
        raise InvalidAddress("Address is required for an ESIID lookup", {"address": req.address})
    usage = validate_usage(req.usage, eng.config.default_usage)

    municipal: Optional[MunicipalUtility] = eng.tables.municipal(zip_code)
    if municipal:
        return JSONResponse(content=municipal.to_dict())

    result = eng.address_resolver.resolve_address(address, zip_code, usage)
    if not req.return_alternatives:
        result = result.without_alternatives()

    boundary = eng.tables.boundary(zip_code)
    content = result.to_dict()
    content["split_zip_info"] = {
        "isKnownSplitZip": boundary is not None,
        "boundaryType": boundary.precision.value if boundary else None,
        "notes": boundary.notes if boundary else None,
    }
    return JSONResponse(content=content)


@app.get("/esiid/{esiid}")
def esiid_details(esiid: str):
    """Full registry record for one service point."""
    eng = _require_engine()
    return JSONResponse(content=eng.address_resolver.details(esiid).to_dict())


@app.get("/boundary-zips")
def boundary_zips():
    """The boundary ZIP registry with summary statistics."""
    eng = _require_engine()
    entries = [
        {
            "zip_code": b.zip_code,
            "primary": b.primary.to_dict(),
            "alternatives": [u.to_dict() for u in b.alternatives],
            "requires_address": b.requires_address,
            "precision": b.precision.value,
            "notes": b.notes,
        }
        for b in sorted(eng.tables.boundary_zips.values(), key=lambda b: b.zip_code)
    ]
    return JSONResponse(content={"boundary_zips": entries, "stats": eng.tables.stats})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.environ.get("PORT", "8000")))
