"""
MA Leaderboard - FastAPI Backend
Serves contract leaderboards, state rollups and cohort comparisons built
from the MA store's Parquet tables.
"""

import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from db import ConfigurationError, QueryError
from api.schemas import (
    LeaderboardRequest,
    normalize_contract_selection,
    normalize_leaderboard_request,
    normalize_state,
    parse_boolean,
    parse_measure_code,
)
from api.services import (
    LeaderboardService,
    StatesService,
    get_leaderboard_service,
    get_states_service,
)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="MA Leaderboard API",
    description="Medicare Advantage contract leaderboards and state comparisons",
    version="1.0.0"
)

# CORS for Next.js frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Error Mapping ===

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error("Store configuration error on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"error": "Data store not configured", "code": "STORE_CONFIG_MISSING"},
    )


@app.exception_handler(QueryError)
async def query_error_handler(request: Request, exc: QueryError):
    logger.exception("Query failed on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Failed to query the data store", "details": str(exc)},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


def _selection_from_query(
    plan_type_group: Optional[str],
    contract_series: Optional[str],
    enrollment_level: Optional[str],
    blue_only: Optional[str],
):
    return normalize_contract_selection({
        'plan_type_group': plan_type_group,
        'contract_series': contract_series,
        'enrollment_level': enrollment_level,
        'blue_only': parse_boolean(blue_only),
    })


# === Leaderboard Endpoints ===

@app.post("/api/leaderboard")
def leaderboard(
    payload: LeaderboardRequest,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Contract or organization leaderboard for the requested filters."""
    request = normalize_leaderboard_request(payload)

    if request.mode == "contract":
        return service.contract_leaderboard(
            request.contract_selection,
            request.top_limit,
            measure_codes=request.measure_codes,
            year=request.year,
            include_measures=request.include_measures,
        )
    return service.organization_leaderboard(
        request.organization_selection,
        request.top_limit,
        measure_codes=request.measure_codes,
        year=request.year,
        include_measures=request.include_measures,
    )


@app.get("/api/leaderboard/states")
def leaderboard_states(
    measure: Optional[str] = Query(None, description="Measure code, e.g. C01"),
    plan_type_group: Optional[str] = Query(None),
    contract_series: Optional[str] = Query(None),
    enrollment_level: Optional[str] = Query(None),
    blue_only: Optional[str] = Query(None),
    year: Optional[int] = Query(None, description="Enrollment year ceiling"),
    service: StatesService = Depends(get_states_service),
):
    """Per-state rollup of state-eligible contracts."""
    selection = _selection_from_query(plan_type_group, contract_series, enrollment_level, blue_only)
    return service.state_rollup(selection, measure_code=parse_measure_code(measure), year=year)


# === Map Endpoints ===

@app.get("/api/maps/contracts")
def map_contracts(
    state: Optional[str] = Query(None, description="Two-letter state code or US"),
    contract_id: Optional[str] = Query(None),
    measure: Optional[str] = Query(None),
    plan_type_group: Optional[str] = Query(None),
    contract_series: Optional[str] = Query(None),
    enrollment_level: Optional[str] = Query(None),
    blue_only: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    service: StatesService = Depends(get_states_service),
):
    """Cohort comparison for a state (or the nation) with an optional target contract."""
    code = normalize_state(state)
    if not code:
        raise HTTPException(status_code=400, detail="state query parameter is required")

    selection = _selection_from_query(plan_type_group, contract_series, enrollment_level, blue_only)
    comparison = service.contract_comparison(
        code,
        selection,
        contract_id=(contract_id or "").strip().upper() or None,
        measure_code=parse_measure_code(measure),
        year=year,
    )
    if comparison is None:
        raise HTTPException(status_code=404, detail="No enrollment period available")
    return comparison


# === Measure Endpoints ===

@app.get("/api/measures/{code}")
def measure_overview(
    code: str,
    plan_type_group: Optional[str] = Query(None),
    contract_series: Optional[str] = Query(None),
    enrollment_level: Optional[str] = Query(None),
    blue_only: Optional[str] = Query(None),
    year: Optional[int] = Query(None),
    service: StatesService = Depends(get_states_service),
):
    """National summary statistics for one measure."""
    measure_code = parse_measure_code(code)
    selection = _selection_from_query(plan_type_group, contract_series, enrollment_level, blue_only)
    summary = service.measure_overview(measure_code, selection, year=year)
    if summary is None:
        raise HTTPException(status_code=404, detail=f"Measure '{measure_code}' has no associated data")
    return summary


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
