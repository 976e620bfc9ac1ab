"""
FastAPI application for the Group Quote Engine.

Run locally:
    uvicorn api:app --reload
"""

import logging
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from config import AppConfig
from exceptions import (
    QuoteError,
    MissingInputData,
    NoDataAvailable,
    FplTableUnavailable,
    PersistenceFailure,
    GroupNotFound,
    MemberNotFound,
    NoMembersInGroup,
)
from schemas import QuoteRunRequest, PreviewRequest, BenchmarkRequest

logger = logging.getLogger(__name__)

ERROR_STATUS = [
    ((GroupNotFound, MemberNotFound, NoMembersInGroup), 404),
    ((MissingInputData,), 400),
    ((NoDataAvailable, FplTableUnavailable), 422),
    ((PersistenceFailure,), 503),
]


def status_for(error: QuoteError) -> int:
    for error_types, status in ERROR_STATUS:
        if isinstance(error, error_types):
            return status
    return 500


def get_engine(request: Request):
    """Engine from app state; built from the environment on first use."""
    engine = getattr(request.app.state, 'engine', None)
    if engine is None:
        from quote_engine import build_engine
        engine = build_engine()
        request.app.state.engine = engine
    return engine


def create_app(engine=None) -> FastAPI:
    """
    Build the API.

    Args:
        engine: QuoteEngine to serve; None builds one from the environment lazily
    """
    app = FastAPI(
        title="Group Quote API",
        description="Health plan quotes and premium tax credit estimates for employer groups",
        version="1.0.0",
    )
    app.state.engine = engine

    @app.exception_handler(QuoteError)
    async def quote_error_handler(request: Request, exc: QuoteError):
        status = status_for(exc)
        if status >= 500:
            logger.error(f"API: {request.method} {request.url.path} failed: {exc.reason}")
        return JSONResponse(status_code=status, content={'error': exc.reason})

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/groups/{group_id}/quotes", status_code=201)
    def run_quotes(group_id: str, body: Optional[QuoteRunRequest] = None, engine=Depends(get_engine)):
        overrides = (body or QuoteRunRequest()).to_overrides()
        batch = engine.generate_batch(group_id, overrides)
        return batch.to_dict()

    @app.get("/groups/{group_id}/quotes")
    def latest_quotes(group_id: str, engine=Depends(get_engine)):
        batch = engine.latest(group_id)
        if batch is None:
            return JSONResponse(status_code=404, content={"error": "No quotes found for this group"})
        return batch.to_dict()

    @app.get("/groups/{group_id}/quotes/history")
    def quote_history(group_id: str, engine=Depends(get_engine)):
        return [batch.to_dict() for batch in engine.history(group_id)]

    @app.post("/groups/{group_id}/quotes/preview")
    def preview_quote(group_id: str, body: PreviewRequest, engine=Depends(get_engine)):
        entry = engine.preview_member(
            group_id, body.member_id, body.county_id,
            effective_date=body.effective_date, tobacco=body.tobacco,
        )
        return entry.to_dict()

    @app.post("/groups/{group_id}/quotes/benchmark")
    def benchmark(group_id: str, body: BenchmarkRequest, engine=Depends(get_engine)):
        return engine.benchmark_for_member(
            group_id, body.member_id, body.county_id,
            effective_date=body.effective_date, tobacco=body.tobacco,
            state_code=body.state_code,
        )

    return app


app = create_app()


if __name__ == "__main__":
    config = AppConfig.from_environment()
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format='%(asctime)s %(levelname)s: %(message)s',
    )
    uvicorn.run("api:app", host="0.0.0.0", port=8000, log_level=config.log_level.lower())
