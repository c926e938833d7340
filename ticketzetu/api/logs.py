"""Stored application log routes (query and delete)."""
# ruff: noqa: B008

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from ticketzetu.api.deps import get_current_user, get_log_handler, get_log_pipeline
from ticketzetu.logs.filters import parse_log_filters
from ticketzetu.logs.handler import LogHandler
from ticketzetu.logs.pipeline import LogPipeline
from ticketzetu.models.user import User
from ticketzetu.schemas.logs import LogOut

router = APIRouter(prefix="/logs", tags=["logs"])


@router.get("")
async def list_logs(
    request: Request,
    ip_address: str | None = Query(default=None),
    route: str | None = Query(default=None),
    message: str | None = Query(default=None),
    level: str | None = Query(default=None),
    date: str | None = Query(default=None, description="YYYY-MM-DD"),
    month: str | None = Query(default=None, description="YYYY-MM"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    _user: User = Depends(get_current_user),
    pipeline: LogPipeline = Depends(get_log_pipeline),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    filters = parse_log_filters(ip_address, route, message, level, date, month)
    records = await pipeline.query(filters, limit=limit, offset=offset)
    data = [LogOut.model_validate(r).model_dump() for r in records]
    return log.log_success(request, data, f"Retrieved {len(data)} log records")


@router.delete("")
async def delete_logs(
    request: Request,
    ip_address: str | None = Query(default=None),
    route: str | None = Query(default=None),
    message: str | None = Query(default=None),
    level: str | None = Query(default=None),
    date: str | None = Query(default=None, description="YYYY-MM-DD"),
    month: str | None = Query(default=None, description="YYYY-MM"),
    _user: User = Depends(get_current_user),
    pipeline: LogPipeline = Depends(get_log_pipeline),
    log: LogHandler = Depends(get_log_handler),
) -> JSONResponse:
    filters = parse_log_filters(ip_address, route, message, level, date, month)
    deleted = await pipeline.delete(filters)
    return log.log_success(request, {"deleted": deleted}, f"Deleted {deleted} log records", should_log=True)
