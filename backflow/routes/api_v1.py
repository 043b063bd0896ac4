"""
Public REST API v1

Read-only access to invoices and test reports for integrations,
authenticated by X-API-Key. Every call is recorded in api_usage_logs.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from ..auth import ApiKeyContext, get_api_key_context, log_api_usage
from ..database import get_db
from ..domain.invoices.repository import InvoiceRepository
from ..domain.invoices.schemas import InvoiceListResponse
from ..domain.test_reports.repository import TestReportRepository
from ..domain.test_reports.schemas import TestReportListResponse
from ..shared.pagination import paginate
from ..shared.validators import parse_iso_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Public API v1"])


def _date_range(ctx: ApiKeyContext, db: Session, request: Request, date_from, date_to):
    try:
        return parse_iso_date(date_from, "date_from"), parse_iso_date(date_to, "date_to")
    except ValueError as e:
        log_api_usage(db, ctx.api_key, request, 400)
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get("/invoices", response_model=InvoiceListResponse)
async def list_invoices(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    customer_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    ctx: ApiKeyContext = Depends(get_api_key_context),
    db: Session = Depends(get_db),
):
    start, end = _date_range(ctx, db, request, date_from, date_to)
    query = InvoiceRepository.filtered_query(db, ctx.company_id, status, customer_id, start, end)
    items, pagination = paginate(query, page, limit)
    log_api_usage(db, ctx.api_key, request, 200)
    logger.info(f"🔌 API v1 invoices: company {ctx.company_id}, {len(items)} row(s)")
    return {"data": items, "pagination": pagination}


@router.get("/reports", response_model=TestReportListResponse)
async def list_reports(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    customer_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[str] = Query(None),
    date_to: Optional[str] = Query(None),
    ctx: ApiKeyContext = Depends(get_api_key_context),
    db: Session = Depends(get_db),
):
    start, end = _date_range(ctx, db, request, date_from, date_to)
    query = TestReportRepository.filtered_query(db, ctx.company_id, customer_id, None, status, start, end)
    items, pagination = paginate(query, page, limit)
    log_api_usage(db, ctx.api_key, request, 200)
    logger.info(f"🔌 API v1 reports: company {ctx.company_id}, {len(items)} row(s)")
    return {"data": items, "pagination": pagination}
