import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from services.fundamentals import FundamentalsError, get_company_overview, summarize_overview
from services.prices import UnknownTickerError, export_csv, get_price_history, get_quote
from services.recommendation import get_ai_recommendation
from services.reports import filter_reports, process_all_files, search_reports, upload_report
from services.universe import STOCK_UNIVERSE, search_universe

logger = logging.getLogger(__name__)

router = APIRouter()


# ===========================================================================
# MARKET DATA ROUTES
# ===========================================================================

@router.get("/markets/stocks")
async def market_stocks(request: Request):
    """Ticker board: last known quote for every tracked stock."""
    board = request.app.state.quote_board
    return {"stocks": board.snapshot(), "last_update": board.last_update_display()}


@router.post("/markets/refresh")
async def market_refresh(request: Request):
    board = request.app.state.quote_board
    result = await board.refresh()
    if result["updated"] == 0 and result["failed"]:
        # Previous quotes stay on the board; the client shows a notification
        result["error"] = "Error fetching stock data. Please try again later."
    return {**result, "stocks": board.snapshot()}


@router.get("/markets/search")
async def market_search(q: str):
    if not q.strip():
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")
    return [s.to_dict() for s in search_universe(q)]


@router.get("/markets/quote/{symbol}")
async def market_quote(symbol: str):
    try:
        return await get_quote(symbol)
    except UnknownTickerError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/markets/chart/{symbol}")
async def market_chart(symbol: str, period: str = "1mo"):
    try:
        return await get_price_history(symbol, period)
    except UnknownTickerError as exc:
        raise HTTPException(status_code=404, detail=str(exc))


@router.get("/markets/export")
async def market_export(request: Request):
    board = request.app.state.quote_board
    csv_text = export_csv(board.snapshot())
    stamp = board.last_update.strftime("%Y%m%dT%H%M%S") if board.last_update else "empty"
    return Response(
        content=csv_text,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="stock_data_{stamp}.csv"'},
    )


# ===========================================================================
# COMPANY ROUTES
# ===========================================================================

@router.get("/company/{symbol}/overview")
async def company_overview(symbol: str):
    try:
        overview = await get_company_overview(symbol)
    except FundamentalsError as exc:
        logger.error("Overview for %s failed: %s", symbol, exc)
        raise HTTPException(status_code=502, detail="Error fetching data. Please try again later.")
    return summarize_overview(overview)


@router.get("/company/{symbol}/recommendation")
async def company_recommendation(symbol: str):
    return await get_ai_recommendation(symbol)


@router.get("/universe")
async def universe():
    return [s.to_dict() for s in STOCK_UNIVERSE]


# ===========================================================================
# REPORT LIBRARY ROUTES
# ===========================================================================

@router.get("/reports")
async def list_reports(
    request: Request,
    type: Literal["quarter", "research"] = "quarter",
    q: str = "",
    letter: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        reports = await search_reports(db, request.app.state.object_store, type)
    except SQLAlchemyError as exc:
        logger.error("Report search failed: %s", exc)
        raise HTTPException(status_code=500, detail="Error loading reports. Please try again.")
    return filter_reports(reports, q, letter)


@router.post("/reports/process")
async def process_reports(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        return await process_all_files(db, request.app.state.object_store)
    except SQLAlchemyError as exc:
        logger.error("Processing report files failed: %s", exc)
        raise HTTPException(status_code=500, detail="Error processing files.")


@router.post("/reports/upload")
async def upload_report_file(
    request: Request,
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(""),
    stock_symbol: str = Form(...),
    report_type: str = Form("research"),
    type: Literal["quarter", "research"] = Form("quarter"),
    db: AsyncSession = Depends(get_db),
):
    data = await file.read()
    try:
        return await upload_report(
            db,
            request.app.state.object_store,
            file.filename or "report.pdf",
            data,
            title=title,
            description=description,
            stock_symbol=stock_symbol,
            report_type=report_type,
            kind=type,
        )
    except SQLAlchemyError as exc:
        logger.error("Report upload failed: %s", exc)
        raise HTTPException(status_code=500, detail="Error uploading report.")
