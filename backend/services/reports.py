"""
Report library: metadata rows in SQLite, files in the object store.

Two collections exist: quarterly/market reports ("quarter", table
market_reports) and research reports ("research", table research_reports).
"""

import logging
import re
import uuid
from typing import Literal
from urllib.parse import unquote

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import MarketReport, ResearchReport
from services.storage import ObjectStore

logger = logging.getLogger(__name__)

ReportKind = Literal["quarter", "research"]

MARKET_BUCKET = "marketreports"
RESEARCH_BUCKET = "research"

_SYMBOL_IN_NAME = re.compile(r"\(([A-Z]+)\)")
_EXTENSION = re.compile(r"\.[^/.]+$")


def _model_for(kind: ReportKind):
    return MarketReport if kind == "quarter" else ResearchReport


def extract_stock_symbol(filename: str) -> str:
    """'Apple Q3 (AAPL).pdf' -> 'AAPL'."""
    match = _SYMBOL_IN_NAME.search(filename)
    return match.group(1) if match else "UNKNOWN"


def determine_report_type(filename: str) -> str:
    lower = filename.lower()
    if "quarterly" in lower or any(q in lower for q in ("q1", "q2", "q3", "q4")):
        return "quarterly"
    if "annual" in lower or "year" in lower:
        return "annual"
    if "analysis" in lower or "review" in lower:
        return "analysis"
    return "research"


def strip_extension(filename: str) -> str:
    return _EXTENSION.sub("", filename)


def file_name_from_url(url: str) -> str:
    return unquote(url.rsplit("/", 1)[-1])


async def process_all_files(db: AsyncSession, store: ObjectStore, bucket: str = MARKET_BUCKET) -> dict:
    """Index every file in ``bucket`` into market_reports."""
    files = store.list_objects(bucket)
    for name in files:
        symbol = extract_stock_symbol(name)
        report_type = determine_report_type(name)
        db.add(
            MarketReport(
                title=strip_extension(name),
                description=f"Report for {symbol} - {report_type} analysis",
                stock_symbol=symbol,
                report_type=report_type,
                file_url=store.public_url(bucket, name),
            )
        )
    await db.commit()
    logger.info("Indexed %d files from bucket %s", len(files), bucket)
    return {"success": True, "message": f"Processed {len(files)} files"}


async def _backfill_from_bucket(db: AsyncSession, store: ObjectStore, kind: ReportKind) -> list:
    model = _model_for(kind)
    names = store.list_objects(RESEARCH_BUCKET)
    if not names:
        logger.info("No files found in bucket %s", RESEARCH_BUCKET)
        return []

    rows = []
    for name in names:
        title = strip_extension(name)
        row = model(
            title=title,
            description=f"Research Report for {title}",
            stock_symbol=title,
            report_type="research",
            file_url=store.public_url(RESEARCH_BUCKET, name),
        )
        db.add(row)
        rows.append(row)
    await db.commit()
    logger.info("Backfilled %d %s reports from bucket", len(rows), kind)
    return rows


async def search_reports(db: AsyncSession, store: ObjectStore, kind: ReportKind = "quarter") -> list[dict]:
    """All reports of ``kind``, newest first. An empty table is backfilled from storage."""
    model = _model_for(kind)
    result = await db.execute(select(model).order_by(model.created_at.desc()))
    rows = list(result.scalars().all())
    if not rows:
        rows = await _backfill_from_bucket(db, store, kind)
    return [r.to_dict() for r in rows]


async def get_report(db: AsyncSession, report_id: str, kind: ReportKind = "quarter") -> dict | None:
    model = _model_for(kind)
    result = await db.execute(select(model).where(model.id == report_id))
    row = result.scalar_one_or_none()
    return row.to_dict() if row else None


def filter_reports(reports: list[dict], query: str = "", letter: str | None = None) -> list[dict]:
    """
    Letter filter: title, symbol or file name starts with ``letter``.
    Text filter: any whitespace-separated term appears in symbol, title,
    description, file name or report type (case-insensitive).
    """
    results = list(reports)

    if letter:
        letter = letter.upper()
        results = [
            r for r in results
            if r["title"].upper().startswith(letter)
            or r["stock_symbol"].upper().startswith(letter)
            or file_name_from_url(r["file_url"]).upper().startswith(letter)
        ]

    terms = [t for t in query.lower().split() if t]
    if terms:
        def _matches(r: dict) -> bool:
            fields = (
                r["stock_symbol"].lower(),
                r["title"].lower(),
                (r.get("description") or "").lower(),
                file_name_from_url(r["file_url"]).lower(),
                r["report_type"].lower(),
            )
            return any(term in field for term in terms for field in fields)

        results = [r for r in results if _matches(r)]

    return results


async def upload_report(
    db: AsyncSession,
    store: ObjectStore,
    filename: str,
    data: bytes,
    *,
    title: str,
    description: str,
    stock_symbol: str,
    report_type: str,
    kind: ReportKind = "quarter",
) -> dict:
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    path = f"reports/{uuid.uuid4().hex}.{ext}"
    file_url = await store.upload(RESEARCH_BUCKET, path, data)

    row = _model_for(kind)(
        title=title,
        description=description,
        stock_symbol=stock_symbol,
        report_type=report_type,
        file_url=file_url,
    )
    db.add(row)
    await db.commit()
    return row.to_dict()
