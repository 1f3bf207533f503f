import datetime
import uuid
from collections.abc import AsyncGenerator

from sqlalchemy import DateTime, String, Text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

import config

engine = create_async_engine(config.DATABASE_URL, echo=False)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def _new_id() -> str:
    return str(uuid.uuid4())


class _ReportColumns:
    id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str] = mapped_column(Text, default="")
    stock_symbol: Mapped[str] = mapped_column(String, index=True)
    report_type: Mapped[str] = mapped_column(String)  # quarterly|annual|analysis|research
    file_url: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, default=datetime.datetime.utcnow, index=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "stock_symbol": self.stock_symbol,
            "report_type": self.report_type,
            "file_url": self.file_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class MarketReport(_ReportColumns, Base):
    __tablename__ = "market_reports"


class ResearchReport(_ReportColumns, Base):
    __tablename__ = "research_reports"


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
