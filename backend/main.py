import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

import config
from api.chat import router as chat_router
from api.routes import router
from assistant.provider import AnthropicStreamProvider
from assistant.session import SessionRegistry
from database import create_tables
from services.prices import QuoteBoard
from services.storage import ObjectStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


object_store = ObjectStore()
object_store.ensure_buckets()


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    logger.info("Database tables created / verified.")
    yield
    logger.info("Shutting down with %d assistant sessions open.", len(app.state.sessions))


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(title="Robo Advisor API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Shared state routes reach through request.app.state
app.state.sessions = SessionRegistry()
app.state.chat_provider = AnthropicStreamProvider()
app.state.quote_board = QuoteBoard()
app.state.object_store = object_store

app.include_router(router)
app.include_router(chat_router)
app.mount("/storage", StaticFiles(directory=object_store.root), name="storage")


@app.get("/health")
async def health():
    return {"status": "ok"}
