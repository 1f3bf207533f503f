"""
Per-browser-session assistant state, kept in memory for the life of the
page session (no persistence).
"""

import datetime
import logging
import time
import uuid
from collections.abc import Callable

import config
from assistant.conversation_state import ConversationState
from assistant.documents import DocumentMemoryStore
from assistant.selection import SelectionBridge
from assistant.ticker_filter import TickerExtractionFilter, TickerResolver

logger = logging.getLogger(__name__)

GREETING = "Hi! I'm your AI Robo Advisor. How can I help you today?"

SYSTEM_PROMPT = """You are a Robo Advisor for an investment dashboard.
You answer questions about listed companies, markets and the reports the user uploads.

Rules:
- Ground answers in the uploaded documents when they are relevant and say which document you used
- Be concise and concrete; use figures from the documents or fundamentals where possible
- When your answer is mainly about one company, tag it once as !TICKER, Company Name!
  e.g. !MSFT, Microsoft Corporation!
- Use the exact company name as it would appear on a stock exchange listing
- Never present an answer as personalised financial advice"""


class ConversationBusyError(RuntimeError):
    """A reply is still streaming for this session."""


class AssistantSession:
    def __init__(
        self,
        session_id: str,
        resolver: TickerResolver,
        system_prompt: str = SYSTEM_PROMPT,
        greeting: str = GREETING,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session_id = session_id
        self.conversation = ConversationState(system_prompt, greeting)
        self.documents = DocumentMemoryStore()
        self.ticker_filter = TickerExtractionFilter()
        self.resolver = resolver
        self.bridge = SelectionBridge()
        self.created_at = datetime.datetime.utcnow()
        self._in_flight = False
        self._stop_requested = False
        self._clock = clock
        self.last_active = clock()

    def touch(self) -> None:
        self.last_active = self._clock()

    # ── single-flight guard ─────────────────────────────────────────────────

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    def acquire(self) -> None:
        if self._in_flight:
            raise ConversationBusyError(f"Session {self.session_id} is already answering")
        self._in_flight = True
        self._stop_requested = False

    def release(self) -> None:
        self._in_flight = False
        self._stop_requested = False
        self.touch()

    def request_stop(self) -> bool:
        """Ask the streaming reply to finish early. False when nothing is streaming."""
        if not self._in_flight:
            return False
        self._stop_requested = True
        return True

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "messages": self.conversation.visible_turns(),
            "documents": [d.describe() for d in self.documents.documents()],
            "selection": self.bridge.current.to_dict() if self.bridge.current else None,
            "in_flight": self._in_flight,
            "created_at": self.created_at.isoformat(),
        }


class SessionRegistry:
    """
    In-memory sessions. A session idle for ``idle_ttl`` seconds (and not
    streaming) is dropped on the next ``create``/``get``.
    """

    def __init__(
        self,
        fuzzy_company_match: bool = config.FUZZY_COMPANY_MATCH,
        idle_ttl: float = config.SESSION_IDLE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: dict[str, AssistantSession] = {}
        self._resolver = TickerResolver(fuzzy=fuzzy_company_match)
        self._idle_ttl = idle_ttl
        self._clock = clock

    def _evict_idle(self) -> None:
        now = self._clock()
        expired = [
            sid for sid, s in self._sessions.items()
            if not s.in_flight and now - s.last_active >= self._idle_ttl
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("Evicted %d idle assistant sessions", len(expired))

    def create(self) -> AssistantSession:
        self._evict_idle()
        session_id = f"chat-{uuid.uuid4().hex[:12]}"
        session = AssistantSession(session_id, self._resolver, clock=self._clock)
        self._sessions[session_id] = session
        logger.info("Created assistant session %s", session_id)
        return session

    def get(self, session_id: str) -> AssistantSession | None:
        self._evict_idle()
        session = self._sessions.get(session_id)
        if session is not None:
            session.touch()
        return session

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.request_stop()
        return session is not None

    def __len__(self) -> int:
        return len(self._sessions)
