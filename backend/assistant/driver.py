"""
Streaming reply driver for the assistant.

One ``send`` = one user turn plus one assistant turn. The assistant turn is
appended as a streaming placeholder and filled in from the provider's chunk
stream. Visible updates are coalesced to at most one per
STREAM_UPDATE_INTERVAL; the final flush is unconditional.

Event sequence yielded by ``stream``:
  user_turn → assistant_start → delta (×N, throttled) → message → company_selected (×N) → done
On provider failure ``message`` is replaced by ``error`` carrying the fallback text.
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncGenerator, AsyncIterator, Callable, Sequence

import config
from assistant.conversation_state import DocumentRef, Turn
from assistant.provider import ProviderRequest, ProviderTurn, TextStreamProvider
from assistant.session import AssistantSession

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Sorry, there was an error processing your message. Please try again."


def build_request(
    system_prompt: str,
    history: Sequence[Turn],
    user_turn: Turn,
    documents: Sequence[DocumentRef],
) -> ProviderRequest:
    """
    Provider request for ``user_turn``: a preamble turn naming (and carrying)
    every active document, then the prior visible turns, then the new turn.
    """
    if documents:
        names = ", ".join(d.filename for d in documents)
        preamble = (
            f"Documents currently loaded ({len(documents)}): {names}. "
            "Use them when they are relevant to my questions."
        )
    else:
        preamble = "No documents are currently loaded."

    turns = [ProviderTurn(role="user", text=preamble, documents=tuple(documents))]
    for turn in history:
        if turn.role == "system" or turn.is_streaming or not turn.text:
            continue
        turns.append(ProviderTurn(role=turn.role, text=turn.text))
    turns.append(ProviderTurn(role="user", text=user_turn.text))
    return ProviderRequest(system_instruction=system_prompt, turns=tuple(turns))


class UpdateThrottle:
    """Time-based gate: ``ready()`` is True at most once per ``interval``."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._interval = interval
        self._clock = clock
        self._last: float | None = None

    def ready(self) -> bool:
        now = self._clock()
        if self._last is None or now - self._last >= self._interval:
            self._last = now
            return True
        return False

    def remaining(self) -> float:
        """Seconds until the window reopens (0 when it already has)."""
        if self._last is None:
            return 0.0
        return max(0.0, self._interval - (self._clock() - self._last))

    def mark(self) -> None:
        self._last = self._clock()


_END = object()


async def _next_chunk(chunks: AsyncGenerator[str, None]):
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return _END


class StreamingResponseDriver:
    def __init__(
        self,
        session: AssistantSession,
        provider: TextStreamProvider,
        interval: float = config.STREAM_UPDATE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.provider = provider
        self.interval = interval
        self.clock = clock

    async def send(self, user_text: str, new_document: DocumentRef | None = None) -> Turn:
        """Run a full exchange and return the finished assistant turn."""
        async for _ in self.stream(user_text, new_document):
            pass
        return self.session.conversation.last

    async def stream(self, user_text: str, new_document: DocumentRef | None = None) -> AsyncIterator[dict]:
        session = self.session
        conversation = session.conversation
        session.acquire()  # raises ConversationBusyError

        try:
            if new_document is not None and not session.documents.add(new_document):
                # Filename already loaded: the stored copy is what gets sent
                new_document = session.documents.get(new_document.filename)
                logger.info(
                    "Session %s: %s already loaded, keeping the stored copy",
                    session.session_id, new_document.filename,
                )

            history = conversation.snapshot()
            user_turn = Turn(role="user", text=user_text, attached_document=new_document)
            conversation.append(user_turn)
            yield {"event": "user_turn", "data": user_turn.to_dict()}

            parts: list[str] = []
            try:
                request = build_request(
                    conversation.system_prompt, history, user_turn, session.documents.documents()
                )
                conversation.append(Turn(role="assistant", text="", is_streaming=True))
                yield {"event": "assistant_start", "data": {"session_id": session.session_id}}

                throttle = UpdateThrottle(self.interval, self.clock)
                async with contextlib.aclosing(self.provider.stream(request)) as chunks:
                    pending = False  # text accumulated but not yet shown
                    fetch: asyncio.Task | None = None
                    try:
                        while True:
                            if fetch is None:
                                fetch = asyncio.create_task(_next_chunk(chunks))
                            timeout = throttle.remaining() if pending else None
                            done, _ = await asyncio.wait({fetch}, timeout=timeout)
                            if not done:
                                # Window elapsed while the provider is quiet
                                throttle.mark()
                                pending = False
                                text = "".join(parts)
                                conversation.mutate_last(text=text)
                                yield {"event": "delta", "data": {"text": text}}
                                continue

                            chunk = fetch.result()
                            fetch = None
                            if chunk is _END:
                                break
                            parts.append(chunk)
                            if session.stop_requested:
                                logger.info("Session %s: reply stopped by user", session.session_id)
                                break
                            if throttle.ready():
                                pending = False
                                text = "".join(parts)
                                conversation.mutate_last(text=text)
                                yield {"event": "delta", "data": {"text": text}}
                            else:
                                pending = True
                    finally:
                        # The provider stream cannot be closed while a fetch is running on it
                        if fetch is not None and not fetch.done():
                            fetch.cancel()
                            await asyncio.gather(fetch, return_exceptions=True)
            except (asyncio.CancelledError, GeneratorExit):
                # Client went away mid-stream: keep what arrived
                if conversation.is_streaming:
                    conversation.mutate_last(text="".join(parts), is_streaming=False)
                logger.info("Session %s: reply cancelled", session.session_id)
                raise
            except Exception as exc:
                logger.error("Assistant reply failed for %s: %s", session.session_id, exc)
                if conversation.is_streaming:
                    conversation.mutate_last(text=FALLBACK_MESSAGE, is_streaming=False)
                else:
                    conversation.append(Turn(role="assistant", text=FALLBACK_MESSAGE))
                yield {"event": "error", "data": {"text": FALLBACK_MESSAGE}}
                yield {"event": "done", "data": {"session_id": session.session_id}}
                return

            final_text = "".join(parts)
            conversation.mutate_last(text=final_text, is_streaming=False)
            yield {"event": "message", "data": {"text": final_text}}

            for selection in self._select_companies(final_text):
                yield {"event": "company_selected", "data": selection}
            yield {"event": "done", "data": {"session_id": session.session_id}}
        finally:
            session.release()

    def _select_companies(self, text: str) -> list[dict]:
        session = self.session
        selected = []
        for match in session.ticker_filter.feed(text):
            stock = session.resolver.resolve(match)
            if stock is None:
                logger.debug("No tracked stock for %s", match.raw_token)
                continue
            selection = session.bridge.on_ticker_resolved(stock.symbol, match.company_name)
            selected.append(selection.to_dict())
        return selected
