"""Streaming driver: turn lifecycle, throttling, failures and selection."""

import asyncio
import base64

import pytest

from assistant.conversation_state import DocumentRef, Turn
from assistant.driver import FALLBACK_MESSAGE, StreamingResponseDriver, UpdateThrottle, build_request
from assistant.session import ConversationBusyError
from conftest import ManualClock, ScriptedProvider


def _collect(driver, text, doc=None):
    async def run():
        return [e async for e in driver.stream(text, doc)]

    return asyncio.run(run())


def _names(events):
    return [e["event"] for e in events]


def test_completed_send(session):
    provider = ScriptedProvider(["Hel", "lo ", "there"])
    driver = StreamingResponseDriver(session, provider, interval=0.0)

    reply = asyncio.run(driver.send("hi"))

    assert reply == Turn(role="assistant", text="Hello there")
    roles = [t.role for t in session.conversation.snapshot()]
    assert roles == ["system", "assistant", "user", "assistant"]
    assert not session.in_flight


def test_event_sequence(session):
    driver = StreamingResponseDriver(session, ScriptedProvider(["a", "b"]), interval=0.0)
    names = _names(_collect(driver, "hi"))
    assert names[:2] == ["user_turn", "assistant_start"]
    assert names[-2:] == ["message", "done"]
    assert set(names[2:-2]) == {"delta"}


def test_provider_failure_writes_fallback(session):
    provider = ScriptedProvider(["partial "], fail_after=1)
    driver = StreamingResponseDriver(session, provider, interval=0.0)

    events = _collect(driver, "hi")

    assert _names(events)[-2:] == ["error", "done"]
    assert events[-2]["data"]["text"] == FALLBACK_MESSAGE
    last = session.conversation.last
    assert last.text == FALLBACK_MESSAGE
    assert not last.is_streaming
    assert not session.in_flight


def test_failure_before_first_chunk(session):
    driver = StreamingResponseDriver(session, ScriptedProvider([], fail_after=0), interval=0.0)
    reply = asyncio.run(driver.send("hi"))
    assert reply.text == FALLBACK_MESSAGE
    assert len(session.conversation) == 4


def test_updates_are_throttled_but_final_text_complete(session):
    clock = ManualClock()
    chunks = [f"w{i} " for i in range(40)]
    provider = ScriptedProvider(chunks, clock=clock, step=0.01)
    driver = StreamingResponseDriver(session, provider, interval=0.05, clock=clock)

    events = _collect(driver, "long answer please")

    deltas = [e for e in events if e["event"] == "delta"]
    assert 1 <= len(deltas) < len(chunks)
    # each delta carries the full text so far
    texts = [d["data"]["text"] for d in deltas]
    assert all(b.startswith(a) for a, b in zip(texts, texts[1:]))
    message = next(e for e in events if e["event"] == "message")
    assert message["data"]["text"] == "".join(chunks)
    assert session.conversation.last.text == "".join(chunks)


def test_throttle_gate():
    clock = ManualClock()
    throttle = UpdateThrottle(0.05, clock)
    assert throttle.ready()
    clock.advance(0.02)
    assert not throttle.ready()
    clock.advance(0.03)
    assert throttle.ready()


def test_concurrent_send_rejected(session):
    driver = StreamingResponseDriver(session, ScriptedProvider(["one", "two"]), interval=0.0)

    async def run():
        stream = driver.stream("first")
        first = await stream.__anext__()
        assert first["event"] == "user_turn"
        with pytest.raises(ConversationBusyError):
            await driver.send("second")
        rest = [e async for e in stream]
        return rest

    rest = asyncio.run(run())
    assert _names(rest)[-1] == "done"
    users = [t.text for t in session.conversation.snapshot() if t.role == "user"]
    assert users == ["first"]


def test_stop_keeps_partial_text(session):
    driver = StreamingResponseDriver(session, ScriptedProvider(["one ", "two ", "three"]), interval=0.0)

    async def run():
        events = []
        async for event in driver.stream("count"):
            events.append(event)
            if event["event"] == "delta":
                session.request_stop()
        return events

    events = asyncio.run(run())
    assert _names(events)[-1] == "done"
    last = session.conversation.last
    assert not last.is_streaming
    assert last.text == "one two "
    assert not session.stop_requested


def test_closing_stream_finalizes_partial_turn(session):
    driver = StreamingResponseDriver(session, ScriptedProvider(["one ", "two "]), interval=0.0)

    async def run():
        stream = driver.stream("count")
        async for event in stream:
            if event["event"] == "delta":
                break
        await stream.aclose()

    asyncio.run(run())
    last = session.conversation.last
    assert last.text == "one "
    assert not last.is_streaming
    assert not session.in_flight


def test_tagged_company_is_selected(session):
    seen = []
    session.bridge.subscribe(seen.append)
    provider = ScriptedProvider(["Microsoft ", "looks solid. ", "!MSFT, Microsoft ", "Corporation!"])
    driver = StreamingResponseDriver(session, provider, interval=0.0)

    events = _collect(driver, "What about Microsoft?")

    selected = [e["data"] for e in events if e["event"] == "company_selected"]
    assert selected == [{"ticker_symbol": "MSFT", "company_name": "Microsoft Corporation"}]
    assert session.bridge.current.ticker_symbol == "MSFT"
    assert [s.ticker_symbol for s in seen] == ["MSFT"]


def test_repeated_tag_selects_once_per_session(session):
    driver = StreamingResponseDriver(
        session, ScriptedProvider(["!MSFT, Microsoft Corporation!"]), interval=0.0
    )
    first = _collect(driver, "one")
    second = _collect(driver, "two")
    assert "company_selected" in _names(first)
    assert "company_selected" not in _names(second)


def test_unknown_company_is_ignored(session):
    driver = StreamingResponseDriver(
        session, ScriptedProvider(["!ZZZZ, Nonexistent Holdings!"]), interval=0.0
    )
    events = _collect(driver, "hi")
    assert "company_selected" not in _names(events)
    assert session.bridge.current is None


def test_new_document_is_kept_and_sent(session):
    provider = ScriptedProvider(["ok"])
    driver = StreamingResponseDriver(session, provider, interval=0.0)
    doc = DocumentRef(filename="a.pdf", content=base64.b64encode(b"%PDF").decode("ascii"))

    asyncio.run(driver.send("read it", doc))
    asyncio.run(driver.send("and again"))

    assert session.documents.filenames() == ["a.pdf"]
    second = provider.requests[1]
    assert second.turns[0].documents == (doc,)
    assert "a.pdf" in second.turns[0].text


def test_reused_filename_sends_stored_copy(session):
    provider = ScriptedProvider(["ok"])
    driver = StreamingResponseDriver(session, provider, interval=0.0)
    first = DocumentRef(filename="a.pdf", content=base64.b64encode(b"first").decode("ascii"))
    second = DocumentRef(filename="a.pdf", content=base64.b64encode(b"second").decode("ascii"))

    asyncio.run(driver.send("read it", first))
    events = _collect(driver, "read the new one", second)

    user_turn = [t for t in session.conversation.snapshot() if t.role == "user"][-1]
    assert user_turn.attached_document == first
    assert events[0]["data"]["attached_document"]["size_bytes"] == len(b"first")
    assert provider.requests[1].turns[0].documents == (first,)


class QuietProvider:
    """Sends two chunks, goes quiet, then sends one more."""

    def __init__(self, pause: float = 0.3):
        self.pause = pause
        self.sent: list[str] = []
        self.closed = False

    async def stream(self, request):
        try:
            for chunk in ("a", "b"):
                self.sent.append(chunk)
                yield chunk
            await asyncio.sleep(self.pause)
            self.sent.append("c")
            yield "c"
        finally:
            self.closed = True


def test_pending_text_shown_while_provider_is_quiet(session):
    provider = QuietProvider()
    driver = StreamingResponseDriver(session, provider, interval=0.05)

    async def run():
        seen = []
        async for event in driver.stream("hi"):
            if event["event"] == "delta":
                seen.append((event["data"]["text"], list(provider.sent)))
        return seen

    seen = asyncio.run(run())
    # "ab" reaches the client before the provider sends "c"
    assert ("ab", ["a", "b"]) in seen
    assert seen[-1][0] == "abc"
    assert session.conversation.last.text == "abc"


def test_closing_during_quiet_period_closes_provider(session):
    provider = QuietProvider(pause=5.0)
    driver = StreamingResponseDriver(session, provider, interval=0.05)

    async def run():
        stream = driver.stream("hi")
        async for event in stream:
            if event["event"] == "delta" and event["data"]["text"] == "ab":
                break
        await stream.aclose()

    asyncio.run(run())
    assert provider.closed
    last = session.conversation.last
    assert last.text == "ab"
    assert not last.is_streaming
    assert not session.in_flight


def test_stop_closes_provider_before_done(session):
    provider = ScriptedProvider(["one ", "two ", "three"])
    driver = StreamingResponseDriver(session, provider, interval=0.0)

    async def run():
        closed_at_done = None
        async for event in driver.stream("count"):
            if event["event"] == "delta":
                session.request_stop()
            if event["event"] == "done":
                closed_at_done = provider.closed
        return closed_at_done

    assert asyncio.run(run()) is True


def test_build_request_without_documents():
    history = (
        Turn(role="system", text="sys"),
        Turn(role="assistant", text="hello"),
        Turn(role="user", text="q1"),
        Turn(role="assistant", text=""),
        Turn(role="assistant", text="a1"),
    )
    request = build_request("sys", history, Turn(role="user", text="q2"), [])
    assert request.system_instruction == "sys"
    assert [(t.role, t.text) for t in request.turns] == [
        ("user", "No documents are currently loaded."),
        ("assistant", "hello"),
        ("user", "q1"),
        ("assistant", "a1"),
        ("user", "q2"),
    ]


def test_build_request_lists_every_document():
    docs = [DocumentRef("a.pdf", "QQ=="), DocumentRef("b.txt", "Qg==", "text/plain")]
    request = build_request("sys", (), Turn(role="user", text="q"), docs)
    preamble = request.turns[0]
    assert preamble.role == "user"
    assert preamble.documents == tuple(docs)
    assert "a.pdf" in preamble.text and "b.txt" in preamble.text
