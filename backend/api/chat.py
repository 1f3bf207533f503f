import base64
import binascii
import json
import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
from sse_starlette.sse import EventSourceResponse

from assistant.conversation_state import DocumentRef
from assistant.driver import StreamingResponseDriver
from assistant.session import AssistantSession, ConversationBusyError
from database import get_db
from services.reports import file_name_from_url, get_report
from services.storage import StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat")


def _get_session(request: Request, session_id: str) -> AssistantSession:
    session = request.app.state.sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return session


def _decode_document(filename: str, content_b64: str, mime_type: str) -> DocumentRef:
    try:
        base64.b64decode(content_b64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail=f"Document {filename!r} is not valid base64")
    return DocumentRef(filename=filename, content=content_b64, mime_type=mime_type)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@router.post("/session")
async def create_chat_session(request: Request):
    """New conversation seeded with the system prompt and the greeting."""
    session = request.app.state.sessions.create()
    return session.to_dict()


@router.get("/session/{session_id}")
async def get_chat_session(session_id: str, request: Request):
    return _get_session(request, session_id).to_dict()


@router.delete("/session/{session_id}")
async def delete_chat_session(session_id: str, request: Request):
    if not request.app.state.sessions.delete(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"cleared": True}


@router.get("/session/{session_id}/selection")
async def get_selection(session_id: str, request: Request):
    current = _get_session(request, session_id).bridge.current
    return current.to_dict() if current else None


@router.post("/session/{session_id}/stop")
async def stop_reply(session_id: str, request: Request):
    return {"stopping": _get_session(request, session_id).request_stop()}


# ---------------------------------------------------------------------------
# Document memory
# ---------------------------------------------------------------------------

@router.get("/session/{session_id}/documents")
async def list_documents(session_id: str, request: Request):
    session = _get_session(request, session_id)
    return [d.describe() for d in session.documents.documents()]


@router.post("/session/{session_id}/documents")
async def upload_document(session_id: str, request: Request, file: UploadFile = File(...)):
    session = _get_session(request, session_id)
    data = await file.read()
    doc = DocumentRef(
        filename=file.filename or "document.pdf",
        content=base64.b64encode(data).decode("ascii"),
        mime_type=file.content_type or "application/pdf",
    )
    added = session.documents.add(doc)
    return {"added": added, "documents": session.documents.filenames()}


@router.delete("/session/{session_id}/documents/{filename}")
async def remove_document(session_id: str, filename: str, request: Request):
    session = _get_session(request, session_id)
    removed = session.documents.remove(filename)
    return {"removed": removed, "documents": session.documents.filenames()}


class ReportDocumentRequest(BaseModel):
    report_id: str
    type: Literal["quarter", "research"] = "quarter"


@router.post("/session/{session_id}/documents/from-report")
async def add_report_document(
    session_id: str,
    body: ReportDocumentRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """Load a library report into the assistant's document memory."""
    session = _get_session(request, session_id)
    report = await get_report(db, body.report_id, body.type)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    try:
        data = await request.app.state.object_store.fetch(report["file_url"])
    except StorageError as exc:
        logger.error("Could not fetch report %s: %s", body.report_id, exc)
        raise HTTPException(status_code=502, detail="Could not download the report file")

    doc = DocumentRef(
        filename=file_name_from_url(report["file_url"]),
        content=base64.b64encode(data).decode("ascii"),
    )
    added = session.documents.add(doc)
    return {"added": added, "documents": session.documents.filenames()}


# ---------------------------------------------------------------------------
# POST /chat/message  (SSE streaming)
# ---------------------------------------------------------------------------

class NewDocument(BaseModel):
    filename: str
    content: str  # base64
    mime_type: str = "application/pdf"


class ChatMessageRequest(BaseModel):
    session_id: str
    message: str
    document: NewDocument | None = None


@router.post("/message")
async def chat_message(body: ChatMessageRequest, request: Request):
    """
    Stream the assistant's reply via SSE.

    SSE event sequence:
      user_turn → assistant_start → delta (×N) → message | error → company_selected (×N) → done
    """
    session = _get_session(request, session_id=body.session_id)
    if not body.message.strip():
        raise HTTPException(status_code=400, detail="Message is empty")
    if session.in_flight:
        raise HTTPException(status_code=409, detail="A reply is already streaming for this session")

    new_document = None
    if body.document is not None:
        new_document = _decode_document(
            body.document.filename, body.document.content, body.document.mime_type
        )

    driver = StreamingResponseDriver(session, request.app.state.chat_provider)

    async def generate():
        try:
            async for event in driver.stream(body.message, new_document):
                yield {"event": event["event"], "data": json.dumps(event["data"])}
        except ConversationBusyError as exc:
            yield {"event": "error", "data": json.dumps({"text": str(exc)})}

    return EventSourceResponse(generate())
