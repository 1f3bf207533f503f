"""
Generative-text provider used by the assistant.

The driver builds a provider-neutral ProviderRequest; providers turn it into
their own wire format and yield the reply as a stream of text chunks.
"""

import base64
import logging
from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

import config
from assistant.conversation_state import DocumentRef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderTurn:
    role: Literal["user", "assistant"]
    text: str
    documents: tuple[DocumentRef, ...] = ()


@dataclass(frozen=True)
class ProviderRequest:
    system_instruction: str
    turns: tuple[ProviderTurn, ...]


class TextStreamProvider(Protocol):
    def stream(self, request: ProviderRequest) -> AsyncGenerator[str, None]: ...


def _document_block(doc: DocumentRef) -> dict:
    if doc.mime_type.startswith("text/"):
        # plain-text documents travel decoded
        source = {
            "type": "text",
            "media_type": "text/plain",
            "data": base64.b64decode(doc.content).decode("utf-8", errors="replace"),
        }
    else:
        source = {"type": "base64", "media_type": doc.mime_type, "data": doc.content}
    return {"type": "document", "source": source, "title": doc.filename}


def to_langchain_messages(request: ProviderRequest) -> list[BaseMessage]:
    messages: list[BaseMessage] = [SystemMessage(content=request.system_instruction)]
    for turn in request.turns:
        if turn.role == "assistant":
            messages.append(AIMessage(content=turn.text))
        elif turn.documents:
            blocks: list[Any] = [_document_block(d) for d in turn.documents]
            blocks.append({"type": "text", "text": turn.text})
            messages.append(HumanMessage(content=blocks))
        else:
            messages.append(HumanMessage(content=turn.text))
    return messages


def chunk_text(content: Any) -> str:
    """Text carried by a streamed message chunk's ``content``."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return ""


class AnthropicStreamProvider:
    """Streams replies from Claude through langchain-anthropic."""

    def __init__(self, model: str = config.ANTHROPIC_MODEL, max_tokens: int = config.ASSISTANT_MAX_TOKENS) -> None:
        self.model = model
        self.max_tokens = max_tokens

    async def stream(self, request: ProviderRequest) -> AsyncGenerator[str, None]:
        llm = ChatAnthropic(model=self.model, max_tokens=self.max_tokens)
        messages = to_langchain_messages(request)
        logger.debug(
            "Streaming %d messages (%d documents) from %s",
            len(messages),
            sum(len(t.documents) for t in request.turns),
            self.model,
        )
        async for chunk in llm.astream(messages):
            text = chunk_text(chunk.content)
            if text:
                yield text
