"""
Ordered turn history of one assistant conversation.

The first turn is always the system prompt and is never shown. Turns are
append-only; the single exception is the trailing assistant turn while its
reply is streaming in, whose text and streaming flag may be patched.
"""

from dataclasses import asdict, dataclass, replace
from typing import Literal

Role = Literal["system", "user", "assistant"]


class ConversationStateError(RuntimeError):
    """An operation would break the turn-sequence invariants."""


@dataclass(frozen=True)
class DocumentRef:
    filename: str
    content: str  # base64
    mime_type: str = "application/pdf"

    @property
    def size_bytes(self) -> int:
        # decoded size of the base64 payload
        return len(self.content) * 3 // 4 - self.content[-2:].count("=")

    def describe(self) -> dict:
        return {"filename": self.filename, "mime_type": self.mime_type, "size_bytes": self.size_bytes}


@dataclass(frozen=True)
class Turn:
    role: Role
    text: str
    attached_document: DocumentRef | None = None
    is_streaming: bool = False

    def to_dict(self) -> dict:
        data = asdict(self)
        data["attached_document"] = (
            self.attached_document.describe() if self.attached_document else None
        )
        return data


class ConversationState:
    def __init__(self, system_prompt: str, greeting: str) -> None:
        self._turns: list[Turn] = [
            Turn(role="system", text=system_prompt),
            Turn(role="assistant", text=greeting),
        ]

    @property
    def system_prompt(self) -> str:
        return self._turns[0].text

    @property
    def last(self) -> Turn:
        return self._turns[-1]

    @property
    def is_streaming(self) -> bool:
        return self._turns[-1].is_streaming

    def append(self, turn: Turn) -> None:
        if turn.role == "system":
            raise ConversationStateError("The system turn is fixed")
        if self.is_streaming:
            raise ConversationStateError("Cannot append while the last turn is streaming")
        if turn.is_streaming and turn.role != "assistant":
            raise ConversationStateError("Only assistant turns can stream")
        self._turns.append(turn)

    def mutate_last(self, *, text: str | None = None, is_streaming: bool | None = None) -> Turn:
        """Patch the streaming assistant turn. Illegal once streaming has ended."""
        last = self._turns[-1]
        if not last.is_streaming:
            raise ConversationStateError("The last turn is not streaming")
        patch = {}
        if text is not None:
            patch["text"] = text
        if is_streaming is not None:
            patch["is_streaming"] = is_streaming
        self._turns[-1] = replace(last, **patch)
        return self._turns[-1]

    def snapshot(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def visible_turns(self) -> list[dict]:
        return [t.to_dict() for t in self._turns if t.role != "system"]

    def __len__(self) -> int:
        return len(self._turns)
