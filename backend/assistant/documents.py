import logging

from assistant.conversation_state import DocumentRef

logger = logging.getLogger(__name__)


class DocumentMemoryStore:
    """
    Documents the user has loaded into the assistant, keyed by filename and
    kept in upload order. Every active document rides along with each request.

    There is no size or count limit; documents stay until removed.
    """

    def __init__(self) -> None:
        self._docs: dict[str, DocumentRef] = {}

    def add(self, doc: DocumentRef) -> bool:
        """Returns False (and changes nothing) if the filename is already loaded."""
        if doc.filename in self._docs:
            logger.debug("Document %s already in memory", doc.filename)
            return False
        self._docs[doc.filename] = doc
        logger.info(
            "Document %s added (%d in memory, %d bytes total)",
            doc.filename, len(self._docs), self.total_bytes,
        )
        return True

    def remove(self, filename: str) -> bool:
        removed = self._docs.pop(filename, None)
        if removed is not None:
            logger.info("Document %s removed", filename)
        return removed is not None

    def get(self, filename: str) -> DocumentRef | None:
        return self._docs.get(filename)

    def documents(self) -> list[DocumentRef]:
        return list(self._docs.values())

    def filenames(self) -> list[str]:
        return list(self._docs)

    @property
    def total_bytes(self) -> int:
        return sum(d.size_bytes for d in self._docs.values())

    def __contains__(self, filename: str) -> bool:
        return filename in self._docs

    def __len__(self) -> int:
        return len(self._docs)
