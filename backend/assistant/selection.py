import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    ticker_symbol: str
    company_name: str

    def to_dict(self) -> dict:
        return asdict(self)


SelectionHandler = Callable[[Selection], None]


class SelectionBridge:
    """Tells the rest of the dashboard which company the assistant picked."""

    def __init__(self) -> None:
        self._handlers: list[SelectionHandler] = []
        self.current: Selection | None = None

    def subscribe(self, handler: SelectionHandler) -> None:
        self._handlers.append(handler)

    def on_ticker_resolved(self, ticker_symbol: str, company_name: str) -> Selection:
        selection = Selection(ticker_symbol=ticker_symbol, company_name=company_name)
        self.current = selection
        for handler in self._handlers:
            try:
                handler(selection)
            except Exception as exc:
                logger.error("Selection handler failed for %s: %s", ticker_symbol, exc)
        return selection
