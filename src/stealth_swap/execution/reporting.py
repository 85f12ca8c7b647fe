"""Structured progress events for swap orchestration runs."""
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class SwapEventType(str, Enum):
    """Event types emitted during an orchestration run."""
    QUOTE_OBTAINED = "quote_obtained"
    QUOTE_UNAVAILABLE = "quote_unavailable"
    ROUTE_SELECTED = "route_selected"
    PUBLIC_ROUTE = "public_route"
    SUBMITTED = "submitted"
    DOWNGRADED = "downgraded"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    FAILED = "failed"


_EVENT_LEVELS = {
    SwapEventType.QUOTE_UNAVAILABLE: logging.WARNING,
    SwapEventType.PUBLIC_ROUTE: logging.WARNING,
    SwapEventType.DOWNGRADED: logging.WARNING,
    SwapEventType.FAILED: logging.ERROR,
}


@dataclass(frozen=True)
class SwapEvent:
    """One reported step of a run."""
    event_type: SwapEventType
    run_id: str
    message: str
    stage: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


SwapEventListener = Callable[[SwapEvent], None]


class ExecutionReporter:
    """
    Fans orchestration events out to the log and to registered listeners.

    Listener errors are logged and never interrupt a run; by the time most
    events fire the transaction is already on its way.
    """

    def __init__(self, listeners: Optional[List[SwapEventListener]] = None):
        self.listeners: List[SwapEventListener] = list(listeners or [])

    def add_listener(self, listener: SwapEventListener) -> None:
        self.listeners.append(listener)

    def emit(
        self,
        event_type: SwapEventType,
        run_id: str,
        message: str,
        stage: Optional[str] = None,
        **data: Any
    ) -> SwapEvent:
        event = SwapEvent(
            event_type=event_type,
            run_id=run_id,
            message=message,
            stage=stage,
            data=data
        )

        level = _EVENT_LEVELS.get(event_type, logging.INFO)
        logger.log(level, f"[{run_id}] {event_type.value}: {message}")

        for listener in self.listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener failed on {event_type.value}: {e}")

        return event
