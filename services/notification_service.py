"""
辯論事件的站外通知（推播 / email）

送出即不管：通知失敗只記 log，不影響觸發它的操作
"""
import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)

NEW_MESSAGE = "new_debate_message"
DEBATE_CREATED = "new_debate_created"
DEBATE_ENDED = "debate_ended"
PHASE_CHANGED = "debate_phase_changed"


class Notifier(Protocol):
    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default notifier: records the event in the log only."""

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notify {user_id}: {event} (room={payload.get('room_id')})")


def notify_safely(notifier: Notifier, user_id: str, event: str, payload: Dict[str, Any]) -> None:
    try:
        notifier.notify(user_id, event, payload)
    except Exception as e:
        logger.warning(f"Notification {event} to {user_id} failed: {e}")
