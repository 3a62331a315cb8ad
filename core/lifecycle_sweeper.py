"""
Lifecycle Sweeper：定期封存已結束的辯論房

規則：status = ended 且 last_message_at 早於 (now - archive_after_days) → archived

- 每個房間各自一個 transaction：先鎖定、重新檢查條件、再封存
  （候選清單查出來之後房間可能已經被改過）
- 某個房間失敗只記 log，繼續處理下一個
- 重複執行是安全的（已封存的房間不會再被選到）

可以當背景任務跑（start / stop），也可以單次執行：
    python -m core.lifecycle_sweeper
"""
import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional
import logging

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.locks import optimistic_guard, with_room_lock
from core.room_store import RoomStore
from core.state_machine import RoomState, RoomStateMachine
from database import SessionLocal, get_settings, transactional
from models import RoomStatus, utcnow

logger = logging.getLogger(__name__)


@transactional
def archive_room(db: Session, room_id: str, cutoff: datetime) -> bool:
    """
    封存單一房間（鎖定後重新檢查條件）

    返回：
        True 表示這次有封存；False 表示條件已不成立（跳過）
    """
    room = with_room_lock(room_id, db).first()
    if room is None:
        return False
    if room.status != RoomStatus.ENDED or room.last_message_at >= cutoff:
        return False

    RoomStateMachine.archive(RoomState.from_room(room)).apply_to(room)
    return True


class LifecycleSweeper:

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        archive_after_days: Optional[int] = None,
        interval_seconds: Optional[float] = None,
    ):
        settings = get_settings()
        self.session_factory = session_factory
        self.archive_after_days = archive_after_days if archive_after_days is not None else settings.archive_after_days
        self.interval_seconds = interval_seconds if interval_seconds is not None else settings.sweep_interval_seconds
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return (now or utcnow()) - timedelta(days=self.archive_after_days)

    def sweep(self, now: Optional[datetime] = None) -> List[str]:
        """
        執行一次封存

        返回：
            這次被封存的房間 id
        """
        cutoff = self.cutoff(now)

        db = self.session_factory()
        try:
            candidates = RoomStore.archival_candidates(db, cutoff)
        finally:
            db.close()

        archived = []
        for room_id in candidates:
            db = self.session_factory()
            try:
                with optimistic_guard(room_id):
                    if archive_room(db, room_id, cutoff):
                        archived.append(room_id)
            except Exception as e:
                logger.error(f"Failed to archive room {room_id}: {e}")
            finally:
                db.close()

        if archived:
            logger.info(f"Archived {len(archived)} debate rooms inactive since before {cutoff.isoformat()}")
        else:
            logger.debug("No debate rooms to archive")
        return archived

    # ============ 背景任務 ============

    async def start(self) -> None:
        """重複呼叫是安全的"""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"Lifecycle sweeper started (every {self.interval_seconds}s, "
            f"archive after {self.archive_after_days} days)"
        )

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Lifecycle sweeper stopped")

    async def _run_loop(self) -> None:
        while self._running:
            try:
                await run_in_threadpool(self.sweep)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Sweep cycle failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level)
    ids = LifecycleSweeper().sweep()
    print(f"Archived {len(ids)} debate rooms")
