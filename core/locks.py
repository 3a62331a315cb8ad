"""
並發控制工具

提供 Database-level 的鎖定機制，防止競態條件（Race Condition）

- PostgreSQL：SELECT ... FOR UPDATE 悲觀鎖，鎖住單一房間的 row
- 所有資料庫：Room 帶有 version 欄位（SQLAlchemy version_id_col），
  如果兩個請求讀到同一版本並同時寫入，後寫入的會得到 StaleDataError

鎖的範圍永遠只有一個房間，不使用 table-wide 或 process-wide 的鎖。
"""
from contextlib import contextmanager

from sqlalchemy.orm import Session, Query
from sqlalchemy.orm.exc import StaleDataError

from models import Room, Message
from core.exceptions import ConcurrentUpdateError


def with_room_lock(room_id: str, db: Session) -> Query:
    """
    鎖定一個 Room（行級鎖）

    使用場景：
    - 發送訊息並推進回合
    - 投票並計算共識結果
    - 階段轉換、結束房間、封存

    範例：
        room = with_room_lock(room_id, db).first()
        if not room:
            raise NotFoundError("Room", room_id)
        room.status = RoomStatus.ENDED

    參數：
        room_id: Room id
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）

    注意：
        - nowait=False 表示如果鎖被佔用，會等待
        - 必須在 transaction 內使用（確保有 commit 或 rollback）
        - populate_existing 確保拿到的是鎖定後重新讀取的最新狀態
    """
    return db.query(Room).filter(
        Room.id == room_id
    ).with_for_update(nowait=False).populate_existing()


def with_message_room_lock(message_id: str, db: Session):
    """
    透過訊息 id 鎖定其所屬的 Room

    返回：
        (Message, Room) 或 (None, None)
    """
    message = db.query(Message).filter(Message.id == message_id).first()
    if not message:
        return None, None
    room = with_room_lock(message.room_id, db).first()
    return message, room


@contextmanager
def optimistic_guard(room_id: str):
    """
    把 SQLAlchemy 的 StaleDataError 轉成 ConcurrentUpdateError

    寫入不重試：由呼叫者自行決定是否重新送出
    """
    try:
        yield
    except StaleDataError as e:
        raise ConcurrentUpdateError(
            f"Debate room {room_id} was modified concurrently"
        ) from e
