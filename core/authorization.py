"""
辯論房的權限檢查

呼叫者身分和角色由前面的驗證層提供。
不論房間存不存在，非參與者一律得到同樣的 NotParticipantError，
外人無法藉此得知哪些房間存在。
"""
from dataclasses import dataclass

from models import Room, UserRole
from core.exceptions import NotParticipantError, NotFoundError

STAFF_ROLES = (UserRole.MODERATOR, UserRole.ADMIN)


@dataclass(frozen=True)
class Caller:
    user_id: str
    role: UserRole = UserRole.USER

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def require_participant(room, caller: Caller, room_id: str) -> Room:
    """Only the two participants may mutate a room."""
    if room is None or not room.is_participant(caller.user_id):
        raise NotParticipantError()
    return room


def require_reader(room, caller: Caller, room_id: str) -> Room:
    """Participants, or moderators/admins, may read a room."""
    if caller.is_staff:
        if room is None:
            raise NotFoundError("Room", room_id)
        return room
    return require_participant(room, caller, room_id)


def require_self_or_staff(user_id: str, caller: Caller) -> None:
    """A user's room list is visible to that user and to staff only."""
    if caller.user_id != user_id and not caller.is_staff:
        raise NotParticipantError()


def require_staff(caller: Caller) -> None:
    if not caller.is_staff:
        raise NotParticipantError()
