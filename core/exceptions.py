"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理。
每個異常帶有穩定的 code 和 HTTP status_code，讓前端可以顯示對應的訊息
（例如「還沒輪到你」）。
"""


class DebateRoomException(Exception):
    """所有辯論房異常的基類"""
    status_code = 400
    code = "invalid_request"
    default_message = "Invalid request"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ============ 權限 / 查找 ============

class NotParticipantError(DebateRoomException):
    """呼叫者不是參與者（不論房間是否存在，一律回傳相同訊息）"""
    status_code = 403
    code = "not_permitted"
    default_message = "Not permitted"


class NotFoundError(DebateRoomException):
    """房間 / 訊息 / 意見不存在"""
    status_code = 404
    code = "not_found"
    default_message = "Not found"

    def __init__(self, kind: str, identifier):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


# ============ 建立房間 ============

class SelfDebateError(DebateRoomException):
    """不能和自己的意見辯論"""
    code = "self_debate"
    default_message = "You cannot debate your own opinion"


class MissingPrerequisiteError(DebateRoomException):
    """發起辯論前必須先對該主題發表意見"""
    code = "missing_opinion"
    default_message = "You must have an opinion on this topic before starting a debate"


# ============ 協議 / 狀態 ============

class RoomInactiveError(DebateRoomException):
    """房間已結束或已封存"""
    status_code = 409
    code = "room_inactive"
    default_message = "Debate room is not active"


class TurnViolationError(DebateRoomException):
    """結構化階段中不是輪到你發言"""
    status_code = 409
    code = "not_your_turn"
    default_message = "It's not your turn to speak. Please wait for your opponent's response."


class InvalidStateTransition(DebateRoomException):
    """非法的階段 / 狀態轉換"""
    status_code = 409
    code = "invalid_phase"
    default_message = "This action is not allowed in the current phase"


class ConcurrentUpdateError(DebateRoomException):
    """另一個請求同時修改了同一個房間（樂觀鎖版本不符）"""
    status_code = 409
    code = "conflict"
    default_message = "The debate room was modified concurrently, please retry"


# ============ 檢舉 ============

class DuplicateFlagError(DebateRoomException):
    """同一位使用者對同一則訊息只能檢舉一次"""
    status_code = 409
    code = "duplicate_flag"
    default_message = "You have already flagged this message"


# ============ 輸入 ============

class ValidationError(DebateRoomException):
    """請求內容不合法"""
    pass
