"""
自定義異常類別

集中管理所有業務邏輯異常，方便 Gateway 層統一轉成 error 事件
"""


class RouletteQuizException(Exception):
    """所有遊戲異常的基類"""
    pass


# ============ Room 相關異常 ============

class RoomNotFound(RouletteQuizException):
    """房間不存在"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__("Room not found")


class GameEnded(RouletteQuizException):
    """遊戲已經結束，不接受新玩家"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__("Game has already ended")


class GameNotActive(RouletteQuizException):
    """遊戲尚未開始或已經沒有題目"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__("Game not active")


class RoomCodeExhausted(RouletteQuizException):
    """連續產生的房間代碼都已被使用"""
    pass


# ============ 權限相關異常 ============

class NotAuthorized(RouletteQuizException):
    """只有 Game Master 可以執行此動作"""
    pass


# ============ 狀態轉換異常 ============

class InvalidStateTransition(RouletteQuizException):
    """非法的狀態轉換"""
    pass


# ============ Player 相關異常 ============

class PlayerNotFound(RouletteQuizException):
    """玩家不存在"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__("Player not found")


class PlayerAlreadyInRoom(RouletteQuizException):
    """相同玩家 ID 已經在房間內"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__(f"Player {player_id} is already in this room")


class FateNotPending(RouletteQuizException):
    """玩家沒有待決定的命運（沒有答錯的題目）"""
    def __init__(self, player_id):
        self.player_id = player_id
        super().__init__("No pending fate choice for this player")
