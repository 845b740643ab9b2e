"""
命名服務：生成 Room Code 和 Room 顯示名稱

純計算邏輯，不涉及狀態轉換
"""
import random
import string

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code(length: int = 6, rng=random) -> str:
    """
    生成隨機的大寫英數房間代碼

    範例：K3Z9QA, 0B7XPL

    注意：
    - 不檢查唯一性（由呼叫者負責）
    - 36^6 = 2,176,782,336 種可能，碰撞機率極低
    """
    return ''.join(rng.choices(ROOM_CODE_ALPHABET, k=length))


def generate_room_name(player_name: str) -> str:
    """以建立者名稱命名房間，例如：Alice's Room"""
    return f"{player_name}'s Room"
