"""
並發控制工具

提供 Room-level 的鎖定機制，防止競態條件（Race Condition）

每個房間一把鎖：同一個房間的事件一次只處理一個（讀取 -> 修改 -> 廣播），
不同房間之間互不阻塞。
"""
import threading
from contextlib import contextmanager, nullcontext
from typing import Dict


class RoomLockTable:
    """
    room_id -> RLock 的對照表

    注意：
        - 鎖在房間建立時配置，房間移除時釋放
        - 表本身由另一把鎖保護，避免兩個請求同時配置同一個房間的鎖
    """

    def __init__(self) -> None:
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def allocate(self, room_id: str) -> None:
        with self._guard:
            self._locks.setdefault(room_id, threading.RLock())

    def discard(self, room_id: str) -> None:
        with self._guard:
            self._locks.pop(room_id, None)

    @contextmanager
    def with_room_lock(self, room_id: str):
        """
        鎖定一個 Room

        使用場景：
        - 修改 Room 內玩家或題目進度時
        - 需要確保整個 handler 執行期間 Room 不被其他請求修改

        範例：
            with locks.with_room_lock(room_id):
                room = registry.get(room_id)
                ...

        注意：
            - 房間不存在時不需要鎖（handler 會直接回報 RoomNotFound）
            - RLock 允許同一執行緒在 handler 內重入（例如離開舊房間再加入新房間）
        """
        with self._guard:
            lock = self._locks.get(room_id)

        with lock if lock is not None else nullcontext():
            yield
