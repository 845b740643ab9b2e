"""
Room Registry：管理 Room 的完整生命週期

職責：
1. 建立 Room（含建立者，建立者即 Game Master）
2. 查詢 Room
3. 房間清空後移除

原則：
- 單一職責：只管 room_id -> Room 的對照，不管遊戲流程
- process 內唯一的 Room 擁有者，不做持久化
"""
import logging
import random
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from models import Player, Question, Room
from core.locks import RoomLockTable
from core.exceptions import RoomCodeExhausted, RoomNotFound
from services.naming_service import generate_room_code, generate_room_name
from services.outcome_service import shuffle_questions

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Room 生命週期管理器"""

    def __init__(
        self,
        code_length: int = 6,
        max_code_attempts: int = 10,
        rng=random,
    ) -> None:
        self._rooms: Dict[str, Room] = {}
        self._guard = threading.Lock()
        self._code_length = code_length
        self._max_code_attempts = max_code_attempts
        self._rng = rng
        self.locks = RoomLockTable()

    def create(self, player: Player, questions: Sequence[Question]) -> Tuple[str, Room]:
        """
        建立新房間（含 Game Master）

        流程：
        1. 生成唯一的房間代碼（碰撞時重新生成，有次數上限）
        2. 為這個房間洗牌一份自己的題目
        3. 建立 Room，建立者是唯一玩家兼 Game Master

        參數：
            player: 已設定好分數的建立者
            questions: 題庫（不會被修改）

        返回：
            (room_id, Room) tuple

        異常：
            RoomCodeExhausted: 連續 max_code_attempts 次都碰撞
        """
        player.is_game_master = True

        with self._guard:
            # 1. 生成唯一的房間代碼
            code = self._fresh_code()

            # 2 & 3. 建立 Room
            room = Room(
                id=code,
                name=generate_room_name(player.name),
                players={player.id: player},
                questions=shuffle_questions(questions, self._rng),
                game_master_id=player.id,
            )
            self._rooms[code] = room
            self.locks.allocate(code)

        logger.info(f"Created room {code} for player {player.id} ({player.name})")
        return code, room

    def get(self, room_id: str) -> Optional[Room]:
        with self._guard:
            return self._rooms.get(room_id)

    def require(self, room_id: str) -> Room:
        """
        取得 Room，不存在時拋出 RoomNotFound
        """
        room = self.get(room_id)
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def remove_if_empty(self, room_id: str) -> bool:
        """
        房間內沒有玩家時移除房間

        返回：
            True 如果房間被移除
        """
        with self._guard:
            room = self._rooms.get(room_id)
            if room is None or room.players:
                return False
            del self._rooms[room_id]
            self.locks.discard(room_id)

        logger.info(f"Room {room_id} removed (empty)")
        return True

    def room_ids(self) -> List[str]:
        with self._guard:
            return list(self._rooms)

    def __len__(self) -> int:
        with self._guard:
            return len(self._rooms)

    def __contains__(self, room_id: str) -> bool:
        with self._guard:
            return room_id in self._rooms

    def _fresh_code(self) -> str:
        for _ in range(self._max_code_attempts):
            code = generate_room_code(self._code_length, self._rng)
            if code not in self._rooms:
                return code
            logger.warning(f"Room code collision detected, regenerating: {code}")

        raise RoomCodeExhausted(
            f"Could not generate a free room code after {self._max_code_attempts} attempts"
        )
