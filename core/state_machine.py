"""
Room State Machine：每個房間的遊戲流程

職責：
1. 建立 / 加入房間
2. 開始遊戲、切換題目、結束遊戲
3. 判定答案、輪盤懲罰、扣分懲罰
4. 玩家斷線（移除玩家、轉移 Game Master、清空房間）

每個 handler 都在該房間的鎖內完成「讀取 -> 修改 -> 送出事件」，
送出事件只是放進連線的 outbound queue，不會阻塞 handler。

Gateway 需要提供：
- bind(conn_id, room_id, player_id) / unbind(conn_id) / identity(conn_id)
- send_to_one(conn_id, event, data)
- broadcast_to_room(room_id, event, data)
"""
import logging
import random
import uuid
from typing import Sequence

from models import ConnectionBinding, Event, OutcomeType, Player, Question, Room
from schemas import (
    AcceptPenaltyFrame,
    CreateRoomData,
    CreateRoomFrame,
    GAME_FRAMES,
    JoinRoomData,
    JoinRoomFrame,
    NextQuestionFrame,
    PlayerInfo,
    PlayerRef,
    PlayRouletteFrame,
    RoomRef,
    StartGameFrame,
    SubmitAnswerData,
    SubmitAnswerFrame,
    question_payload,
    room_state_payload,
    winners_payload,
)
from core.room_manager import RoomRegistry
from core.exceptions import (
    FateNotPending,
    GameEnded,
    GameNotActive,
    InvalidStateTransition,
    NotAuthorized,
    PlayerAlreadyInRoom,
    PlayerNotFound,
)
from services.outcome_service import draw_roulette_outcome
from services.scoring_service import compute_winners, is_answer_correct

logger = logging.getLogger(__name__)


class RoomStateMachine:
    """所有房間共用的狀態機，狀態本身存在 RoomRegistry"""

    def __init__(
        self,
        registry: RoomRegistry,
        gateway,
        questions: Sequence[Question],
        settings,
        rng=random,
    ) -> None:
        self.registry = registry
        self.gateway = gateway
        self.questions = list(questions)
        self.settings = settings
        self.rng = rng

        self._handlers = {
            CreateRoomFrame: self.create_room,
            JoinRoomFrame: self.join_room,
            StartGameFrame: self.start_game,
            SubmitAnswerFrame: self.submit_answer,
            PlayRouletteFrame: self.play_roulette,
            AcceptPenaltyFrame: self.accept_penalty,
            NextQuestionFrame: self.next_question,
        }
        missing = set(GAME_FRAMES) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler registered for {sorted(m.__name__ for m in missing)}")

    def dispatch(self, conn_id: str, frame) -> None:
        """把已驗證的 frame 交給對應的 handler"""
        self._handlers[type(frame)](conn_id, frame.data)

    # ============ Room 加入 / 建立 ============

    def create_room(self, conn_id: str, data: CreateRoomData) -> str:
        """
        建立房間（永遠成功，除非房間代碼用盡）

        流程：
        1. 如果這條連線已經在別的房間，先離開
        2. 建立玩家（滿分、Game Master）
        3. 註冊房間並綁定連線
        4. 只回覆建立者 connect{roomId}
        """
        self._leave_previous(conn_id)

        player = self._new_player(data.player)
        room_id, room = self.registry.create(player, self.questions)
        self.gateway.bind(conn_id, room_id, player.id)

        self.gateway.send_to_one(conn_id, Event.CONNECT, {
            "roomId": room_id,
            "playerId": player.id,
        })
        return room_id

    def join_room(self, conn_id: str, data: JoinRoomData) -> None:
        """
        加入房間

        前置條件：
        - 房間必須存在（RoomNotFound）
        - 房間尚未結束（GameEnded）
        - 玩家 ID 不可重複（PlayerAlreadyInRoom）

        流程：
        1. 驗證房間
        2. 離開舊房間（如果有；舊房間就是目標房間時，改在鎖內替換玩家）
        3. 加入玩家、綁定連線、回覆 connect
        4. 廣播最新的玩家名單
        """
        room_id = data.room_id

        # 1. 先驗證一次，避免驗證失敗時玩家已經被移出舊房間
        self._require_joinable(room_id, data.player)

        # 2. 離開其他房間
        previous = self.gateway.identity(conn_id)
        if previous is not None and previous.room_id != room_id:
            self._leave_previous(conn_id)
            previous = None

        with self.registry.locks.with_room_lock(room_id):
            room = self._require_joinable(room_id, data.player)

            # 3. 先加入新玩家，再移除同一條連線的舊玩家，房間不會因此清空
            player = self._new_player(data.player)
            room.players[player.id] = player
            if previous is not None:
                self._remove_player(room, previous.player_id)
            self.gateway.bind(conn_id, room_id, player.id)

            self.gateway.send_to_one(conn_id, Event.CONNECT, {
                "roomId": room_id,
                "playerId": player.id,
            })

            # 4. 廣播
            self._broadcast_room_state(room)

        logger.info(f"Player {player.id} ({player.name}) joined room {room_id}")

    # ============ 遊戲流程 ============

    def start_game(self, conn_id: str, data: RoomRef) -> None:
        """
        開始遊戲（Game Master 限定）

        前置條件：
        1. Room 必須存在
        2. 呼叫者必須是 Game Master
        3. Room 尚未結束、尚未開始

        效果：
            current_question_index = 0，廣播第一題
        """
        with self.registry.locks.with_room_lock(data.room_id):
            room = self.registry.require(data.room_id)
            self._require_game_master(conn_id, room, "Only the game master can start the game")

            if not room.is_active:
                raise GameEnded(room.id)
            if room.is_started:
                raise InvalidStateTransition("Game already started")

            room.current_question_index = 0
            logger.info(f"Game started in room {room.id} with {len(room.questions)} questions")

            if room.is_finished:
                # 題庫是空的，直接結束
                self._end_game(room)
                return

            self.gateway.broadcast_to_room(
                room.id,
                Event.START_GAME,
                question_payload(room, self.settings.reveal_answer_correctness),
            )

    def submit_answer(self, conn_id: str, data: SubmitAnswerData) -> None:
        """
        提交答案

        答對：加分，回覆 points_updated{points, correct: true}
        答錯：不扣分，回覆 submit_answer{correct: false, shouldChooseFate: true}，
              玩家之後要選擇 accept_penalty 或 play_roulette
        兩種情況最後都廣播房間狀態
        """
        with self.registry.locks.with_room_lock(data.room_id):
            room = self.registry.get(data.room_id)
            if room is None or not room.is_started or room.is_finished:
                raise GameNotActive(data.room_id)

            player = self._require_player(room, data.player_id)
            question = room.current_question()

            if is_answer_correct(question, data.answers):
                player.points += self.settings.correct_answer_points
                player.awaiting_fate = False
                self.gateway.send_to_one(conn_id, Event.POINTS_UPDATED, {
                    "points": player.points,
                    "correct": True,
                })
            else:
                player.awaiting_fate = True
                self.gateway.send_to_one(conn_id, Event.SUBMIT_ANSWER, {
                    "correct": False,
                    "shouldChooseFate": True,
                })

            self._broadcast_room_state(room)

    def play_roulette(self, conn_id: str, data: PlayerRef) -> None:
        """
        轉輪盤

        結果：
        - nothing: 沒事
        - losePoints(amount): 扣分
        - becomeTarget: 成為房間內唯一的 Target

        注意：
            分數歸零的玩家只是變成 inactive，不會被移出房間
        """
        with self.registry.locks.with_room_lock(data.room_id):
            room = self.registry.require(data.room_id)
            player = self._require_player(room, data.player_id)

            outcome = draw_roulette_outcome(self.rng)

            if outcome.type == OutcomeType.LOSE_POINTS:
                player.points -= outcome.amount
            elif outcome.type == OutcomeType.BECOME_TARGET:
                for other in room.players.values():
                    other.is_target = False
                player.is_target = True

            player.awaiting_fate = False

            logger.info(
                f"Player {player.id} in room {room.id} spun the roulette: "
                f"{outcome.type.value} (points={player.points})"
            )

            self.gateway.send_to_one(conn_id, Event.ROULETTE_RESULT, {
                "outcome": outcome.model_dump(by_alias=True, mode="json", exclude_none=True),
                "points": player.points,
                "isActive": player.is_active,
                "isTarget": player.is_target,
            })
            self._broadcast_room_state(room)

    def accept_penalty(self, conn_id: str, data: PlayerRef) -> None:
        """
        答錯後選擇固定扣分（不轉輪盤）

        前置條件：
            玩家必須有一題答錯、尚未決定命運（FateNotPending）
        """
        with self.registry.locks.with_room_lock(data.room_id):
            room = self.registry.require(data.room_id)
            player = self._require_player(room, data.player_id)

            if not player.awaiting_fate:
                raise FateNotPending(player.id)

            player.points -= self.settings.flat_penalty_points
            player.awaiting_fate = False

            self.gateway.send_to_one(conn_id, Event.POINTS_UPDATED, {
                "points": player.points,
                "correct": False,
                "isActive": player.is_active,
            })
            self._broadcast_room_state(room)

    def next_question(self, conn_id: str, data: RoomRef) -> None:
        """
        下一題（Game Master 限定）

        題目用完時：房間變成 inactive，廣播 end_game{winners}
        否則：廣播 next_question{currentQuestion, question}
        """
        with self.registry.locks.with_room_lock(data.room_id):
            room = self.registry.get(data.room_id)
            if room is None or not room.is_started:
                raise GameNotActive(data.room_id)

            self._require_game_master(
                conn_id, room, "Only the game master can advance to the next question"
            )

            if room.is_finished:
                raise GameNotActive(room.id)

            room.current_question_index += 1

            if room.is_finished:
                self._end_game(room)
                return

            self.gateway.broadcast_to_room(
                room.id,
                Event.NEXT_QUESTION,
                question_payload(room, self.settings.reveal_answer_correctness),
            )

    # ============ 斷線 ============

    def connection_closed(self, conn_id: str) -> None:
        """Transport 關閉（包含協定層 ping 逾時）時呼叫"""
        binding = self.gateway.unbind(conn_id)
        if binding is not None:
            self.disconnect(binding.room_id, binding.player_id)

    def disconnect(self, room_id: str, player_id: str) -> None:
        """
        移除玩家

        流程：
        1. 房間或玩家已經不存在 -> 不做任何事
        2. 移除玩家；房間空了就移除房間，結束
        3. 離開的是 Game Master -> ID 最小的剩餘玩家接手
        4. 廣播房間狀態
        """
        with self.registry.locks.with_room_lock(room_id):
            room = self.registry.get(room_id)
            if room is None or player_id not in room.players:
                return

            self._remove_player(room, player_id)

            if not room.players:
                self.registry.remove_if_empty(room_id)
                return

            self._broadcast_room_state(room)

    # ============ helpers ============

    def _remove_player(self, room: Room, player_id: str) -> None:
        """移除玩家；離開的是 Game Master 時由 ID 最小的剩餘玩家接手"""
        if room.players.pop(player_id, None) is None:
            return
        logger.info(f"Player {player_id} disconnected from room {room.id}")

        if player_id == room.game_master_id and room.players:
            new_master_id = min(room.players)
            room.game_master_id = new_master_id
            room.players[new_master_id].is_game_master = True
            logger.info(f"New game master assigned in room {room.id}: {new_master_id}")

    def _new_player(self, info: PlayerInfo) -> Player:
        return Player(
            id=info.id or uuid.uuid4().hex,
            name=info.name,
            photo=info.photo,
            points=self.settings.initial_points,
        )

    def _leave_previous(self, conn_id: str) -> None:
        binding = self.gateway.unbind(conn_id)
        if binding is not None:
            logger.info(f"Connection {conn_id} leaves room {binding.room_id} before rebinding")
            self.disconnect(binding.room_id, binding.player_id)

    def _require_joinable(self, room_id: str, info: PlayerInfo) -> Room:
        room = self.registry.require(room_id)
        if not room.is_active:
            raise GameEnded(room_id)
        if info.id is not None and info.id in room.players:
            raise PlayerAlreadyInRoom(info.id)
        return room

    def _require_player(self, room: Room, player_id: str) -> Player:
        player = room.players.get(player_id)
        if player is None:
            raise PlayerNotFound(player_id)
        return player

    def _require_game_master(self, conn_id: str, room: Room, message: str) -> None:
        identity = self.gateway.identity(conn_id)
        if identity != ConnectionBinding(room.id, room.game_master_id):
            raise NotAuthorized(message)

    def _end_game(self, room: Room) -> None:
        room.is_active = False
        winners = compute_winners(room.players.values())
        logger.info(
            f"Game ended in room {room.id}, winners: {[w.id for w in winners]}"
        )
        self.gateway.broadcast_to_room(room.id, Event.END_GAME, winners_payload(winners))

    def _broadcast_room_state(self, room: Room) -> None:
        self.gateway.broadcast_to_room(room.id, Event.PLAYER_JOINED, room_state_payload(room))
