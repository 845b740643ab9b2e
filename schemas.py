"""
WebSocket 協定的資料格式

Inbound: 每個 frame 都是 {"event": ..., "data": {...}}，
以 event 作為 discriminator 組成封閉的 union，未知事件一律驗證失敗。

Outbound: 提供組裝廣播 payload 的 helper。
"""
import json
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from models import CamelModel, Event, Player, Room


# ============ Inbound data ============

class PlayerInfo(CamelModel):
    id: Optional[str] = None
    name: str
    photo: Optional[str] = None


class RoomRef(CamelModel):
    room_id: str

    @field_validator("room_id")
    @classmethod
    def normalize_room_id(cls, value: str) -> str:
        return value.strip().upper()


class PlayerRef(RoomRef):
    player_id: str


class CreateRoomData(CamelModel):
    player: PlayerInfo


class JoinRoomData(RoomRef):
    player: PlayerInfo


class SubmitAnswerData(PlayerRef):
    answers: List[str]


# ============ Inbound frames ============

class CreateRoomFrame(BaseModel):
    event: Literal["create_room"]
    data: CreateRoomData


class JoinRoomFrame(BaseModel):
    event: Literal["join_room"]
    data: JoinRoomData


class StartGameFrame(BaseModel):
    event: Literal["start_game"]
    data: RoomRef


class SubmitAnswerFrame(BaseModel):
    event: Literal["submit_answer"]
    data: SubmitAnswerData


class PlayRouletteFrame(BaseModel):
    event: Literal["play_roulette"]
    data: PlayerRef


class AcceptPenaltyFrame(BaseModel):
    event: Literal["accept_penalty"]
    data: PlayerRef


class NextQuestionFrame(BaseModel):
    event: Literal["next_question"]
    data: RoomRef


InboundFrame = Annotated[
    Union[
        CreateRoomFrame,
        JoinRoomFrame,
        StartGameFrame,
        SubmitAnswerFrame,
        PlayRouletteFrame,
        AcceptPenaltyFrame,
        NextQuestionFrame,
    ],
    Field(discriminator="event"),
]

GAME_FRAMES = (
    CreateRoomFrame,
    JoinRoomFrame,
    StartGameFrame,
    SubmitAnswerFrame,
    PlayRouletteFrame,
    AcceptPenaltyFrame,
    NextQuestionFrame,
)

_inbound_adapter = TypeAdapter(InboundFrame)


def parse_frame(raw: str):
    """
    解析一個 inbound frame

    異常：
        pydantic.ValidationError: JSON 格式錯誤、未知事件或欄位不符
    """
    return _inbound_adapter.validate_json(raw)


# ============ Outbound ============

def encode_frame(event: Event, data: Dict[str, Any]) -> str:
    return json.dumps({"event": event.value, "data": data})


def player_payload(player: Player) -> Dict[str, Any]:
    return player.model_dump(by_alias=True, mode="json")


def room_state_payload(room: Room) -> Dict[str, Any]:
    """player_joined 事件的 payload：完整玩家名單 + 房間狀態"""
    return {
        "players": [player_payload(p) for p in room.players.values()],
        "roomId": room.id,
        "isActive": room.is_active,
        "gameMasterId": room.game_master_id,
    }


def question_payload(room: Room, reveal_correctness: bool) -> Dict[str, Any]:
    question = room.current_question()
    exclude = None if reveal_correctness else {"answers": {"__all__": {"is_correct"}}}
    return {
        "currentQuestion": room.current_question_index,
        "question": question.model_dump(by_alias=True, mode="json", exclude=exclude),
    }


def winners_payload(winners: Iterable[Player]) -> Dict[str, Any]:
    return {
        "winners": [
            {"id": p.id, "name": p.name, "points": p.points}
            for p in winners
        ]
    }
