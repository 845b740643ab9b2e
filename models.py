"""
記憶體內的資料模型

所有狀態都只存在於 process 內（沒有資料庫），
序列化時一律使用 camelCase 欄位名稱，與前端協定一致。
"""
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field
from pydantic.alias_generators import to_camel


class Event(str, Enum):
    CONNECT = "connect"
    CREATE_ROOM = "create_room"
    JOIN_ROOM = "join_room"
    PLAYER_JOINED = "player_joined"
    START_GAME = "start_game"
    NEXT_QUESTION = "next_question"
    END_GAME = "end_game"
    SUBMIT_ANSWER = "submit_answer"
    PLAY_ROULETTE = "play_roulette"
    ROULETTE_RESULT = "roulette_result"
    ACCEPT_PENALTY = "accept_penalty"
    POINTS_UPDATED = "points_updated"
    ERROR = "error"


class QuestionType(str, Enum):
    SINGLE = "single"
    MULTIPLE = "multiple"


class OutcomeType(str, Enum):
    NOTHING = "nothing"
    LOSE_POINTS = "losePoints"
    BECOME_TARGET = "becomeTarget"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Answer(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    text: str
    is_correct: bool = False


class Question(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    text: str
    type: QuestionType
    answers: List[Answer]

    def correct_answer_ids(self) -> List[str]:
        return [answer.id for answer in self.answers if answer.is_correct]


class RouletteOutcome(CamelModel):
    type: OutcomeType
    amount: Optional[int] = None


class Player(CamelModel):
    id: str
    name: str
    photo: Optional[str] = None
    points: int
    is_target: bool = False
    is_game_master: bool = False
    # 答錯後尚未選擇命運（扣 1 分或轉輪盤）
    awaiting_fate: bool = Field(default=False, exclude=True)

    @computed_field(alias="isActive")
    @property
    def is_active(self) -> bool:
        return self.points > 0


class Room(CamelModel):
    """
    一場遊戲

    current_question_index:
        None  -> 尚未開始
        0..N-1 -> 進行中
        >= N  -> 題目已用完
    """
    id: str
    name: str
    players: Dict[str, Player] = Field(default_factory=dict)
    questions: List[Question] = Field(default_factory=list)
    current_question_index: Optional[int] = None
    is_active: bool = True
    game_master_id: Optional[str] = None

    @property
    def is_started(self) -> bool:
        return self.current_question_index is not None

    @property
    def is_finished(self) -> bool:
        return self.is_started and self.current_question_index >= len(self.questions)

    def current_question(self) -> Optional[Question]:
        if not self.is_started or self.is_finished:
            return None
        return self.questions[self.current_question_index]


class ConnectionBinding(NamedTuple):
    """一條連線對應的 (房間, 玩家)"""
    room_id: str
    player_id: str
