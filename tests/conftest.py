import random

import pytest
from fastapi.testclient import TestClient

from config import Settings
from core.room_manager import RoomRegistry
from core.state_machine import RoomStateMachine
from main import create_app
from models import ConnectionBinding, Question
from schemas import CreateRoomData, JoinRoomData, PlayerInfo


QUESTIONS = [
    {
        "id": "q1",
        "text": "What is the capital of France?",
        "type": "single",
        "answers": [
            {"id": "q1a", "text": "Paris", "isCorrect": True},
            {"id": "q1b", "text": "London", "isCorrect": False},
            {"id": "q1c", "text": "Berlin", "isCorrect": False},
        ],
    },
    {
        "id": "q2",
        "text": "Which of these are programming languages?",
        "type": "multiple",
        "answers": [
            {"id": "q2a", "text": "Java", "isCorrect": True},
            {"id": "q2b", "text": "HTML", "isCorrect": False},
            {"id": "q2c", "text": "Python", "isCorrect": True},
        ],
    },
]


class ScriptedRandom(random.Random):
    """random() 先依序回傳預先排好的值，用完後才回到真正的亂數"""

    def __init__(self, draws=()):
        super().__init__(0)
        self.draws = list(draws)

    def random(self):
        if self.draws:
            return self.draws.pop(0)
        return super().random()


class RecordingGateway:
    """記錄所有送出的事件，取代真正的 WebSocket gateway"""

    def __init__(self):
        self.bindings = {}
        self.sent = []

    def bind(self, conn_id, room_id, player_id):
        self.bindings[conn_id] = ConnectionBinding(room_id, player_id)

    def unbind(self, conn_id):
        return self.bindings.pop(conn_id, None)

    def identity(self, conn_id):
        return self.bindings.get(conn_id)

    def send_to_one(self, conn_id, event, data):
        self.sent.append((conn_id, event.value, data))

    def broadcast_to_room(self, room_id, event, data):
        for conn_id, binding in list(self.bindings.items()):
            if binding.room_id == room_id:
                self.sent.append((conn_id, event.value, data))

    def events_for(self, conn_id):
        return [(event, data) for cid, event, data in self.sent if cid == conn_id]

    def last_event(self, conn_id, event):
        matches = [data for name, data in self.events_for(conn_id) if name == event]
        return matches[-1] if matches else None

    def clear(self):
        self.sent.clear()


@pytest.fixture()
def settings():
    return Settings(_env_file=None)


@pytest.fixture()
def questions():
    return [Question.model_validate(q) for q in QUESTIONS]


@pytest.fixture()
def registry():
    return RoomRegistry(rng=random.Random(1))


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def rng():
    return ScriptedRandom()


@pytest.fixture()
def machine(registry, gateway, questions, settings, rng):
    return RoomStateMachine(registry, gateway, questions, settings, rng=rng)


@pytest.fixture()
def create_room(machine):
    def _create(conn_id, player_id, name):
        return machine.create_room(
            conn_id, CreateRoomData(player=PlayerInfo(id=player_id, name=name))
        )
    return _create


@pytest.fixture()
def join_room(machine):
    def _join(conn_id, room_id, player_id, name):
        machine.join_room(
            conn_id,
            JoinRoomData(room_id=room_id, player=PlayerInfo(id=player_id, name=name)),
        )
    return _join


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client
