import pytest

from config import Settings
from core.exceptions import (
    FateNotPending,
    GameEnded,
    GameNotActive,
    InvalidStateTransition,
    NotAuthorized,
    PlayerAlreadyInRoom,
    PlayerNotFound,
    RoomNotFound,
)
from core.state_machine import RoomStateMachine
from schemas import (
    CreateRoomData,
    PlayerInfo,
    PlayerRef,
    RoomRef,
    SubmitAnswerData,
    parse_frame,
)


@pytest.fixture()
def room_ab(create_room, join_room):
    """A 建立房間、B 加入"""
    room_id = create_room("conn-a", "a", "Alice")
    join_room("conn-b", room_id, "b", "Bob")
    return room_id


@pytest.fixture()
def started(room_ab, machine, gateway):
    machine.start_game("conn-a", RoomRef(room_id=room_ab))
    gateway.clear()
    return room_ab


def _correct_ids(registry, room_id):
    return registry.get(room_id).current_question().correct_answer_ids()


def _wrong_ids(registry, room_id):
    question = registry.get(room_id).current_question()
    return [a.id for a in question.answers if not a.is_correct][:1]


def _answer(machine, conn_id, room_id, player_id, answers):
    machine.submit_answer(
        conn_id, SubmitAnswerData(room_id=room_id, player_id=player_id, answers=answers)
    )


# ============ create / join ============

def test_create_room_replies_only_to_creator(create_room, registry, gateway):
    room_id = create_room("conn-a", "a", "Alice")

    assert gateway.sent == [("conn-a", "connect", {"roomId": room_id, "playerId": "a"})]
    assert gateway.identity("conn-a") == (room_id, "a")

    player = registry.get(room_id).players["a"]
    assert player.points == 7
    assert player.is_active and player.is_game_master and not player.is_target


def test_create_room_generates_player_id_when_missing(machine, gateway, registry):
    room_id = machine.create_room("conn-x", CreateRoomData(player=PlayerInfo(name="Anon")))

    player_id = gateway.identity("conn-x").player_id
    assert player_id
    assert registry.get(room_id).game_master_id == player_id


def test_join_room_confirms_then_broadcasts_roster(room_ab, gateway, registry):
    joiner_events = gateway.events_for("conn-b")
    assert joiner_events[0] == ("connect", {"roomId": room_ab, "playerId": "b"})
    assert joiner_events[1][0] == "player_joined"

    state = gateway.last_event("conn-a", "player_joined")
    assert state["roomId"] == room_ab
    assert state["isActive"] is True
    assert state["gameMasterId"] == "a"
    assert {p["id"]: p["isGameMaster"] for p in state["players"]} == {"a": True, "b": False}
    assert all(p["points"] == 7 and p["isActive"] for p in state["players"])
    assert "awaitingFate" not in state["players"][0]


def test_join_room_accepts_lowercase_code(create_room, join_room, registry):
    room_id = create_room("conn-a", "a", "Alice")
    join_room("conn-b", room_id.lower(), "b", "Bob")
    assert "b" in registry.get(room_id).players


def test_join_unknown_room(join_room):
    with pytest.raises(RoomNotFound):
        join_room("conn-b", "ZZZZZZ", "b", "Bob")


def test_join_duplicate_player_id(room_ab, join_room):
    with pytest.raises(PlayerAlreadyInRoom):
        join_room("conn-c", room_ab, "b", "Impostor")


def test_join_ended_room(room_ab, join_room, registry):
    registry.get(room_ab).is_active = False
    with pytest.raises(GameEnded):
        join_room("conn-c", room_ab, "c", "Carol")


def test_creating_again_leaves_previous_room(create_room, registry, gateway):
    first = create_room("conn-a", "a", "Alice")
    second = create_room("conn-a", "a", "Alice")

    assert first not in registry
    assert gateway.identity("conn-a") == (second, "a")


def test_rejoining_own_room_as_only_player_keeps_room(create_room, join_room, registry, gateway):
    room_id = create_room("conn-a", "a", "Alice")
    gateway.clear()

    join_room("conn-a", room_id, "q", "Quinn")

    room = registry.get(room_id)
    assert room is not None
    assert list(room.players) == ["q"]
    assert room.game_master_id == "q"
    assert room.players["q"].is_game_master
    assert gateway.identity("conn-a") == (room_id, "q")
    assert gateway.events_for("conn-a")[0] == ("connect", {"roomId": room_id, "playerId": "q"})
    assert [p["id"] for p in gateway.last_event("conn-a", "player_joined")["players"]] == ["q"]


def test_reconnect_can_reuse_player_id(room_ab, machine, join_room, registry, gateway):
    machine.connection_closed("conn-b")
    assert "b" not in registry.get(room_ab).players

    join_room("conn-b2", room_ab, "b", "Bob")

    assert set(registry.get(room_ab).players) == {"a", "b"}
    assert gateway.identity("conn-b2") == (room_ab, "b")
    assert gateway.last_event("conn-b2", "connect") == {"roomId": room_ab, "playerId": "b"}


# ============ start ============

def test_start_game_requires_game_master(room_ab, machine):
    with pytest.raises(NotAuthorized):
        machine.start_game("conn-b", RoomRef(room_id=room_ab))


def test_start_game_unknown_room(machine):
    with pytest.raises(RoomNotFound):
        machine.start_game("conn-a", RoomRef(room_id="ZZZZZZ"))


def test_start_game_broadcasts_first_question(room_ab, machine, gateway, registry):
    gateway.clear()
    machine.start_game("conn-a", RoomRef(room_id=room_ab))

    room = registry.get(room_ab)
    assert room.current_question_index == 0
    for conn_id in ("conn-a", "conn-b"):
        payload = gateway.last_event(conn_id, "start_game")
        assert payload["currentQuestion"] == 0
        assert payload["question"]["id"] == room.questions[0].id
        assert "isCorrect" in payload["question"]["answers"][0]


def test_start_game_twice_is_rejected(started, machine):
    with pytest.raises(InvalidStateTransition):
        machine.start_game("conn-a", RoomRef(room_id=started))


def test_start_game_can_hide_correctness(registry, gateway, questions, rng):
    settings = Settings(_env_file=None, reveal_answer_correctness=False)
    machine = RoomStateMachine(registry, gateway, questions, settings, rng=rng)
    room_id = machine.create_room(
        "conn-a", CreateRoomData(player=PlayerInfo(id="a", name="Alice"))
    )

    machine.start_game("conn-a", RoomRef(room_id=room_id))

    payload = gateway.last_event("conn-a", "start_game")
    assert all("isCorrect" not in a for a in payload["question"]["answers"])


def test_start_game_with_empty_bank_ends_immediately(registry, gateway, settings, rng):
    machine = RoomStateMachine(registry, gateway, [], settings, rng=rng)
    room_id = machine.create_room(
        "conn-a", CreateRoomData(player=PlayerInfo(id="a", name="Alice"))
    )

    machine.start_game("conn-a", RoomRef(room_id=room_id))

    assert gateway.last_event("conn-a", "end_game") == {
        "winners": [{"id": "a", "name": "Alice", "points": 7}]
    }
    assert registry.get(room_id).is_active is False


# ============ submit ============

def test_submit_before_start(room_ab, machine):
    with pytest.raises(GameNotActive):
        _answer(machine, "conn-b", room_ab, "b", ["x"])


def test_submit_unknown_room(machine):
    with pytest.raises(GameNotActive):
        _answer(machine, "conn-b", "ZZZZZZ", "b", ["x"])


def test_submit_unknown_player(started, machine):
    with pytest.raises(PlayerNotFound):
        _answer(machine, "conn-b", started, "ghost", ["x"])


def test_correct_answer_adds_point(started, machine, gateway, registry):
    _answer(machine, "conn-b", started, "b", _correct_ids(registry, started))

    assert gateway.last_event("conn-b", "points_updated") == {"points": 8, "correct": True}
    roster = gateway.last_event("conn-a", "player_joined")["players"]
    assert {p["id"]: p["points"] for p in roster} == {"a": 7, "b": 8}


def test_wrong_answer_asks_for_fate(started, machine, gateway, registry):
    _answer(machine, "conn-b", started, "b", _wrong_ids(registry, started))

    assert gateway.last_event("conn-b", "submit_answer") == {
        "correct": False,
        "shouldChooseFate": True,
    }
    assert gateway.last_event("conn-b", "points_updated") is None
    assert registry.get(started).players["b"].points == 7
    assert gateway.last_event("conn-a", "player_joined") is not None


# ============ roulette / penalty ============

def test_wrong_answer_then_roulette_lose_two(started, machine, gateway, registry, rng):
    _answer(machine, "conn-b", started, "b", _wrong_ids(registry, started))
    rng.draws = [0.5]

    machine.play_roulette("conn-b", PlayerRef(room_id=started, player_id="b"))

    assert gateway.last_event("conn-b", "roulette_result") == {
        "outcome": {"type": "losePoints", "amount": 2},
        "points": 5,
        "isActive": True,
        "isTarget": False,
    }
    # 只有轉輪盤的玩家收到結果
    assert gateway.last_event("conn-a", "roulette_result") is None
    assert registry.get(started).players["b"].awaiting_fate is False


def test_roulette_elimination_keeps_player_in_room(started, machine, gateway, registry, rng):
    rng.draws = [0.85]

    machine.play_roulette("conn-a", PlayerRef(room_id=started, player_id="a"))

    room = registry.get(started)
    player = room.players["a"]
    assert player.points == -1
    assert player.is_active is False
    assert started in registry

    # 被淘汰的玩家仍然可以繼續作答
    _answer(machine, "conn-a", started, "a", _correct_ids(registry, started))
    assert player.points == 0
    assert player.is_active is False


def test_become_target_is_exclusive(started, machine, registry, rng):
    rng.draws = [0.95, 0.95]

    machine.play_roulette("conn-a", PlayerRef(room_id=started, player_id="a"))
    machine.play_roulette("conn-b", PlayerRef(room_id=started, player_id="b"))

    targets = [p.id for p in registry.get(started).players.values() if p.is_target]
    assert targets == ["b"]


def test_roulette_nothing(started, machine, gateway, rng):
    rng.draws = [0.1]
    machine.play_roulette("conn-b", PlayerRef(room_id=started, player_id="b"))
    result = gateway.last_event("conn-b", "roulette_result")
    assert result["outcome"] == {"type": "nothing"}
    assert result["points"] == 7


def test_roulette_errors(started, machine):
    with pytest.raises(RoomNotFound):
        machine.play_roulette("conn-b", PlayerRef(room_id="ZZZZZZ", player_id="b"))
    with pytest.raises(PlayerNotFound):
        machine.play_roulette("conn-b", PlayerRef(room_id=started, player_id="ghost"))


def test_penalty_requires_wrong_answer(started, machine):
    with pytest.raises(FateNotPending):
        machine.accept_penalty("conn-b", PlayerRef(room_id=started, player_id="b"))


def test_penalty_after_wrong_answer(started, machine, gateway, registry):
    _answer(machine, "conn-b", started, "b", _wrong_ids(registry, started))

    machine.accept_penalty("conn-b", PlayerRef(room_id=started, player_id="b"))

    assert gateway.last_event("conn-b", "points_updated") == {
        "points": 6,
        "correct": False,
        "isActive": True,
    }
    with pytest.raises(FateNotPending):
        machine.accept_penalty("conn-b", PlayerRef(room_id=started, player_id="b"))


# ============ next question ============

def test_next_question_requires_game_master(started, machine):
    with pytest.raises(NotAuthorized):
        machine.next_question("conn-b", RoomRef(room_id=started))


def test_next_question_before_start(room_ab, machine):
    with pytest.raises(GameNotActive):
        machine.next_question("conn-a", RoomRef(room_id=room_ab))


def test_next_question_until_end(started, machine, gateway, registry, join_room):
    room = registry.get(started)
    _answer(machine, "conn-b", started, "b", _correct_ids(registry, started))

    machine.next_question("conn-a", RoomRef(room_id=started))
    payload = gateway.last_event("conn-b", "next_question")
    assert payload["currentQuestion"] == 1
    assert payload["question"]["id"] == room.questions[1].id

    machine.next_question("conn-a", RoomRef(room_id=started))
    assert gateway.last_event("conn-a", "end_game") == {
        "winners": [{"id": "b", "name": "Bob", "points": 8}]
    }
    assert room.is_active is False

    with pytest.raises(GameNotActive):
        machine.next_question("conn-a", RoomRef(room_id=started))
    with pytest.raises(GameNotActive):
        _answer(machine, "conn-b", started, "b", ["x"])
    with pytest.raises(GameEnded):
        join_room("conn-c", started, "c", "Carol")


def test_end_game_tie(started, machine, gateway):
    machine.next_question("conn-a", RoomRef(room_id=started))
    machine.next_question("conn-a", RoomRef(room_id=started))

    winners = gateway.last_event("conn-b", "end_game")["winners"]
    assert sorted(w["id"] for w in winners) == ["a", "b"]


# ============ disconnect ============

def test_game_master_leaving_promotes_smallest_id(create_room, join_room, machine, registry, gateway):
    room_id = create_room("conn-m", "m", "Mallory")
    join_room("conn-z", room_id, "z", "Zed")
    join_room("conn-c", room_id, "c", "Carol")

    machine.connection_closed("conn-m")

    room = registry.get(room_id)
    masters = [p.id for p in room.players.values() if p.is_game_master]
    assert masters == ["c"]
    assert room.game_master_id == "c"
    assert gateway.last_event("conn-z", "player_joined")["gameMasterId"] == "c"

    # 新的 Game Master 可以開始遊戲
    machine.start_game("conn-c", RoomRef(room_id=room_id))


def test_last_player_leaving_removes_room(room_ab, machine, registry, join_room):
    machine.connection_closed("conn-b")
    assert room_ab in registry

    machine.connection_closed("conn-a")
    assert room_ab not in registry

    with pytest.raises(RoomNotFound):
        join_room("conn-c", room_ab, "c", "Carol")


def test_disconnect_is_noop_for_unknown(room_ab, machine, gateway):
    gateway.clear()
    machine.disconnect("ZZZZZZ", "a")
    machine.disconnect(room_ab, "ghost")
    machine.connection_closed("never-bound")
    assert gateway.sent == []


# ============ dispatch ============

def test_dispatch_routes_parsed_frames(machine, gateway, registry):
    frame = parse_frame('{"event": "create_room", "data": {"player": {"id": "a", "name": "Alice"}}}')
    machine.dispatch("conn-a", frame)

    room_id = gateway.identity("conn-a").room_id
    assert room_id in registry
