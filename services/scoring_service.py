"""
計分服務：判斷答案是否正確、計算贏家

純計算邏輯，不改變 Room 的狀態（由 RoomStateMachine 負責）
"""
from typing import Iterable, List, Sequence

from models import Player, Question, QuestionType


def is_answer_correct(question: Question, selected_ids: Sequence[str]) -> bool:
    """
    判斷玩家提交的答案是否正確

    規則：
    - single：只看第一個選擇，必須是正確選項之一
    - multiple：選擇的集合必須與正確選項集合完全相同
      （重複的選擇視為同一個）

    參數：
        question: 當前題目
        selected_ids: 玩家選擇的 answer id

    返回：
        True 如果答對，False 否則

    範例：
        single, 正確 = {1a}: [1a] -> True, [1b] -> False, [] -> False
        multiple, 正確 = {2a, 2b}: [2b, 2a] -> True, [2a] -> False
    """
    correct_ids = question.correct_answer_ids()

    if question.type == QuestionType.SINGLE:
        return bool(selected_ids) and selected_ids[0] in correct_ids

    return set(selected_ids) == set(correct_ids)


def compute_winners(players: Iterable[Player]) -> List[Player]:
    """
    找出分數最高的玩家（平手全部都算贏家）

    只要有任何玩家，結果就不會是空的
    """
    players = list(players)
    if not players:
        return []

    highest = max(p.points for p in players)
    return [p for p in players if p.points == highest]
