"""
機率服務：題目洗牌與輪盤抽獎

純計算邏輯，不持有任何狀態。
所有函式都可以傳入自己的 random.Random，方便測試時固定結果。
"""
import random
from typing import List, Sequence, Tuple, TypeVar

from models import OutcomeType, Question, RouletteOutcome

T = TypeVar("T")

# 順序固定：抽獎時依此順序累加機率
ROULETTE_TABLE: Tuple[Tuple[RouletteOutcome, float], ...] = (
    (RouletteOutcome(type=OutcomeType.NOTHING), 0.4),
    (RouletteOutcome(type=OutcomeType.LOSE_POINTS, amount=2), 0.3),
    (RouletteOutcome(type=OutcomeType.LOSE_POINTS, amount=8), 0.2),
    (RouletteOutcome(type=OutcomeType.BECOME_TARGET), 0.1),
)


def shuffle(sequence: Sequence[T], rng=random) -> List[T]:
    """
    回傳一個隨機排列的新 list（Fisher-Yates）

    不會修改傳入的 sequence
    """
    shuffled = list(sequence)
    rng.shuffle(shuffled)
    return shuffled


def shuffle_questions(questions: Sequence[Question], rng=random) -> List[Question]:
    """
    為一個房間產生自己的題目順序

    題目順序洗牌一次，每一題的選項再各自洗牌一次。
    Question 是 frozen model，所以回傳的是新的複本。
    """
    return [
        question.model_copy(update={"answers": shuffle(question.answers, rng)})
        for question in shuffle(questions, rng)
    ]


def draw_roulette_outcome(rng=random) -> RouletteOutcome:
    """
    依照 ROULETTE_TABLE 抽出一個結果

    機率分佈：
    - nothing: 40%
    - losePoints(2): 30%
    - losePoints(8): 20%
    - becomeTarget: 10%

    浮點誤差導致沒有命中任何結果時，固定回傳 nothing
    """
    draw = rng.random()
    cumulative = 0.0

    for outcome, probability in ROULETTE_TABLE:
        cumulative += probability
        if draw <= cumulative:
            return outcome.model_copy()

    return RouletteOutcome(type=OutcomeType.NOTHING)
