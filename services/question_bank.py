"""
題庫：啟動時載入一次，之後唯讀

預設使用內建題庫，也可以透過 ROULETTE_QUESTION_BANK_PATH 指定 JSON 檔，
格式與 Question 的序列化格式相同（camelCase）。
"""
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import TypeAdapter

from models import Question

logger = logging.getLogger(__name__)

DEFAULT_QUESTIONS = [
    {
        "id": "1",
        "text": "What is the capital of France?",
        "type": "single",
        "answers": [
            {"id": "1a", "text": "Paris", "isCorrect": True},
            {"id": "1b", "text": "London", "isCorrect": False},
            {"id": "1c", "text": "Berlin", "isCorrect": False},
            {"id": "1d", "text": "Madrid", "isCorrect": False},
        ],
    },
    {
        "id": "2",
        "text": "Which of the following are JavaScript frameworks or libraries?",
        "type": "multiple",
        "answers": [
            {"id": "2a", "text": "React", "isCorrect": True},
            {"id": "2b", "text": "Angular", "isCorrect": True},
            {"id": "2c", "text": "Vue", "isCorrect": True},
            {"id": "2d", "text": "Python", "isCorrect": False},
        ],
    },
    {
        "id": "3",
        "text": "Which planet is known as the Red Planet?",
        "type": "single",
        "answers": [
            {"id": "3a", "text": "Venus", "isCorrect": False},
            {"id": "3b", "text": "Mars", "isCorrect": True},
            {"id": "3c", "text": "Jupiter", "isCorrect": False},
            {"id": "3d", "text": "Saturn", "isCorrect": False},
        ],
    },
    {
        "id": "4",
        "text": "Which of these are programming languages?",
        "type": "multiple",
        "answers": [
            {"id": "4a", "text": "Java", "isCorrect": True},
            {"id": "4b", "text": "HTML", "isCorrect": False},
            {"id": "4c", "text": "Python", "isCorrect": True},
            {"id": "4d", "text": "CSS", "isCorrect": False},
        ],
    },
    {
        "id": "5",
        "text": "Who painted the Mona Lisa?",
        "type": "single",
        "answers": [
            {"id": "5a", "text": "Vincent van Gogh", "isCorrect": False},
            {"id": "5b", "text": "Pablo Picasso", "isCorrect": False},
            {"id": "5c", "text": "Leonardo da Vinci", "isCorrect": True},
            {"id": "5d", "text": "Michelangelo", "isCorrect": False},
        ],
    },
]

_questions_adapter = TypeAdapter(List[Question])


def load_question_bank(path: Optional[str] = None) -> List[Question]:
    """
    載入題庫

    參數：
        path: JSON 檔路徑；None 表示使用內建題庫

    異常：
        OSError: 檔案無法讀取
        pydantic.ValidationError: 題目格式錯誤
    """
    if path is None:
        questions = _questions_adapter.validate_python(DEFAULT_QUESTIONS)
        logger.info(f"Loaded {len(questions)} built-in questions")
        return questions

    raw = Path(path).read_text(encoding="utf-8")
    questions = _questions_adapter.validate_python(json.loads(raw))
    if not questions:
        logger.warning(f"Question bank {path} is empty")
    logger.info(f"Loaded {len(questions)} questions from {path}")
    return questions
