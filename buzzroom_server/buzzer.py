"""
buzzer.py
Buzzer Session State.
Question pointer, per-question buzz-in order and the team scoreboard.
Pure in-memory; only the coordinator mutates it.
"""
from typing import Dict, List, Optional

from .models import Question
from .questions import default_questions


class BuzzerSession:
    """
    BuzzerSession Class.
    Rank is the position in buzz_order, which is the order the coordinator
    accepted buzzes in. Client timestamps never influence it.
    """
    def __init__(self, questions: Optional[List[Question]] = None):
        self.questions: List[Question] = list(questions) if questions else default_questions()
        self.has_custom_questions: bool = questions is not None
        self.question_index: int = 1
        self.buzz_order: List[str] = []
        self.scoreboard: Dict[str, int] = {}

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    def current_question(self) -> Optional[Question]:
        """The question under the pointer, or None when the pointer is out of range."""
        if 1 <= self.question_index <= len(self.questions):
            return self.questions[self.question_index - 1]
        return None

    def question_payload(self) -> dict:
        question = self.current_question()
        return {
            "questionNumber": self.question_index,
            "questionData": question.dump() if question else None,
            "totalQuestions": self.total_questions,
        }

    # === QUESTION FLOW ===

    def change_question(self, question_number: int) -> Optional[Question]:
        """Moves the pointer (callers clamp) and opens a fresh round."""
        self.question_index = question_number
        self.buzz_order.clear()
        return self.current_question()

    def set_custom_questions(self, questions: List[Question]) -> None:
        self.questions = list(questions)
        self.has_custom_questions = True
        self.question_index = 1
        self.buzz_order.clear()

    # === BUZZING ===

    def cast_buzz(self, team_name: str) -> Optional[int]:
        """
        Appends team_name to this round's order and returns its rank.
        Returns None for a repeat buzz, which leaves the round untouched.
        """
        if team_name in self.buzz_order:
            return None
        self.buzz_order.append(team_name)
        return len(self.buzz_order)

    def reset_buzzer(self) -> None:
        self.buzz_order.clear()

    # === SCOREBOARD ===

    def ensure_team(self, team_name: str) -> None:
        self.scoreboard.setdefault(team_name, 0)

    def award_point(self, team_name: str, delta: int = 1) -> Optional[int]:
        """Adds delta to an existing entry. Unknown names are refused (None)."""
        if team_name not in self.scoreboard:
            return None
        self.scoreboard[team_name] += delta
        return self.scoreboard[team_name]

    def remove_team(self, team_name: str) -> bool:
        return self.scoreboard.pop(team_name, None) is not None

    def reset(self) -> None:
        """Host left: back to question 1 with no teams or scores."""
        self.question_index = 1
        self.buzz_order.clear()
        self.scoreboard.clear()
