"""
quiz_modes.py
Basic and scheduled quiz modes.
Basic: participants submit every answer at once and are scored immediately.
Scheduled: submissions are stored blind and scored only against the
questions the host has revealed so far.
"""
from collections import deque
from typing import Any, Deque, Dict, List

from .buzzer import BuzzerSession
from .models import (
    LeaderboardEntry,
    ParticipantAnswer,
    QuizMode,
    QuizSettings,
    RevealState,
    Submission,
    now_ms,
)

MAX_ANNOUNCEMENTS = 10


class QuizModes:
    """Mode selection plus the submission books for the non-buzzer modes."""

    def __init__(self, buzzer: BuzzerSession):
        self.buzzer = buzzer
        self.mode: QuizMode = QuizMode.BUZZER
        self.settings = QuizSettings()
        self.basic_submissions: Dict[str, Submission] = {}       # connection id -> submission
        self.scheduled_submissions: Dict[str, Submission] = {}
        self.revealed: List[RevealState] = self._fresh_reveals()
        self.leaderboard_visible: bool = False
        self.announcements: Deque[dict] = deque(maxlen=MAX_ANNOUNCEMENTS)

    def _fresh_reveals(self) -> List[RevealState]:
        return [RevealState(question_index=i) for i in range(self.buzzer.total_questions)]

    def reset_reveals(self) -> None:
        self.revealed = self._fresh_reveals()

    # === MODE / SETTINGS ===

    def set_mode(self, mode: QuizMode, settings: Dict[str, Any]) -> QuizSettings:
        """Switches mode, merges settings and clears that mode's state."""
        self.mode = mode
        self.settings = self._merged(dict(settings, mode=mode.value))
        if mode == QuizMode.BASIC:
            self.basic_submissions.clear()
        elif mode == QuizMode.SCHEDULED:
            self.scheduled_submissions.clear()
            self.reset_reveals()
            self.leaderboard_visible = False
            self.announcements.clear()
        return self.settings

    def update_settings(self, settings: Dict[str, Any]) -> QuizSettings:
        self.settings = self._merged(settings)
        return self.settings

    def _merged(self, changes: Dict[str, Any]) -> QuizSettings:
        # Raises pydantic.ValidationError on bad values; the coordinator reports it.
        # Validated alone first so camelCase and snake_case keys both land.
        update = QuizSettings.model_validate(changes).model_dump(exclude_unset=True)
        merged = self.settings.model_dump()
        merged.update(update)
        return QuizSettings.model_validate(merged)

    # === BASIC MODE ===

    def _score(self, answers: List[ParticipantAnswer], revealed_only: bool = False) -> int:
        questions = self.buzzer.questions
        score = 0
        for answer in answers:
            if not 0 <= answer.question_index < len(questions):
                continue
            if revealed_only and not self._is_revealed(answer.question_index):
                continue
            if answer.selected_option == questions[answer.question_index].correct_index:
                score += 1
        return score

    def submit_basic(self, connection_id: str, participant_name: str,
                     answers: List[ParticipantAnswer]) -> Submission:
        submission = Submission(
            participant_name=participant_name,
            socket_id=connection_id,
            answers=answers,
            submission_time=now_ms(),
            score=self._score(answers),
        )
        self.basic_submissions[connection_id] = submission
        return submission

    # === SCHEDULED MODE ===

    def submit_scheduled(self, connection_id: str, participant_name: str,
                         answers: List[ParticipantAnswer]) -> Submission:
        submission = Submission(
            participant_name=participant_name,
            socket_id=connection_id,
            answers=answers,
            submission_time=now_ms(),
        )
        self.scheduled_submissions[connection_id] = submission
        return submission

    def _is_revealed(self, question_index: int) -> bool:
        return 0 <= question_index < len(self.revealed) and self.revealed[question_index].is_revealed

    def reveal(self, question_index: int) -> bool:
        """Marks one question revealed. Out-of-range indices are ignored (False)."""
        if not 0 <= question_index < len(self.revealed):
            return False
        self.revealed[question_index] = RevealState(
            question_index=question_index, is_revealed=True, revealed_at=now_ms()
        )
        return True

    def reveal_all(self) -> None:
        stamp = now_ms()
        self.revealed = [
            RevealState(question_index=i, is_revealed=True, revealed_at=stamp)
            for i in range(len(self.revealed))
        ]

    def leaderboard(self) -> List[LeaderboardEntry]:
        """Empty until something is revealed; score desc, then earliest submission."""
        revealed_count = sum(1 for r in self.revealed if r.is_revealed)
        if revealed_count == 0:
            return []

        rows = sorted(
            (
                (self._score(s.answers, revealed_only=True), s)
                for s in self.scheduled_submissions.values()
            ),
            key=lambda row: (-row[0], row[1].submission_time),
        )
        return [
            LeaderboardEntry(
                rank=position,
                participant_name=submission.participant_name,
                score=score,
                submission_time=submission.submission_time,
                questions_revealed=revealed_count,
            )
            for position, (score, submission) in enumerate(rows, start=1)
        ]

    def announce(self, message: str) -> dict:
        announcement = {"message": message, "timestamp": now_ms()}
        self.announcements.append(announcement)
        return announcement
