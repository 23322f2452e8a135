"""
Client State Projectors for BuzzRoom.
Every connected client folds the broadcast stream into a local snapshot and
gates its own controls on it. Host and participant variants differ only in
what they may do and see; the server never checks which one a client runs.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

TOP_RANKINGS = 3


@dataclass
class Ranking:
    """One accepted buzz as shown in the top-3 list."""
    team_name: str
    rank: int
    timestamp: Optional[float] = None


@dataclass
class QuizSnapshot:
    question_number: int = 1
    total_questions: int = 0
    question: Optional[Dict[str, Any]] = None
    teams: Dict[str, str] = field(default_factory=dict)  # socket id -> team name
    scores: Dict[str, int] = field(default_factory=dict)
    buzz_order: List[str] = field(default_factory=list)
    rankings: List[Ranking] = field(default_factory=list)
    can_buzz: bool = False
    has_buzzed: bool = False
    revealed_answer: Optional[int] = None
    celebrating: Optional[str] = None
    mode: str = "buzzer"
    announcements: List[Dict[str, Any]] = field(default_factory=list)
    ended_message: Optional[str] = None
    last_error: Optional[str] = None


@dataclass
class PollSnapshot:
    current_poll: Optional[Dict[str, Any]] = None
    results: Optional[Dict[str, Any]] = None
    poll_history: List[Dict[str, Any]] = field(default_factory=list)
    participants: Dict[str, str] = field(default_factory=dict)  # socket id -> name
    has_voted: bool = False
    my_vote: Optional[int] = None
    last_error: Optional[str] = None


class _Projector:
    """Shared plumbing: event-type dispatch and identity bookkeeping."""

    def __init__(self, is_host: bool = False):
        self.is_host = is_host
        self.socket_id: Optional[str] = None
        self.name: Optional[str] = None
        self._handlers: Dict[str, Callable[[Dict[str, Any]], None]] = {}

    def register(self, name: str) -> None:
        """Records the display name this client registered under."""
        self.name = name

    @property
    def is_registered(self) -> bool:
        return self.name is not None

    def apply(self, message: Dict[str, Any]) -> bool:
        """Folds one server event. Returns False for events this projector ignores."""
        handler = self._handlers.get(message.get("type", ""))
        if handler is None:
            return False
        handler(message.get("payload") or {})
        return True

    def _on_connected(self, payload: Dict[str, Any]) -> None:
        self.socket_id = payload.get("socketId")


class QuizProjector(_Projector):
    """Buzzer quiz view. Hosts never buzz; participants lose the buzzer once ranked."""

    def __init__(self, is_host: bool = False):
        super().__init__(is_host)
        self.state = QuizSnapshot()
        self._handlers = {
            "connected": self._on_connected,
            "question-change": self._on_question_change,
            "buzz": self._on_buzz,
            "reset-buzzer": self._on_reset_buzzer,
            "register-team": self._on_register_team,
            "disconnect-team": self._on_disconnect_team,
            "celebrate": self._on_celebrate,
            "answer-revealed": self._on_answer_revealed,
            "quiz-ended": self._on_quiz_ended,
            "quiz-mode-set": self._on_quiz_mode_set,
            "announcement": self._on_announcement,
            "session-state": self._on_session_state,
            "error": self._on_error,
        }

    # --- round lifecycle ---

    def _open_round(self) -> None:
        self.state.buzz_order = []
        self.state.rankings = []
        self.state.has_buzzed = False
        self.state.can_buzz = not self.is_host

    def _on_question_change(self, payload: Dict[str, Any]) -> None:
        self.state.question_number = payload.get("questionNumber", self.state.question_number)
        self.state.question = payload.get("questionData")
        if payload.get("totalQuestions") is not None:
            self.state.total_questions = payload["totalQuestions"]
        self.state.revealed_answer = None
        self.state.celebrating = None
        self._open_round()

    def _on_reset_buzzer(self, payload: Dict[str, Any]) -> None:
        self._open_round()

    def _is_me(self, payload: Dict[str, Any]) -> bool:
        if self.socket_id is not None and payload.get("socketId") == self.socket_id:
            return True
        return self.name is not None and payload.get("teamName") == self.name

    def _on_buzz(self, payload: Dict[str, Any]) -> None:
        team_name = payload.get("teamName")
        if team_name is None or team_name in self.state.buzz_order:
            return
        self.state.buzz_order.append(team_name)
        if len(self.state.rankings) < TOP_RANKINGS:
            self.state.rankings.append(Ranking(
                team_name=team_name,
                rank=payload.get("rank", len(self.state.buzz_order)),
                timestamp=payload.get("timestamp"),
            ))

        if self.is_host:
            return
        accepted = max(payload.get("totalResponses", 0), len(self.state.buzz_order))
        if self._is_me(payload):
            self.state.has_buzzed = True
            self.state.can_buzz = False
        elif accepted >= TOP_RANKINGS:
            self.state.can_buzz = False

    # --- roster / scores ---

    def _on_register_team(self, payload: Dict[str, Any]) -> None:
        socket_id, team_name = payload.get("socketId"), payload.get("teamName")
        if socket_id is None or team_name is None:
            return
        self.state.teams[socket_id] = team_name
        self.state.scores.setdefault(team_name, 0)

    def _on_disconnect_team(self, payload: Dict[str, Any]) -> None:
        team_name = self.state.teams.pop(payload.get("socketId"), None) or payload.get("teamName")
        if team_name and team_name not in self.state.teams.values():
            self.state.scores.pop(team_name, None)

    def _on_celebrate(self, payload: Dict[str, Any]) -> None:
        team_name = payload.get("teamName")
        if team_name is None:
            return
        self.state.scores[team_name] = self.state.scores.get(team_name, 0) + payload.get("points", 1)
        self.state.celebrating = team_name

    def _on_answer_revealed(self, payload: Dict[str, Any]) -> None:
        self.state.revealed_answer = payload.get("revealedAnswer")

    def _on_quiz_ended(self, payload: Dict[str, Any]) -> None:
        self.state = QuizSnapshot(
            total_questions=self.state.total_questions,
            ended_message=payload.get("message"),
        )
        self.name = None

    def _on_quiz_mode_set(self, payload: Dict[str, Any]) -> None:
        self.state.mode = payload.get("mode", self.state.mode)
        if payload.get("questions") is not None:
            self.state.total_questions = len(payload["questions"])

    def _on_announcement(self, payload: Dict[str, Any]) -> None:
        self.state.announcements.append(payload)

    def _on_error(self, payload: Dict[str, Any]) -> None:
        self.state.last_error = payload.get("message")

    def _on_session_state(self, payload: Dict[str, Any]) -> None:
        """Full resync after a (re)connect; replaces whatever was folded before."""
        if payload.get("socketId"):
            self.socket_id = payload["socketId"]
        self.state.question_number = payload.get("questionNumber", 1)
        self.state.question = payload.get("questionData")
        self.state.total_questions = payload.get("totalQuestions", 0)
        self.state.teams = {t["socketId"]: t["teamName"] for t in payload.get("teams", [])}
        self.state.scores = dict(payload.get("scores", {}))
        self.state.mode = payload.get("mode", "buzzer")
        self.state.announcements = list(payload.get("announcements", []))
        self.state.ended_message = None

        self._open_round()
        for position, team_name in enumerate(payload.get("buzzOrder", []), start=1):
            self._on_buzz({"teamName": team_name, "rank": position, "totalResponses": position})


class PollProjector(_Projector):
    """Audience poll view. Participants only see the tally when the host allows it."""

    def __init__(self, is_host: bool = False):
        super().__init__(is_host)
        self.state = PollSnapshot()
        self._handlers = {
            "connected": self._on_connected,
            "poll-created": self._on_poll_created,
            "poll-updated": self._on_poll_updated,
            "poll-closed": self._on_poll_closed,
            "vote-cast": self._on_vote_cast,
            "register-participant": self._on_register_participant,
            "disconnect-participant": self._on_disconnect_participant,
            "session-state": self._on_session_state,
            "error": self._on_error,
        }

    @property
    def can_vote(self) -> bool:
        poll = self.state.current_poll
        return (
            not self.is_host
            and poll is not None
            and bool(poll.get("isActive"))
            and not self.state.has_voted
            and self.is_registered
        )

    def _visible_results(self, poll: Dict[str, Any], results: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if self.is_host or poll.get("showResults"):
            return results
        return None

    def _on_poll_created(self, payload: Dict[str, Any]) -> None:
        poll = payload.get("poll")
        if poll is None:
            return
        same_poll = self.state.current_poll is not None and self.state.current_poll.get("id") == poll.get("id")
        self.state.current_poll = poll
        if not same_poll:
            self.state.results = None
            self.state.has_voted = False
            self.state.my_vote = None

    def _on_poll_updated(self, payload: Dict[str, Any]) -> None:
        poll = payload.get("poll")
        if poll is None:
            return
        self.state.current_poll = poll
        self.state.results = self._visible_results(poll, payload.get("results"))

    def _on_poll_closed(self, payload: Dict[str, Any]) -> None:
        results = payload.get("results") or {}
        poll = self.state.current_poll
        if poll is None or poll.get("id") != results.get("pollId"):
            return
        closed = dict(poll, isActive=False, closedAt=payload.get("closedAt"))
        self.state.current_poll = closed
        self.state.poll_history.insert(0, closed)
        self.state.results = self._visible_results(closed, results)

    def _on_vote_cast(self, payload: Dict[str, Any]) -> None:
        poll = self.state.current_poll
        if poll is not None and payload.get("pollId") not in (None, poll.get("id")):
            return
        self.state.has_voted = True
        self.state.my_vote = payload.get("optionIndex")

    def _on_register_participant(self, payload: Dict[str, Any]) -> None:
        if payload.get("socketId") is not None:
            self.state.participants[payload["socketId"]] = payload.get("teamName")

    def _on_disconnect_participant(self, payload: Dict[str, Any]) -> None:
        self.state.participants.pop(payload.get("socketId"), None)

    def _on_error(self, payload: Dict[str, Any]) -> None:
        self.state.last_error = payload.get("message")

    def _on_session_state(self, payload: Dict[str, Any]) -> None:
        if payload.get("socketId"):
            self.socket_id = payload["socketId"]
        poll = payload.get("poll")
        if poll is None:
            self.state.current_poll = None
            self.state.results = None
            return
        self._on_poll_created({"poll": poll})
        self.state.results = self._visible_results(poll, payload.get("results"))
        if self.name is not None and self.name in poll.get("votes", {}):
            self.state.has_voted = True
            self.state.my_vote = poll["votes"][self.name]
