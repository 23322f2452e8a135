"""
coordinator.py
The Session Coordinator.
The single authority for one session: every participant/host action goes
through one asyncio.Queue and is applied to completion, deliveries included,
before the next one is taken. That total order is what makes "who buzzed
first" well defined.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from fastapi import WebSocket
from pydantic import BaseModel, ValidationError

from .buzzer import BuzzerSession
from .config import Settings
from .errors import ProtocolError
from .models import (
    AnnouncementPayload,
    AnswerRevealedPayload,
    BuzzEvent,
    BuzzPayload,
    CastVotePayload,
    CelebrationPayload,
    ClientFrame,
    CreatePollPayload,
    CustomQuestionsPayload,
    EmptyPayload,
    LeaderboardVisibilityPayload,
    PollRefPayload,
    QuestionChangePayload,
    QuizMode,
    QuizModePayload,
    RegisterTeamPayload,
    RevealQuestionPayload,
    Role,
    SessionSummary,
    SettingsUpdatePayload,
    SubmissionPayload,
    now_ms,
)
from .polls import PollBoard, PollSession
from .quiz_modes import QuizModes
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

QUIZ_ENDED_MESSAGE = "The quiz has been ended by the host."

_CONNECT = "connect"
_DISCONNECT = "disconnect"
_EVENT = "event"


@dataclass
class Action:
    """One queued unit of work. `frame` is the raw JSON a client sent."""
    connection_id: str
    kind: str = _EVENT
    frame: Any = None
    connection: Optional[Connection] = None


@dataclass
class Delivery:
    """An outbound event; target None means every connection in the session."""
    message: Dict[str, Any]
    target: Optional[str] = None


def event(event_type: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": event_type, "payload": payload if payload is not None else {}}


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    where = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"{where}: {first.get('msg', 'invalid value')}"


class SessionCoordinator:
    """
    SessionCoordinator Class.
    Owns the registry and session state of one session and is the only
    writer of them. Handlers are synchronous and return the deliveries they
    produce; dispatch() sends those before the queue yields the next action.
    """

    # event type -> (handler name, payload model, host only)
    HANDLERS: Dict[str, Tuple[str, Type[BaseModel], bool]] = {
        # buzzer quiz
        "register-team": ("_on_register_team", RegisterTeamPayload, False),
        "leave-quiz": ("_on_leave_quiz", EmptyPayload, False),
        "question-change": ("_on_question_change", QuestionChangePayload, True),
        "buzz": ("_on_buzz", BuzzPayload, False),
        "reset-buzzer": ("_on_reset_buzzer", EmptyPayload, True),
        "trigger-celebration": ("_on_trigger_celebration", CelebrationPayload, True),
        "request-question-number": ("_on_request_question_number", EmptyPayload, False),
        "request-session-state": ("_on_request_session_state", EmptyPayload, False),
        "set-custom-questions": ("_on_set_custom_questions", CustomQuestionsPayload, True),
        "answer-revealed": ("_on_answer_revealed", AnswerRevealedPayload, True),
        "host-exit-quiz": ("_on_host_exit_quiz", EmptyPayload, True),
        # polling
        "register-participant": ("_on_register_participant", RegisterTeamPayload, False),
        "create-poll": ("_on_create_poll", CreatePollPayload, True),
        "cast-vote": ("_on_cast_vote", CastVotePayload, False),
        "toggle-results": ("_on_toggle_results", PollRefPayload, True),
        "close-poll": ("_on_close_poll", PollRefPayload, True),
        "request-current-poll": ("_on_request_current_poll", EmptyPayload, False),
        # basic / scheduled modes
        "set-quiz-mode": ("_on_set_quiz_mode", QuizModePayload, True),
        "quiz-settings-update": ("_on_quiz_settings_update", SettingsUpdatePayload, True),
        "submit-basic-quiz": ("_on_submit_basic_quiz", SubmissionPayload, False),
        "submit-quiz": ("_on_submit_basic_quiz", SubmissionPayload, False),
        "get-submissions-count": ("_on_get_submissions_count", EmptyPayload, False),
        "get-results-summary": ("_on_get_results_summary", EmptyPayload, False),
        "submit-answers": ("_on_submit_answers", SubmissionPayload, False),
        "submit-scheduled-quiz": ("_on_submit_answers", SubmissionPayload, False),
        "reveal-question": ("_on_reveal_question", RevealQuestionPayload, True),
        "reveal-all": ("_on_reveal_all", EmptyPayload, True),
        "toggle-leaderboard-visibility": ("_on_toggle_leaderboard", LeaderboardVisibilityPayload, True),
        "get-leaderboard-status": ("_on_get_leaderboard_status", EmptyPayload, False),
        "get-all-submissions": ("_on_get_all_submissions", EmptyPayload, False),
        "send-announcement": ("_on_send_announcement", AnnouncementPayload, True),
    }

    def __init__(self, session_id: str, settings: Optional[Settings] = None,
                 on_empty: Optional[Callable[["SessionCoordinator"], None]] = None):
        self.session_id = session_id
        self.settings = settings or Settings()
        self.registry = ConnectionRegistry()
        self.buzzer = BuzzerSession()
        self.polls = PollBoard()
        self.modes = QuizModes(self.buzzer)

        self._queue: asyncio.Queue[Action] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._closed = False
        # Called when the last connection leaves and nothing else is queued.
        self.on_empty = on_empty

    # === QUEUE LIFECYCLE ===

    def start(self) -> None:
        """Starts the consumer task on the running loop (idempotent)."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run(), name=f"coordinator:{self.session_id}")

    async def stop(self) -> None:
        if self._worker:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

    async def run(self) -> None:
        """Consumer loop: one action at a time, strictly in arrival order."""
        while not self._closed:
            action = await self._queue.get()
            try:
                await self.dispatch(action)
            except Exception:
                # A broken handler must not take the whole session down.
                logger.exception("[COORD] %s: action %s failed", self.session_id, action.kind)
            finally:
                self._queue.task_done()

    def close(self) -> None:
        """Lets the worker finish the current action and exit."""
        self._closed = True

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def drain(self) -> None:
        """Waits until every queued action has been applied and delivered."""
        await self._queue.join()

    # === PRODUCERS ===

    def join(self, websocket: WebSocket, role: Role = Role.PARTICIPANT) -> Connection:
        """Mints a connection and queues its registration. Returns it immediately."""
        connection = Connection(str(uuid.uuid4()), websocket, role)
        self._queue.put_nowait(Action(connection.id, kind=_CONNECT, connection=connection))
        return connection

    def leave(self, connection_id: str) -> None:
        self._queue.put_nowait(Action(connection_id, kind=_DISCONNECT))

    def submit(self, connection_id: str, frame: Any) -> None:
        self._queue.put_nowait(Action(connection_id, kind=_EVENT, frame=frame))

    # === APPLY + DELIVER ===

    async def dispatch(self, action: Action) -> None:
        await self._deliver(self.apply(action))

    def apply(self, action: Action) -> List[Delivery]:
        if action.kind == _CONNECT:
            return self._on_connect(action.connection)
        if action.kind == _DISCONNECT:
            return self._on_disconnect(action.connection_id)

        connection = self.registry.get(action.connection_id)
        if connection is None:
            logger.debug("[COORD] dropping frame from unknown connection %s", action.connection_id)
            return []

        try:
            frame = ClientFrame.model_validate(action.frame)
        except ValidationError as exc:
            return [self._error(connection, f"Malformed frame: {_describe(exc)}")]

        entry = self.HANDLERS.get(frame.type)
        if entry is None:
            return [self._error(connection, f"Unknown event type: {frame.type}")]
        handler_name, payload_model, host_only = entry

        if host_only and self.settings.enforce_roles and not connection.is_host:
            logger.info("[COORD] refused %s from participant %s", frame.type, connection.id[:8])
            return [self._error(connection, f"Only host can send {frame.type}")]

        try:
            payload = payload_model.model_validate(frame.payload)
        except ValidationError as exc:
            return [self._error(connection, f"Invalid {frame.type} payload: {_describe(exc)}")]

        handler: Callable[[Connection, Any], List[Delivery]] = getattr(self, handler_name)
        try:
            return handler(connection, payload)
        except ProtocolError as exc:
            return [self._error(connection, exc.message)]
        except ValidationError as exc:
            return [self._error(connection, f"Invalid {frame.type} payload: {_describe(exc)}")]

    async def _deliver(self, deliveries: List[Delivery]) -> None:
        for delivery in deliveries:
            if delivery.target is None:
                targets = self.registry.all()
            else:
                target = self.registry.get(delivery.target)
                targets = [target] if target else []
            if targets:
                await asyncio.gather(*(self._send(c, delivery.message) for c in targets))

    @staticmethod
    async def _send(connection: Connection, message: Dict[str, Any]) -> None:
        try:
            await connection.websocket.send_json(message)
        except Exception as e:
            # Connection might be dead; its disconnect action cleans up.
            logger.warning("[COORD] send %s to %s failed: %s", message.get("type"), connection.id[:8], e)

    # --- delivery helpers ---

    @staticmethod
    def _broadcast(event_type: str, payload: Optional[Dict[str, Any]] = None) -> Delivery:
        return Delivery(event(event_type, payload))

    @staticmethod
    def _unicast(connection: Connection, event_type: str,
                 payload: Optional[Dict[str, Any]] = None) -> Delivery:
        return Delivery(event(event_type, payload), target=connection.id)

    def _error(self, connection: Connection, message: str) -> Delivery:
        logger.info("[COORD] %s: error to %s: %s", self.session_id, connection.id[:8], message)
        return self._unicast(connection, "error", {"message": message})

    # === CONNECTION LIFECYCLE ===

    def _on_connect(self, connection: Connection) -> List[Delivery]:
        self.registry.add(connection)
        logger.info("[COORD] %s: client connected %s as %s",
                    self.session_id, connection.id[:8], connection.role.value)
        return [
            self._unicast(connection, "connected", {
                "socketId": connection.id,
                "sessionId": self.session_id,
                "role": connection.role.value,
            }),
            self._unicast(connection, "question-change", self.buzzer.question_payload()),
        ]

    def _on_disconnect(self, connection_id: str) -> List[Delivery]:
        connection = self.registry.disconnect(connection_id)
        if connection is None:
            return []
        logger.info("[COORD] %s: client disconnected %s", self.session_id, connection_id[:8])

        deliveries = []
        if connection.team_name is not None:
            if (self.settings.score_retention == "connection"
                    and not self.registry.advertises_team(connection.team_name)):
                self.buzzer.remove_team(connection.team_name)
            deliveries.append(self._broadcast("disconnect-team", {
                "socketId": connection.id,
                "teamName": connection.team_name,
            }))
        if connection.participant_name is not None:
            deliveries.append(self._broadcast("disconnect-participant", {
                "socketId": connection.id,
                "teamName": connection.participant_name,
            }))
        if len(self.registry) == 0 and self._queue.empty() and self.on_empty is not None:
            self.on_empty(self)
        return deliveries

    # === BUZZER QUIZ HANDLERS ===

    def _question_change(self) -> Dict[str, Any]:
        return self.buzzer.question_payload()

    def _on_register_team(self, connection: Connection, payload: RegisterTeamPayload) -> List[Delivery]:
        previous = connection.team_name
        self.registry.register_team(connection.id, payload.team_name)
        self.buzzer.ensure_team(payload.team_name)
        if (previous and previous != payload.team_name
                and self.settings.score_retention == "connection"
                and not self.registry.advertises_team(previous)):
            self.buzzer.remove_team(previous)
        logger.info("[COORD] %s: team registered %r", self.session_id, payload.team_name)

        deliveries = [self._unicast(connection, "quiz-mode-set", {
            "mode": self.modes.mode.value,
            "settings": self.modes.settings.dump(),
            "questions": [q.dump() for q in self.buzzer.questions],
        })]
        if self.modes.mode == QuizMode.BUZZER:
            deliveries.append(self._unicast(connection, "question-change", self._question_change()))
        deliveries.append(self._broadcast("register-team", {
            "socketId": connection.id,
            "teamName": payload.team_name,
        }))
        return deliveries

    def _on_leave_quiz(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        team_name = connection.team_name
        if team_name is None:
            return []
        connection.team_name = None
        # An explicit leave prunes under either retention policy.
        if not self.registry.advertises_team(team_name):
            self.buzzer.remove_team(team_name)
        return [self._broadcast("disconnect-team", {"socketId": connection.id, "teamName": team_name})]

    def _on_question_change(self, connection: Connection, payload: QuestionChangePayload) -> List[Delivery]:
        self.buzzer.change_question(payload.question_number)
        logger.info("[COORD] %s: question -> %d", self.session_id, payload.question_number)
        return [self._broadcast("question-change", self._question_change())]

    def _on_buzz(self, connection: Connection, payload: BuzzPayload) -> List[Delivery]:
        team_name = payload.team_name or connection.team_name
        if team_name is None or not self.registry.advertises_team(team_name):
            return []
        rank = self.buzzer.cast_buzz(team_name)
        if rank is None:
            return []
        buzz = BuzzEvent(
            team_name=team_name,
            timestamp=payload.timestamp,
            rank=rank,
            socket_id=connection.id,
            total_responses=len(self.buzzer.buzz_order),
        )
        return [self._broadcast("buzz", buzz.dump())]

    def _on_reset_buzzer(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        self.buzzer.reset_buzzer()
        return [self._broadcast("reset-buzzer")]

    def _on_trigger_celebration(self, connection: Connection, payload: CelebrationPayload) -> List[Delivery]:
        if self.buzzer.award_point(payload.team_name, payload.points) is None:
            return []
        return [self._broadcast("celebrate", {"teamName": payload.team_name, "points": payload.points})]

    def _on_request_question_number(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        return [self._unicast(connection, "question-change", self._question_change())]

    def _on_request_session_state(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        return [self._unicast(connection, "session-state", self.snapshot(connection))]

    def _on_set_custom_questions(self, connection: Connection, payload: CustomQuestionsPayload) -> List[Delivery]:
        self.buzzer.set_custom_questions(payload.questions)
        self.modes.reset_reveals()
        logger.info("[COORD] %s: %d custom questions loaded", self.session_id, len(payload.questions))
        return [self._broadcast("question-change", self._question_change())]

    def _on_answer_revealed(self, connection: Connection, payload: AnswerRevealedPayload) -> List[Delivery]:
        return [self._broadcast("answer-revealed", {"revealedAnswer": payload.revealed_answer})]

    def _on_host_exit_quiz(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        self.buzzer.reset()
        self.registry.clear_teams()
        logger.info("[COORD] %s: host ended the quiz", self.session_id)
        return [self._broadcast("quiz-ended", {"message": QUIZ_ENDED_MESSAGE})]

    # === POLL HANDLERS ===

    @staticmethod
    def _poll_update(poll: PollSession) -> Dict[str, Any]:
        return {"poll": poll.to_view().dump(), "results": poll.tally().dump()}

    def _on_register_participant(self, connection: Connection, payload: RegisterTeamPayload) -> List[Delivery]:
        self.registry.register_participant(connection.id, payload.team_name)
        deliveries = [self._broadcast("register-participant", {
            "socketId": connection.id,
            "teamName": payload.team_name,
        })]
        if self.polls.current is not None:
            deliveries.append(self._unicast(connection, "poll-created", {"poll": self.polls.current.to_view().dump()}))
        return deliveries

    def _on_create_poll(self, connection: Connection, payload: CreatePollPayload) -> List[Delivery]:
        poll = self.polls.create(payload.question, payload.options)
        logger.info("[COORD] %s: poll %s created: %r", self.session_id, poll.id, poll.question)
        return [self._broadcast("poll-created", {"poll": poll.to_view().dump()})]

    def _on_cast_vote(self, connection: Connection, payload: CastVotePayload) -> List[Delivery]:
        voter = connection.participant_name
        if voter is None:
            return []
        poll = self.polls.current
        if poll is None or not poll.is_active:
            raise ProtocolError("No active poll")
        if payload.poll_id is not None and payload.poll_id != poll.id:
            raise ProtocolError(f"Poll {payload.poll_id} is not active")
        if not poll.cast_vote(voter, payload.option_index):
            return []
        return [
            self._broadcast("poll-updated", self._poll_update(poll)),
            self._unicast(connection, "vote-cast", {
                "pollId": poll.id,
                "teamName": voter,
                "optionIndex": payload.option_index,
                "timestamp": now_ms(),
            }),
        ]

    def _on_toggle_results(self, connection: Connection, payload: PollRefPayload) -> List[Delivery]:
        poll = self.polls.lookup(payload.poll_id)
        if poll is None:
            return []
        poll.toggle_results()
        return [self._broadcast("poll-updated", self._poll_update(poll))]

    def _on_close_poll(self, connection: Connection, payload: PollRefPayload) -> List[Delivery]:
        poll = self.polls.close(payload.poll_id)
        if poll is None:
            return []
        logger.info("[COORD] %s: poll %s closed with %d votes", self.session_id, poll.id, len(poll.votes))
        return [self._broadcast("poll-closed", {"results": poll.tally().dump(), "closedAt": poll.closed_at})]

    def _on_request_current_poll(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        poll = self.polls.current
        if poll is None:
            return []
        return [
            self._unicast(connection, "poll-created", {"poll": poll.to_view().dump()}),
            self._unicast(connection, "poll-updated", self._poll_update(poll)),
        ]

    # === BASIC / SCHEDULED MODE HANDLERS ===

    def _submissions_count(self) -> Dict[str, int]:
        return {"count": len(self.modes.basic_submissions), "total": len(self.registry.roster())}

    def _leaderboard_update(self) -> Delivery:
        return self._broadcast("leaderboard-updated", {
            "leaderboard": [entry.dump() for entry in self.modes.leaderboard()],
            "visible": self.modes.leaderboard_visible,
        })

    def _on_set_quiz_mode(self, connection: Connection, payload: QuizModePayload) -> List[Delivery]:
        settings = self.modes.set_mode(payload.mode, payload.settings)
        logger.info("[COORD] %s: quiz mode -> %s", self.session_id, payload.mode.value)
        return [self._broadcast("quiz-mode-set", {"mode": payload.mode.value, "settings": settings.dump()})]

    def _on_quiz_settings_update(self, connection: Connection, payload: SettingsUpdatePayload) -> List[Delivery]:
        settings = self.modes.update_settings(payload.settings)
        return [self._broadcast("quiz-settings-updated", {"settings": settings.dump()})]

    def _on_submit_basic_quiz(self, connection: Connection, payload: SubmissionPayload) -> List[Delivery]:
        submission = self.modes.submit_basic(connection.id, payload.participant_name, payload.answers)
        return [
            self._unicast(connection, "quiz-results", {"submission": submission.dump()}),
            self._broadcast("basic-quiz-submitted", {"submission": submission.dump()}),
            self._broadcast("submission-received", {
                "participantName": submission.participant_name,
                "submissionTime": submission.submission_time,
            }),
            self._broadcast("submissions-count-update", self._submissions_count()),
        ]

    def _on_get_submissions_count(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        return [self._unicast(connection, "submissions-count-update", self._submissions_count())]

    def _on_get_results_summary(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        submissions = [s.dump() for s in self.modes.basic_submissions.values()]
        return [self._unicast(connection, "results-summary", {"submissions": submissions})]

    def _on_submit_answers(self, connection: Connection, payload: SubmissionPayload) -> List[Delivery]:
        submission = self.modes.submit_scheduled(connection.id, payload.participant_name, payload.answers)
        return [
            self._unicast(connection, "submission-stored", {"participantName": submission.participant_name}),
            self._broadcast("submission-received", {
                "participantName": submission.participant_name,
                "submissionTime": submission.submission_time,
            }),
        ]

    def _on_reveal_question(self, connection: Connection, payload: RevealQuestionPayload) -> List[Delivery]:
        if not self.modes.reveal(payload.question_index):
            return []
        question = self.buzzer.questions[payload.question_index]
        return [
            self._broadcast("question-revealed", {
                "questionIndex": payload.question_index,
                "correctAnswer": question.correct_index,
            }),
            self._leaderboard_update(),
        ]

    def _on_reveal_all(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        self.modes.reveal_all()
        leaderboard = [entry.dump() for entry in self.modes.leaderboard()]
        return [
            self._broadcast("all-questions-revealed", {"leaderboard": leaderboard}),
            self._leaderboard_update(),
        ]

    def _on_toggle_leaderboard(self, connection: Connection, payload: LeaderboardVisibilityPayload) -> List[Delivery]:
        self.modes.leaderboard_visible = payload.visible
        return [
            self._broadcast("leaderboard-visibility-changed", {"visible": payload.visible}),
            self._leaderboard_update(),
        ]

    def _on_get_leaderboard_status(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        update = self._leaderboard_update()
        update.target = connection.id
        return [update]

    def _on_get_all_submissions(self, connection: Connection, payload: EmptyPayload) -> List[Delivery]:
        return [self._unicast(connection, "all-submissions", {
            "submissions": [s.dump() for s in self.modes.scheduled_submissions.values()],
            "revealedQuestions": [r.dump() for r in self.modes.revealed],
        })]

    def _on_send_announcement(self, connection: Connection, payload: AnnouncementPayload) -> List[Delivery]:
        return [self._broadcast("announcement", self.modes.announce(payload.message))]

    # === READ MODELS ===

    def snapshot(self, connection: Optional[Connection] = None) -> Dict[str, Any]:
        """Everything a (re)connecting client needs to rebuild its projection."""
        poll = self.polls.current
        state = dict(self.buzzer.question_payload())
        state.update({
            "sessionId": self.session_id,
            "teams": self.registry.roster(),
            "scores": dict(self.buzzer.scoreboard),
            "buzzOrder": list(self.buzzer.buzz_order),
            "mode": self.modes.mode.value,
            "settings": self.modes.settings.dump(),
            "poll": poll.to_view().dump() if poll else None,
            "results": poll.tally().dump() if poll else None,
            "announcements": list(self.modes.announcements),
        })
        if connection is not None:
            state["socketId"] = connection.id
            state["role"] = connection.role.value
        return state

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.session_id,
            connection_count=len(self.registry),
            team_count=self.registry.team_count(),
            question_number=self.buzzer.question_index,
            total_questions=self.buzzer.total_questions,
            mode=self.modes.mode,
            poll_active=self.polls.has_active_poll,
        )
