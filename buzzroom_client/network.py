"""
Async WebSocket Network Layer for BuzzRoom.
Connects to one session, sends queued actions, and folds every inbound event
into the quiz and poll projectors before handing it to callbacks.
"""
import asyncio
import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp
import websockets

from .projector import PollProjector, QuizProjector

logger = logging.getLogger(__name__)


class NetworkClient:
    """Async WebSocket client for one BuzzRoom session."""

    def __init__(self, server_url: str = "ws://localhost:8000", session_id: str = "default",
                 role: str = "participant", token: Optional[str] = None):
        """
        Args:
            server_url: WebSocket base URL (e.g. "ws://localhost:8000")
            session_id: Session (room) to join
            role: "host" or "participant"
            token: Shared host token, when the server requires one
        """
        self.server_url = server_url.rstrip("/")
        self.session_id = session_id
        self.role = role
        self.token = token
        self.ws: Optional[Any] = None
        self.running = False

        is_host = role == "host"
        self.quiz = QuizProjector(is_host=is_host)
        self.poll = PollProjector(is_host=is_host)

        # Message queues
        self.outgoing_queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()
        self.incoming_queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue()

        # Callbacks for different message types
        self.message_handlers: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}
        self._tasks: List[asyncio.Task] = []

    @property
    def is_host(self) -> bool:
        return self.role == "host"

    @property
    def url(self) -> str:
        query = {"role": self.role}
        if self.token:
            query["token"] = self.token
        return f"{self.server_url}/ws/{self.session_id}?{urlencode(query)}"

    @property
    def http_url(self) -> str:
        if self.server_url.startswith("wss://"):
            return "https://" + self.server_url[len("wss://"):]
        if self.server_url.startswith("ws://"):
            return "http://" + self.server_url[len("ws://"):]
        return self.server_url

    def on_message(self, message_type: str, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Register a callback for a specific message type."""
        self.message_handlers.setdefault(message_type, []).append(callback)

    # === CONNECTION LIFECYCLE ===

    async def connect(self) -> bool:
        """
        Connect and resynchronise.
        Broadcasts missed while away are gone, so the client always asks for
        the current session state instead of trusting its old projection.
        """
        try:
            self.ws = await websockets.connect(self.url)
        except (OSError, websockets.WebSocketException) as e:
            logger.warning("[NET] connection to %s failed: %s", self.url, e)
            self.ws = None
            return False

        self.running = True
        self._tasks = [
            asyncio.create_task(self._receive_loop()),
            asyncio.create_task(self._send_loop()),
        ]
        logger.info("[NET] connected to %s", self.url)
        await self.request_session_state()
        return True

    async def disconnect(self) -> None:
        self.running = False
        for task in self._tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if self.ws:
            await self.ws.close()
            self.ws = None
        logger.info("[NET] disconnected")

    async def reconnect(self) -> bool:
        await self.disconnect()
        return await self.connect()

    # === TRANSPORT LOOPS ===

    async def send(self, event_type: str, **payload: Any) -> None:
        """Queue an action frame."""
        await self.outgoing_queue.put({"type": event_type, "payload": payload})

    async def _send_loop(self) -> None:
        while self.running and self.ws:
            message = await self.outgoing_queue.get()
            try:
                await self.ws.send(json.dumps(message))
            except websockets.ConnectionClosed:
                logger.info("[NET] send failed, connection closed")
                self.running = False
                break

    async def _receive_loop(self) -> None:
        while self.running and self.ws:
            try:
                raw = await self.ws.recv()
            except websockets.ConnectionClosed:
                logger.info("[NET] connection closed by server")
                self.running = False
                break
            try:
                message = json.loads(raw)
            except ValueError:
                logger.warning("[NET] ignoring non-JSON frame")
                continue
            await self.handle_message(message)

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Fold one server event into both projectors, then notify listeners."""
        self.quiz.apply(message)
        self.poll.apply(message)

        for callback in self.message_handlers.get(message.get("type", ""), []):
            callback(message)

        await self.incoming_queue.put(message)

    # === REST ===

    async def fetch_sessions(self) -> List[Dict[str, Any]]:
        """Fetch live session summaries from the server."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(f"{self.http_url}/api/sessions") as response:
                    if response.status == 200:
                        return await response.json()
                    logger.warning("[NET] session list returned HTTP %s", response.status)
        except aiohttp.ClientError as e:
            logger.warning("[NET] error fetching sessions: %s", e)
        return []

    # === PARTICIPANT ACTIONS ===

    async def request_session_state(self) -> None:
        await self.send("request-session-state")

    async def request_question_number(self) -> None:
        await self.send("request-question-number")

    async def register_team(self, team_name: str) -> None:
        self.quiz.register(team_name)
        await self.send("register-team", teamName=team_name)

    async def leave_quiz(self) -> None:
        self.quiz.name = None
        await self.send("leave-quiz")

    async def buzz(self) -> bool:
        """Buzz in if the local projection allows it. Returns whether a buzz was sent."""
        if not self.quiz.is_registered or not self.quiz.state.can_buzz:
            return False
        await self.send("buzz", teamName=self.quiz.name, timestamp=int(time.time() * 1000))
        return True

    async def register_participant(self, name: str) -> None:
        self.poll.register(name)
        await self.send("register-participant", teamName=name)

    async def cast_vote(self, option_index: int) -> bool:
        if not self.poll.can_vote:
            return False
        poll_id = self.poll.state.current_poll["id"]
        await self.send("cast-vote", optionIndex=option_index, pollId=poll_id)
        return True

    async def request_current_poll(self) -> None:
        await self.send("request-current-poll")

    # === HOST ACTIONS ===

    async def change_question(self, direction: str) -> int:
        """Moves to the next/previous question, clamped to the deck."""
        current = self.quiz.state.question_number
        total = self.quiz.state.total_questions
        if direction == "next" and current < total:
            current += 1
        elif direction == "prev" and current > 1:
            current -= 1
        await self.send("question-change", questionNumber=current)
        return current

    async def reset_buzzer(self) -> None:
        await self.send("reset-buzzer")

    async def award_point(self, team_name: str, points: int = 1) -> None:
        await self.send("trigger-celebration", teamName=team_name, points=points)

    async def reveal_answer(self, answer_index: int) -> None:
        await self.send("answer-revealed", revealedAnswer=answer_index)

    async def set_custom_questions(self, questions: List[Dict[str, Any]]) -> None:
        await self.send("set-custom-questions", questions=questions)

    async def exit_quiz(self) -> None:
        await self.send("host-exit-quiz")

    async def create_poll(self, question: str, options: List[str]) -> None:
        await self.send("create-poll", question=question, options=options)

    async def toggle_results(self) -> None:
        poll = self.poll.state.current_poll
        if poll:
            await self.send("toggle-results", pollId=poll["id"])

    async def close_poll(self) -> None:
        poll = self.poll.state.current_poll
        if poll:
            await self.send("close-poll", pollId=poll["id"])

    async def send_announcement(self, message: str) -> None:
        await self.send("send-announcement", message=message)

    def __repr__(self) -> str:
        status = "connected" if self.running else "disconnected"
        return f"NetworkClient(url={self.url}, status={status})"
