"""
polls.py
Poll Session State.
At most one current poll; closed polls stay readable until the next one
replaces them and are kept in a newest-first history.
"""
import time
from typing import Dict, List, Optional

from .errors import ProtocolError
from .models import PollResults, PollView, now_ms


class PollSession:
    """A single poll. Votes are keyed by display name, last write wins."""

    def __init__(self, poll_id: str, question: str, options: List[str]):
        self.id = poll_id
        self.question = question
        self.options: List[str] = list(options)
        # Insertion order doubles as most-recent-write order.
        self.votes: Dict[str, int] = {}
        self.is_active: bool = True
        self.results_visible: bool = False
        self.created_at: int = now_ms()
        self.closed_at: Optional[int] = None

    def cast_vote(self, name: str, option_index: int) -> bool:
        """
        Records name's vote. Returns False when nothing changed (same option).
        Raises ProtocolError for a closed poll or an out-of-range option.
        """
        if not self.is_active:
            raise ProtocolError("No active poll")
        if not 0 <= option_index < len(self.options):
            raise ProtocolError(f"Option index {option_index} out of range")
        if self.votes.get(name) == option_index:
            return False
        # Re-insert so a changed vote moves to the end of its new bucket.
        self.votes.pop(name, None)
        self.votes[name] = option_index
        return True

    def toggle_results(self) -> bool:
        self.results_visible = not self.results_visible
        return self.results_visible

    def close(self) -> None:
        self.is_active = False
        self.closed_at = now_ms()

    def tally(self) -> PollResults:
        """Computed regardless of visibility; re-votes never inflate total_votes."""
        vote_counts = [0] * len(self.options)
        voter_names: List[List[str]] = [[] for _ in self.options]
        for name, option_index in self.votes.items():
            if 0 <= option_index < len(self.options):
                vote_counts[option_index] += 1
                voter_names[option_index].append(name)
        return PollResults(
            poll_id=self.id,
            question=self.question,
            options=list(self.options),
            vote_counts=vote_counts,
            total_votes=len(self.votes),
            voter_names=voter_names,
        )

    def to_view(self) -> PollView:
        return PollView(
            id=self.id,
            question=self.question,
            options=list(self.options),
            votes=dict(self.votes),
            is_active=self.is_active,
            show_results=self.results_visible,
            created_at=self.created_at,
            closed_at=self.closed_at,
        )


class PollBoard:
    """
    PollBoard Class.
    Owns the poll lifecycle: NONE -> ACTIVE -> CLOSED -> ACTIVE(new).
    """
    def __init__(self):
        self.current: Optional[PollSession] = None
        self.history: List[PollSession] = []
        self._last_id: int = 0

    @property
    def has_active_poll(self) -> bool:
        return self.current is not None and self.current.is_active

    def _next_id(self) -> str:
        # Millisecond ids, bumped when two polls land in the same millisecond.
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def create(self, question: str, options: List[str]) -> PollSession:
        if self.has_active_poll:
            raise ProtocolError("A poll is already active; close it before creating a new one")
        self.current = PollSession(self._next_id(), question, options)
        return self.current

    def lookup(self, poll_id: Optional[str]) -> Optional[PollSession]:
        """The current poll if poll_id is omitted or matches it."""
        if self.current is None:
            return None
        if poll_id is not None and poll_id != self.current.id:
            return None
        return self.current

    def close(self, poll_id: Optional[str] = None) -> Optional[PollSession]:
        """Closes the matching active poll. Returns None when there is nothing to close."""
        poll = self.lookup(poll_id)
        if poll is None or not poll.is_active:
            return None
        poll.close()
        self.history.insert(0, poll)
        return poll
