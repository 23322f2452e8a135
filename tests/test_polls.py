"""
Unit tests for polls.py: vote bookkeeping, tally and poll lifecycle.
"""
import pytest

from buzzroom_server.errors import ProtocolError
from buzzroom_server.polls import PollBoard, PollSession


def make_poll():
    return PollSession("p1", "Best colour?", ["Red", "Blue"])


class TestVoting:
    def test_revote_moves_voter_without_inflating_total(self):
        poll = make_poll()
        poll.cast_vote("Alice", 0)
        poll.cast_vote("Bob", 1)
        poll.cast_vote("Alice", 1)

        results = poll.tally()
        assert results.vote_counts == [0, 2]
        assert results.total_votes == 2
        assert results.voter_names == [[], ["Bob", "Alice"]]

    def test_unchanged_vote_reports_no_change(self):
        poll = make_poll()
        assert poll.cast_vote("Alice", 0) is True
        assert poll.cast_vote("Alice", 0) is False
        assert poll.tally().total_votes == 1

    def test_out_of_range_option_is_rejected(self):
        poll = make_poll()
        with pytest.raises(ProtocolError):
            poll.cast_vote("Alice", 2)
        assert poll.votes == {}

    def test_closed_poll_refuses_votes(self):
        poll = make_poll()
        poll.cast_vote("Alice", 0)
        poll.close()
        with pytest.raises(ProtocolError, match="No active poll"):
            poll.cast_vote("Bob", 1)
        assert poll.votes == {"Alice": 0}

    def test_tally_is_computed_while_hidden(self):
        poll = make_poll()
        poll.cast_vote("Alice", 1)
        assert poll.results_visible is False
        assert poll.tally().vote_counts == [0, 1]

    def test_view_uses_wire_field_names(self):
        poll = make_poll()
        poll.toggle_results()
        view = poll.to_view().dump()
        assert view["id"] == "p1"
        assert view["isActive"] is True
        assert view["showResults"] is True
        assert view["closedAt"] is None


class TestPollBoard:
    def test_only_one_active_poll(self):
        board = PollBoard()
        first = board.create("Q1", ["a", "b"])
        with pytest.raises(ProtocolError):
            board.create("Q2", ["c", "d"])
        assert board.current is first

    def test_new_poll_allowed_after_close(self):
        board = PollBoard()
        first = board.create("Q1", ["a", "b"])
        board.close()
        second = board.create("Q2", ["c", "d"])
        assert board.current is second
        assert board.history == [first]
        assert int(second.id) > int(first.id)

    def test_close_with_wrong_id_does_nothing(self):
        board = PollBoard()
        poll = board.create("Q1", ["a", "b"])
        assert board.close("not-this-one") is None
        assert poll.is_active

    def test_close_twice_is_a_no_op(self):
        board = PollBoard()
        board.create("Q1", ["a", "b"])
        assert board.close() is not None
        assert board.close() is None
        assert len(board.history) == 1

    def test_history_is_newest_first(self):
        board = PollBoard()
        first = board.create("Q1", ["a", "b"])
        board.close()
        second = board.create("Q2", ["a", "b"])
        board.close()
        assert board.history == [second, first]
