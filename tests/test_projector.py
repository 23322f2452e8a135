"""
Client projector tests: folding server events into local snapshots.
"""
from buzzroom_client.projector import PollProjector, QuizProjector


def msg(event_type, **payload):
    return {"type": event_type, "payload": payload}


def buzz(name, rank, socket_id=None):
    return msg("buzz", teamName=name, rank=rank, totalResponses=rank,
               socketId=socket_id or f"s-{name.lower()}", timestamp=1000 + rank)


def participant(name="Yellow"):
    projector = QuizProjector()
    projector.apply(msg("connected", socketId=f"s-{name.lower()}", sessionId="default", role="participant"))
    projector.register(name)
    projector.apply(msg("question-change", questionNumber=1, questionData=None, totalQuestions=13))
    return projector


class TestQuizProjector:
    def test_new_question_enables_buzzer_for_participants(self):
        projector = participant()
        assert projector.state.can_buzz is True
        assert projector.state.total_questions == 13

    def test_host_never_buzzes(self):
        host = QuizProjector(is_host=True)
        host.apply(msg("question-change", questionNumber=1, questionData=None, totalQuestions=13))
        assert host.state.can_buzz is False

    def test_own_buzz_disables_buzzer(self):
        projector = participant("Red")
        projector.apply(buzz("Red", 1))
        assert projector.state.has_buzzed is True
        assert projector.state.can_buzz is False

    def test_top_three_fill_the_round(self):
        projector = participant("Yellow")
        for rank, name in enumerate(("Red", "Blue", "Green"), start=1):
            projector.apply(buzz(name, rank))
        assert [r.team_name for r in projector.state.rankings] == ["Red", "Blue", "Green"]
        assert projector.state.can_buzz is False
        assert projector.state.has_buzzed is False

    def test_fourth_buzz_not_shown_in_rankings(self):
        projector = participant("Yellow")
        for rank, name in enumerate(("Red", "Blue", "Green", "Yellow"), start=1):
            projector.apply(buzz(name, rank))
        assert [r.team_name for r in projector.state.rankings] == ["Red", "Blue", "Green"]
        assert projector.state.buzz_order == ["Red", "Blue", "Green", "Yellow"]
        assert projector.state.has_buzzed is True

    def test_duplicate_buzz_event_is_ignored(self):
        projector = participant()
        projector.apply(buzz("Red", 1))
        projector.apply(buzz("Red", 1))
        assert len(projector.state.rankings) == 1

    def test_question_change_reopens_round(self):
        projector = participant("Red")
        projector.apply(buzz("Red", 1))
        projector.apply(msg("answer-revealed", revealedAnswer=2))
        projector.apply(msg("question-change", questionNumber=2, questionData=None, totalQuestions=13))
        assert projector.state.rankings == []
        assert projector.state.revealed_answer is None
        assert projector.state.can_buzz is True

    def test_scores_follow_roster_and_celebrations(self):
        projector = QuizProjector(is_host=True)
        projector.apply(msg("register-team", socketId="s1", teamName="Red"))
        projector.apply(msg("register-team", socketId="s2", teamName="Red"))
        projector.apply(msg("celebrate", teamName="Red", points=2))
        assert projector.state.scores == {"Red": 2}
        assert projector.state.celebrating == "Red"

        projector.apply(msg("disconnect-team", socketId="s1", teamName="Red"))
        assert projector.state.scores == {"Red": 2}
        projector.apply(msg("disconnect-team", socketId="s2", teamName="Red"))
        assert projector.state.scores == {}

    def test_quiz_ended_resets_and_forgets_name(self):
        projector = participant("Red")
        projector.apply(msg("register-team", socketId="s-red", teamName="Red"))
        projector.apply(msg("quiz-ended", message="The quiz has been ended by the host."))
        assert projector.name is None
        assert projector.state.scores == {}
        assert projector.state.ended_message == "The quiz has been ended by the host."

    def test_session_state_resync(self):
        projector = QuizProjector()
        projector.register("Blue")
        projector.apply(msg(
            "session-state",
            socketId="s-new",
            questionNumber=4,
            questionData={"text": "Q4", "options": ["a", "b", "c", "d"], "correctIndex": 0},
            totalQuestions=13,
            teams=[{"socketId": "s-red", "teamName": "Red"}, {"socketId": "s-new", "teamName": "Blue"}],
            scores={"Red": 1, "Blue": 0},
            buzzOrder=["Red", "Blue"],
            mode="buzzer",
            announcements=[],
        ))
        assert projector.socket_id == "s-new"
        assert projector.state.question_number == 4
        assert projector.state.scores == {"Red": 1, "Blue": 0}
        assert [r.team_name for r in projector.state.rankings] == ["Red", "Blue"]
        assert projector.state.has_buzzed is True
        assert projector.state.can_buzz is False

    def test_error_is_recorded(self):
        projector = participant()
        projector.apply(msg("error", message="No active poll"))
        assert projector.state.last_error == "No active poll"

    def test_unrelated_events_are_ignored(self):
        projector = participant()
        assert projector.apply(msg("poll-created", poll={})) is False


def poll_view(poll_id="p1", active=True, show=False, votes=None):
    return {
        "id": poll_id, "question": "Q", "options": ["a", "b"], "votes": votes or {},
        "isActive": active, "showResults": show, "createdAt": 1, "closedAt": None,
    }


def results(poll_id="p1", counts=(1, 0)):
    return {
        "pollId": poll_id, "question": "Q", "options": ["a", "b"],
        "voteCounts": list(counts), "totalVotes": sum(counts), "voterNames": [[], []],
    }


def voter(name="Alice"):
    projector = PollProjector()
    projector.register(name)
    projector.apply(msg("poll-created", poll=poll_view()))
    return projector


class TestPollProjector:
    def test_registered_participant_can_vote(self):
        assert voter().can_vote is True

    def test_unregistered_cannot_vote(self):
        projector = PollProjector()
        projector.apply(msg("poll-created", poll=poll_view()))
        assert projector.can_vote is False

    def test_host_cannot_vote(self):
        host = PollProjector(is_host=True)
        host.register("Host")
        host.apply(msg("poll-created", poll=poll_view()))
        assert host.can_vote is False

    def test_vote_cast_locks_voting(self):
        projector = voter()
        projector.apply(msg("vote-cast", pollId="p1", teamName="Alice", optionIndex=1, timestamp=5))
        assert projector.state.has_voted is True
        assert projector.state.my_vote == 1
        assert projector.can_vote is False

    def test_hidden_results_cleared_for_participants(self):
        projector = voter()
        projector.apply(msg("poll-updated", poll=poll_view(show=False), results=results()))
        assert projector.state.results is None

    def test_visible_results_shown_to_participants(self):
        projector = voter()
        projector.apply(msg("poll-updated", poll=poll_view(show=True), results=results()))
        assert projector.state.results["voteCounts"] == [1, 0]

    def test_host_always_sees_results(self):
        host = PollProjector(is_host=True)
        host.apply(msg("poll-created", poll=poll_view()))
        host.apply(msg("poll-updated", poll=poll_view(show=False), results=results()))
        assert host.state.results["totalVotes"] == 1

    def test_close_moves_poll_to_history(self):
        projector = voter()
        projector.apply(msg("poll-closed", results=results(), closedAt=99))
        assert projector.state.current_poll["isActive"] is False
        assert projector.state.poll_history[0]["closedAt"] == 99
        assert projector.can_vote is False

    def test_close_for_other_poll_is_ignored(self):
        projector = voter()
        projector.apply(msg("poll-closed", results=results(poll_id="old"), closedAt=99))
        assert projector.state.current_poll["isActive"] is True
        assert projector.state.poll_history == []

    def test_new_poll_resets_vote(self):
        projector = voter()
        projector.apply(msg("vote-cast", pollId="p1", teamName="Alice", optionIndex=0, timestamp=5))
        projector.apply(msg("poll-closed", results=results(), closedAt=99))
        projector.apply(msg("poll-created", poll=poll_view(poll_id="p2")))
        assert projector.state.has_voted is False
        assert projector.can_vote is True

    def test_session_state_restores_own_vote(self):
        projector = PollProjector()
        projector.register("Alice")
        projector.apply(msg("session-state", socketId="s1", poll=poll_view(votes={"Alice": 1}),
                            results=results(counts=(0, 1))))
        assert projector.state.has_voted is True
        assert projector.state.my_vote == 1

    def test_participant_roster(self):
        projector = PollProjector(is_host=True)
        projector.apply(msg("register-participant", socketId="s1", teamName="Alice"))
        projector.apply(msg("register-participant", socketId="s2", teamName="Bob"))
        projector.apply(msg("disconnect-participant", socketId="s1", teamName="Alice"))
        assert projector.state.participants == {"s2": "Bob"}
