import io

from rich.console import Console

from quizlive.client.channel import ChannelManager
from quizlive.client.host import HostConsole
from quizlive.client.visualizer import HostVisualizer, Visualizer
from quizlive.shared.events import EventDispatcher
from quizlive.shared.models import (
    MatchState,
    PendingResult,
    QuestionView,
    ScoreboardEntry,
    SessionIdentity,
)

from conftest import FakeTransport


def render(layout) -> str:
    console = Console(file=io.StringIO(), width=140, height=40, color_system=None)
    console.print(layout)
    return console.file.getvalue()


def test_player_dashboard_shows_question_and_result(rig):
    game = rig.game
    game.identity = SessionIdentity(session_code="ABCD", participant_name="Mia")
    game.apply_question(QuestionView(
        ordinal=2, total_count=5, prompt="Largest ocean?",
        options=["Atlantic", "Pacific", "Indian", "Arctic"], time_limit_seconds=15,
        media_ref="/uploads/ocean.png",
    ))
    game.answered = True
    game.selected_index = 1
    game.pending_result = PendingResult(points_earned=700, is_correct=True)
    game.scoreboard = [ScoreboardEntry(participant_name="Mia", score=700)]

    out = render(Visualizer(game).generate_layout())
    assert "Largest ocean?" in out
    assert "Question 2/5" in out
    assert "+700 points" in out
    assert "/uploads/ocean.png" in out


def test_player_dashboard_final_board(rig):
    game = rig.game
    game.identity = SessionIdentity(session_code="ABCD", participant_name="Mia")
    game.match_state = MatchState.FINISHED
    game.final_scoreboard = [ScoreboardEntry(participant_name="Leo", score=900)]
    game.user_error = None

    out = render(Visualizer(game).generate_layout())
    assert "Final Leaderboard" in out
    assert "Leo" in out


def test_host_dashboard_lists_players(fast_settings):
    dispatcher = EventDispatcher()
    channel = ChannelManager(dispatcher, cfg=fast_settings, transport=FakeTransport())
    host = HostConsole(channel, dispatcher, cfg=fast_settings, session_code="QUIZAB12")
    host.players = ["Mia", "Leo"]

    out = render(HostVisualizer(host).generate_layout())
    assert "QUIZAB12" in out
    assert "Players (2)" in out
