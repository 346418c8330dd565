"""
MODULE OVERVIEW:
The host side of a session: it opens the session, watches players arrive and
starts the match.

WHAT IS HAPPENING HERE:
The host shares the same ChannelManager and EventDispatcher as a player, but
subscribes to a different set of events. On every connect it re-sends
`create_session` until the server confirms it, because the channel itself only
replays a player's join. After that it keeps a view of the joined players, the
current question, the timer and the leaderboard for the host dashboard.
"""
import random
import string
from typing import Optional

from loguru import logger
from pydantic import ValidationError

from quizlive.client.channel import ChannelManager
from quizlive.shared.config import Settings, settings as default_settings
from quizlive.shared.events import EventDispatcher, SubscriptionToken
from quizlive.shared.models import (
    ConnectionState,
    GameOverPayload,
    MatchState,
    NewQuestionPayload,
    PlayerJoinedPayload,
    QuestionResultsPayload,
    QuestionView,
    ScoreboardEntry,
    SessionCreatedPayload,
    TimerUpdatePayload,
    ranked,
)

NO_PLAYERS_MESSAGE = "Wait for at least one player to join!"

def generate_session_code(rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    return "QUIZ" + "".join(rng.choices(string.ascii_uppercase + string.digits, k=4))

class HostConsole:
    def __init__(
        self,
        channel: ChannelManager,
        dispatcher: EventDispatcher,
        cfg: Settings = default_settings,
        session_code: Optional[str] = None,
    ):
        self.channel = channel
        self.dispatcher = dispatcher
        self.session_code = session_code or generate_session_code()
        self.join_url = f"{cfg.PUBLIC_BASE_URL.rstrip('/')}/play/{self.session_code}"

        self.quiz_name: Optional[str] = None
        self.created = False
        self.players: list[str] = []
        self.match_state = MatchState.WAITING
        self.current_question: Optional[QuestionView] = None
        self.remaining_seconds: Optional[int] = None
        self.correct_index: Optional[int] = None
        self.leaderboard: list[ScoreboardEntry] = []
        self.notice: Optional[str] = None

        self._tokens: list[SubscriptionToken] = []

    def attach(self) -> None:
        if self._tokens:
            return
        on = self.dispatcher.subscribe
        self._tokens = [
            on("session_created", self._on_session_created),
            on("player_joined", self._on_player_joined),
            on("game_started", self._on_game_started),
            on("new_question", self._on_new_question),
            on("timer_update", self._on_timer_update),
            on("question_results", self._on_question_results),
            on("game_over", self._on_game_over),
        ]
        self.channel.subscribe_state(self._on_connection_state)

    def detach(self) -> None:
        self.dispatcher.unsubscribe_all(self._tokens)
        self._tokens = []
        self.channel.unsubscribe_state(self._on_connection_state)

    async def create_session(self, quiz_name: Optional[str] = None) -> bool:
        self.quiz_name = quiz_name
        payload = {"session_id": self.session_code}
        if quiz_name:
            payload["quiz_name"] = quiz_name
        return await self.channel.send("create_session", payload)

    async def start_game(self) -> bool:
        if not self.players:
            self.notice = NO_PLAYERS_MESSAGE
            return False
        self.notice = None
        return await self.channel.send("start_game", {"session_id": self.session_code})

    async def _on_connection_state(self, state: ConnectionState) -> None:
        # The channel only replays a player identity; a host re-announces its session
        # until the server has confirmed it
        if state is ConnectionState.CONNECTED and not self.created:
            await self.create_session(self.quiz_name)

    def _on_session_created(self, payload) -> None:
        try:
            created = SessionCreatedPayload.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event=session_created reason=malformed errors={e.error_count()}")
            return
        self.created = True
        logger.info(f"event=session_created session={created.session_id or self.session_code}")

    def _on_player_joined(self, payload) -> None:
        try:
            joined = PlayerJoinedPayload.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event=player_joined reason=malformed errors={e.error_count()}")
            return
        # Rejoins after a dropped connection announce the same name again
        if joined.player_name not in self.players:
            self.players.append(joined.player_name)

    def _on_game_started(self, payload) -> None:
        if self.match_state is MatchState.WAITING:
            self.match_state = MatchState.PLAYING

    def _on_new_question(self, payload) -> None:
        try:
            question = NewQuestionPayload.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event=new_question reason=malformed errors={e.error_count()}")
            return
        if self.match_state is MatchState.FINISHED:
            return
        self.match_state = MatchState.PLAYING
        self.current_question = question.to_view()
        self.remaining_seconds = question.time_limit
        self.correct_index = None

    def _on_timer_update(self, payload) -> None:
        try:
            self.remaining_seconds = TimerUpdatePayload.model_validate(payload or {}).remaining
        except ValidationError as e:
            logger.warning(f"event=timer_update reason=malformed errors={e.error_count()}")

    def _on_question_results(self, payload) -> None:
        try:
            results = QuestionResultsPayload.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event=question_results reason=malformed errors={e.error_count()}")
            return
        self.correct_index = results.correct_answer
        self.leaderboard = ranked(results.leaderboard)

    def _on_game_over(self, payload) -> None:
        try:
            over = GameOverPayload.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event=game_over reason=malformed errors={e.error_count()}")
            return
        self.match_state = MatchState.FINISHED
        self.leaderboard = ranked(over.leaderboard)
