"""
MODULE OVERVIEW:
The participant's Game State Machine: WAITING -> PLAYING -> FINISHED.

WHAT IS HAPPENING HERE:
This is the only object the dashboard reads. Server events arrive through the
EventDispatcher, get validated against their payload model, and are applied as
plain attribute updates. Anything that fails validation is logged and dropped, so
a bad packet can never push the match into an impossible state.

Two rules carry most of the weight:
  1. `submit_answer` marks the question answered *before* sending. A second tap,
     however fast, finds `answered=True` and never reaches the network.
  2. FINISHED is terminal and forgets the persisted identity on entry.
"""
import asyncio
from typing import Optional

from loguru import logger
from pydantic import BaseModel, ValidationError

from quizlive.client.channel import ChannelManager
from quizlive.client.identity_store import SessionIdentityStore
from quizlive.shared.config import Settings, settings as default_settings
from quizlive.shared.events import EventDispatcher, SubscriptionToken
from quizlive.shared.models import (
    AnswerAttempt,
    AnswerSubmittedPayload,
    ConnectionState,
    ErrorKind,
    ErrorPayload,
    GameOverPayload,
    JoinedSessionPayload,
    MatchState,
    NewQuestionPayload,
    PendingResult,
    QuestionResultsPayload,
    QuestionView,
    ScoreboardEntry,
    SessionIdentity,
    TimerUpdatePayload,
    ranked,
)

JOIN_TIMEOUT_MESSAGE = "Could not reach the quiz server. Check your connection and try again."

class GameStateMachine:
    def __init__(
        self,
        channel: ChannelManager,
        dispatcher: EventDispatcher,
        store: SessionIdentityStore,
        cfg: Settings = default_settings,
    ):
        self.channel = channel
        self.dispatcher = dispatcher
        self.store = store
        self.join_timeout_s = cfg.JOIN_TIMEOUT_S

        self.match_state = MatchState.WAITING
        self.identity: Optional[SessionIdentity] = None
        self.joined = False
        self.joining = False
        self.is_reconnected = False
        self.connection_state = channel.state

        self.current_question: Optional[QuestionView] = None
        self.answered = False
        self.selected_index: Optional[int] = None
        self.attempt: Optional[AnswerAttempt] = None
        self.remaining_seconds: Optional[int] = None
        self.pending_result: Optional[PendingResult] = None
        self.correct_index: Optional[int] = None

        self.score = 0
        self.scoreboard: list[ScoreboardEntry] = []
        self.final_scoreboard: list[ScoreboardEntry] = []
        self.user_error: Optional[str] = None
        self.join_rejected = False

        self._join_timer: Optional[asyncio.TimerHandle] = None
        self._tokens: list[SubscriptionToken] = []

    # ==========================
    # WIRING
    # ==========================
    def attach(self) -> None:
        if self._tokens:
            return
        routes = {
            "connection_established": self._on_connection_established,
            "joined_session": self._on_joined_session,
            "error": self._on_error,
            "game_started": self._on_game_started,
            "new_question": self._on_new_question,
            "timer_update": self._on_timer_update,
            "answer_submitted": self._on_answer_submitted,
            "question_results": self._on_question_results,
            "game_over": self._on_game_over,
        }
        self._tokens = [self.dispatcher.subscribe(name, handler) for name, handler in routes.items()]
        self.channel.subscribe_state(self._on_connection_state)

    def detach(self) -> None:
        self.dispatcher.unsubscribe_all(self._tokens)
        self._tokens = []
        self.channel.unsubscribe_state(self._on_connection_state)

    @staticmethod
    def _parse(model: type[BaseModel], event_name: str, payload) -> Optional[BaseModel]:
        try:
            return model.model_validate(payload or {})
        except ValidationError as e:
            logger.warning(f"event={event_name} reason=malformed errors={e.error_count()} payload={payload!r}")
            return None

    # ==========================
    # COMMANDS
    # ==========================
    def resume(self, session_code: Optional[str] = None) -> Optional[SessionIdentity]:
        """
        Startup: the persisted identity is read once and handed to the channel,
        so the first connect rejoins. An identity for a different session is left
        alone; the next `join` overwrites it.
        """
        identity = self.store.recall()
        if identity is None:
            return None
        if session_code is not None and identity.session_code != session_code:
            logger.info(f"event=resume skipped stored={identity.session_code} requested={session_code}")
            return None
        self.identity = identity
        self.channel.identity = identity
        self.joining = True
        self._arm_join_timer()
        logger.info(f"event=resume session={identity.session_code} name={identity.participant_name}")
        return identity

    async def join(self, session_code: str, participant_name: str) -> bool:
        # ValidationError is a ValueError: blank names fail here, before anything is persisted
        identity = SessionIdentity(session_code=session_code, participant_name=participant_name)
        self.identity = identity
        self.store.remember(identity)
        self.channel.identity = identity
        self.joining = True
        self.user_error = None
        self.join_rejected = False
        self._arm_join_timer()
        return await self.channel.send("join_session", {
            "session_id": identity.session_code,
            "player_name": identity.participant_name,
        })

    def leave(self) -> None:
        self._cancel_join_timer()
        self.store.forget()
        self.channel.identity = None
        self.identity = None
        self.joined = False
        self.joining = False

    async def submit_answer(self, selected_index: int) -> bool:
        question = self.current_question
        if question is None or self.match_state is not MatchState.PLAYING:
            logger.debug(f"command=submit_answer rejected reason=no_question index={selected_index}")
            return False
        if self.answered:
            logger.debug(f"command=submit_answer rejected reason=already_answered ordinal={question.ordinal}")
            return False
        if not 0 <= selected_index < len(question.options):
            logger.debug(f"command=submit_answer rejected reason=out_of_range index={selected_index}")
            return False
        if self.remaining_seconds is not None and self.remaining_seconds <= 0:
            logger.debug(f"command=submit_answer rejected reason=time_up ordinal={question.ordinal}")
            return False

        # Lock first, then send. Never rolled back.
        self.answered = True
        self.selected_index = selected_index
        self.attempt = AnswerAttempt(selected_index=selected_index, submitted_for_ordinal=question.ordinal)
        sent = await self.channel.send("submit_answer", {"answer_index": selected_index})
        if not sent:
            logger.warning(f"command=submit_answer ordinal={question.ordinal} unconfirmed reason=channel_down")
        return True

    # ==========================
    # JOIN TIMEOUT
    # ==========================
    def _arm_join_timer(self) -> None:
        self._cancel_join_timer()
        loop = asyncio.get_running_loop()
        self._join_timer = loop.call_later(self.join_timeout_s, self._on_join_timeout)

    def _cancel_join_timer(self) -> None:
        if self._join_timer is not None:
            self._join_timer.cancel()
            self._join_timer = None

    def _on_join_timeout(self) -> None:
        self._join_timer = None
        if not self.joining:
            return
        self.joining = False
        self.user_error = JOIN_TIMEOUT_MESSAGE
        logger.warning(f"event=join_timeout after={self.join_timeout_s}s")

    # ==========================
    # EVENT APPLICATION
    # ==========================
    async def _on_connection_state(self, state: ConnectionState) -> None:
        self.connection_state = state

    def _on_connection_established(self, payload) -> None:
        logger.debug("event=connection_established")

    def _on_joined_session(self, payload) -> None:
        ack = self._parse(JoinedSessionPayload, "joined_session", payload)
        if ack is not None:
            self.apply_join_ack(ack.reconnected, ack.game_state, ack.total_score)

    def apply_join_ack(self, reconnected: bool, resumed_state: Optional[MatchState], resumed_score: int) -> None:
        self._cancel_join_timer()
        self.joining = False
        self.joined = True
        self.user_error = None
        self.is_reconnected = reconnected
        if not reconnected:
            return
        logger.info(f"event=joined_session reconnected=true state={resumed_state} score={resumed_score}")
        if self.match_state is MatchState.FINISHED:
            return
        self.score = resumed_score
        if resumed_state is MatchState.FINISHED:
            self._finish(self.scoreboard)
        elif resumed_state is not None:
            self.match_state = resumed_state

    def _on_error(self, payload) -> None:
        error = self._parse(ErrorPayload, "error", payload)
        if error is not None:
            self.apply_error(error.message)

    def apply_error(self, message: str) -> None:
        kind = ErrorKind.classify(message)
        if kind is ErrorKind.ALREADY_ANSWERED:
            logger.debug("event=error kind=already_answered suppressed=true")
            return
        if self.joining:
            self._cancel_join_timer()
            self.joining = False
            self.user_error = message
            self.join_rejected = True
            logger.warning(f"event=error kind={kind.name} join=rejected message='{message}'")
            return
        # Once joined the server echoes these during races it resolves itself
        logger.info(f"event=error kind={kind.name} suppressed=true message='{message}'")

    def _on_game_started(self, payload) -> None:
        self.apply_game_started()

    def apply_game_started(self) -> None:
        if self.match_state is MatchState.WAITING:
            self.match_state = MatchState.PLAYING

    def _on_new_question(self, payload) -> None:
        question = self._parse(NewQuestionPayload, "new_question", payload)
        if question is not None:
            self.apply_question(question.to_view())

    def apply_question(self, view: QuestionView) -> None:
        if self.match_state is MatchState.FINISHED:
            logger.warning(f"event=new_question ignored reason=finished ordinal={view.ordinal}")
            return
        self.match_state = MatchState.PLAYING
        self.current_question = view
        self.answered = view.already_answered
        self.selected_index = None
        self.attempt = None
        self.pending_result = None
        self.correct_index = None
        self.remaining_seconds = view.time_limit_seconds
        if view.already_answered:
            logger.info(f"event=new_question ordinal={view.ordinal} already_answered=true")

    def _on_timer_update(self, payload) -> None:
        tick = self._parse(TimerUpdatePayload, "timer_update", payload)
        if tick is not None:
            self.apply_timer_tick(tick.remaining)

    def apply_timer_tick(self, remaining_seconds: int) -> None:
        self.remaining_seconds = remaining_seconds

    def _on_answer_submitted(self, payload) -> None:
        ack = self._parse(AnswerSubmittedPayload, "answer_submitted", payload)
        if ack is not None:
            self.apply_answer_ack(ack.points_earned)

    def apply_answer_ack(self, points_earned: int) -> None:
        if self.current_question is None:
            return
        self.pending_result = PendingResult(points_earned=points_earned)

    def _on_question_results(self, payload) -> None:
        results = self._parse(QuestionResultsPayload, "question_results", payload)
        if results is not None:
            self.apply_question_results(results.correct_answer, ranked(results.leaderboard))

    def apply_question_results(self, correct_index: int, scoreboard: list[ScoreboardEntry]) -> None:
        if self.match_state is MatchState.FINISHED:
            return
        self.correct_index = correct_index
        self.scoreboard = scoreboard

        question = self.current_question
        if self.attempt is not None and question is not None and self.attempt.submitted_for_ordinal == question.ordinal:
            is_correct = self.attempt.selected_index == correct_index
        elif self.answered:
            # Recorded server-side before a reconnect; we never saw the selection
            is_correct = None
        else:
            is_correct = False
        points = self.pending_result.points_earned if self.pending_result else 0
        self.pending_result = PendingResult(points_earned=points, is_correct=is_correct)
        self._update_score(scoreboard)

    def _on_game_over(self, payload) -> None:
        over = self._parse(GameOverPayload, "game_over", payload)
        if over is not None:
            self.apply_game_over(ranked(over.leaderboard))

    def apply_game_over(self, scoreboard: list[ScoreboardEntry]) -> None:
        if self.match_state is MatchState.FINISHED:
            return
        self._update_score(scoreboard)
        self._finish(scoreboard)

    def _finish(self, scoreboard: list[ScoreboardEntry]) -> None:
        self.match_state = MatchState.FINISHED
        self.final_scoreboard = scoreboard
        self._cancel_join_timer()
        self.joining = False
        self.store.forget()
        self.channel.identity = None
        logger.info(f"event=game_over score={self.score} players={len(scoreboard)}")

    def _update_score(self, scoreboard: list[ScoreboardEntry]) -> None:
        if self.identity is None:
            return
        for entry in scoreboard:
            if entry.participant_name == self.identity.participant_name:
                self.score = entry.score
                return
        logger.debug(f"event=scoreboard participant={self.identity.participant_name} missing=true")

    # ==========================
    # READ HELPERS
    # ==========================
    @property
    def rank(self) -> Optional[int]:
        board = self.final_scoreboard or self.scoreboard
        if self.identity is None:
            return None
        for position, entry in enumerate(board, start=1):
            if entry.participant_name == self.identity.participant_name:
                return position
        return None
