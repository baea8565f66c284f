import itertools
import logging
import math
import threading
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from quizlive.errors import NameTaken, SessionAlreadyEnded, Unauthorized
from quizlive.gateway import BroadcastGateway, game_room, host_room
from quizlive.models import Player, Question, Quiz
from .scheduler import ScheduledCall, Scheduler
from .scoring import build_leaderboard, clamp_elapsed, score_answer


class Phase(str, Enum):
    LOBBY = 'lobby'
    QUESTION_ACTIVE = 'question_active'
    RESOLVING = 'resolving'
    ENDED = 'ended'


class SessionTimings:
    def __init__(self, start_delay=3, results_duration=5, eviction_grace=30, reveal_answer=False):
        self.start_delay = start_delay
        self.results_duration = results_duration
        self.eviction_grace = eviction_grace
        self.reveal_answer = reveal_answer

    @classmethod
    def from_config(cls, config):
        return cls(
            start_delay=int(config.get('QUESTION_START_DELAY_SEC', 3)),
            results_duration=int(config.get('RESULTS_DURATION_SEC', 5)),
            eviction_grace=int(config.get('EVICTION_GRACE_SEC', 30)),
            reveal_answer=bool(config.get('REVEAL_ANSWER_IN_QUESTION', False)),
        )


class Session:
    """One live game, keyed by its join code.

    All mutation happens under `self._lock`. Phase timers carry the phase
    token current when they were scheduled; every phase transition bumps the
    token, so a timer that fires after its phase is over does nothing.
    """

    def __init__(self, code: str, quiz: Quiz, gateway: BroadcastGateway, scheduler: Scheduler,
                 timings: SessionTimings = None, logger: logging.Logger = None,
                 on_evict: Callable[['Session'], Any] = None):
        self.code = code
        self.quiz = quiz.with_pin(code)
        self.gateway = gateway
        self.scheduler = scheduler
        self.timings = timings or SessionTimings()
        self.logger = logger or logging.getLogger(__name__)
        self.on_evict = on_evict

        self.players: Dict[str, Player] = {}
        self.host_conn_id: Optional[str] = None
        self.phase = Phase.LOBBY
        self.current_question_index = -1
        self.is_paused = False
        self.phase_token = 0
        self.question_started_at: Optional[float] = None

        self._lock = threading.RLock()
        self._timer: Optional[ScheduledCall] = None
        self._start_deferred = False
        self._join_counter = itertools.count()

    # ---- read helpers ----

    @property
    def room(self):
        return game_room(self.code)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.quiz.questions):
            return self.quiz.questions[self.current_question_index]
        return None

    @property
    def has_ended(self):
        return self.phase == Phase.ENDED

    def leaderboard(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [p.to_dict() for p in build_leaderboard(self.players.values())]

    def time_remaining(self) -> int:
        if self.phase != Phase.QUESTION_ACTIVE:
            return 0
        return int(math.ceil(self.scheduler.remaining(self._timer)))

    def game_state(self, include_answers=None) -> Dict[str, Any]:
        if include_answers is None:
            include_answers = self.timings.reveal_answer
        with self._lock:
            return {
                'quiz': self.quiz.to_dict(include_answers=include_answers),
                'players': [p.to_dict() for p in self.players.values()],
                'currentQuestionIndex': self.current_question_index,
                'phase': self.phase.value,
                'isActive': self.current_question_index >= 0 and not self.has_ended,
                'isPaused': self.is_paused,
                'timeRemaining': self.time_remaining(),
                'showResults': self.phase == Phase.RESOLVING,
                'gameEnded': self.has_ended,
            }

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'pin': self.code,
                'title': self.quiz.title,
                'players': len(self.players),
                'isActive': self.current_question_index >= 0 and not self.has_ended,
                'phase': self.phase.value,
                'hasHost': self.host_conn_id is not None,
                'currentQuestion': min(self.current_question_index + 1, len(self.quiz.questions)),
                'totalQuestions': len(self.quiz.questions),
            }

    # ---- connection-driven operations ----

    def attach_host(self, conn_id: str) -> Dict[str, Any]:
        with self._lock:
            previous = self.host_conn_id
            self.host_conn_id = conn_id
            if previous is not None and previous != conn_id:
                # the replaced host gets no more host-only traffic
                self.gateway.leave_room(previous, host_room(self.code))
                if previous not in self.players:
                    self.gateway.leave_room(previous, self.room)
            self.gateway.join_room(conn_id, self.room)
            self.gateway.join_room(conn_id, host_room(self.code))
            state = self.game_state(include_answers=True)
        self.logger.info(f"[host-attach] game={self.code} host={conn_id} previous={previous}")
        return state

    def detach_host(self, conn_id: str) -> bool:
        with self._lock:
            if self.host_conn_id != conn_id:
                return False
            self.host_conn_id = None
        self.logger.info(f"[host-detach] game={self.code} host={conn_id} phase={self.phase.value}")
        return True

    def add_player(self, conn_id: str, name: str) -> Player:
        with self._lock:
            if self.has_ended:
                raise SessionAlreadyEnded()
            existing = self.players.get(conn_id)
            if existing is not None and existing.name == name:
                return existing
            if any(p.name == name for p in self.players.values() if p.conn_id != conn_id):
                raise NameTaken()
            if existing is not None:
                existing.name = name
                player = existing
            else:
                player = Player(conn_id, name, next(self._join_counter))
                self.players[conn_id] = player
            self.gateway.join_room(conn_id, self.room)
            self.gateway.send_to_connection(conn_id, 'joined-game', {
                'player': player.to_dict(),
                'gameState': {
                    'isActive': self.current_question_index >= 0 and not self.has_ended,
                    'currentQuestionIndex': self.current_question_index,
                    'isPaused': self.is_paused,
                },
            })
            self.gateway.send_to_room(self.room, 'player-joined', {
                'player': player.to_dict(),
                'totalPlayers': len(self.players),
            })
        self.logger.info(f"[player-join] game={self.code} player={name!r} conn={conn_id} total={len(self.players)}")
        return player

    def remove_player(self, conn_id: str) -> Optional[Player]:
        with self._lock:
            player = self.players.pop(conn_id, None)
            if player is None:
                return None
            self.gateway.leave_room(conn_id, self.room)
            self.gateway.send_to_room(self.room, 'player-left', {
                'playerId': conn_id,
                'totalPlayers': len(self.players),
            })
            self.logger.info(f"[player-leave] game={self.code} player={player.name!r} total={len(self.players)}")
            if self.phase == Phase.QUESTION_ACTIVE and self._all_answered():
                self._end_question()
            return player

    def submit_answer(self, conn_id: str, question_id: str, option_index: int, elapsed: float) -> bool:
        """Record one answer; stale, duplicate or unknown submissions are ignored."""
        with self._lock:
            if self.phase != Phase.QUESTION_ACTIVE:
                return False
            player = self.players.get(conn_id)
            if player is None or player.has_answered:
                return False
            question = self.current_question
            if question is None or question.id != question_id:
                return False

            is_correct = option_index == question.correct_answer
            player.last_answer = option_index
            player.answer_time = clamp_elapsed(elapsed, question.time_limit)
            player.pending_points = score_answer(is_correct, elapsed, question.time_limit)
            self.logger.info(
                f"[answer] game={self.code} player={player.name!r} question={question_id} "
                f"{'correct' if is_correct else 'incorrect'} (+{player.pending_points} points)"
            )
            self.gateway.send_to_room(host_room(self.code), 'answer-submitted', {
                'playerId': conn_id,
                'answered': sum(1 for p in self.players.values() if p.has_answered),
                'totalPlayers': len(self.players),
            })
            if self._all_answered():
                self._end_question()
            return True

    # ---- host operations ----

    def _require_host(self, requester: str) -> None:
        if self.host_conn_id is None or requester != self.host_conn_id:
            raise Unauthorized()

    def start_game(self, requester: str) -> bool:
        with self._lock:
            self._require_host(requester)
            if self.phase != Phase.LOBBY or self.current_question_index >= 0:
                return False
            self.current_question_index = 0
            self._bump_token()
            self.gateway.send_to_room(self.room, 'game-started', self.game_state())
            self._schedule('start_question', self.timings.start_delay)
        self.logger.info(f"[game-start] game={self.code} players={len(self.players)}")
        return True

    def toggle_pause(self, requester: str) -> bool:
        with self._lock:
            self._require_host(requester)
            if self.has_ended:
                return self.is_paused
            if not self.is_paused:
                if self.phase not in (Phase.LOBBY, Phase.QUESTION_ACTIVE):
                    return self.is_paused
                self.is_paused = True
                if self.phase == Phase.QUESTION_ACTIVE:
                    self.scheduler.suspend(self._timer)
            else:
                self.is_paused = False
                if self.phase == Phase.QUESTION_ACTIVE:
                    self.scheduler.resume(self._timer)
            self.gateway.send_to_room(self.room, 'game-paused', {'isPaused': self.is_paused})
            self.logger.info(f"[pause] game={self.code} paused={self.is_paused} phase={self.phase.value}")
            if not self.is_paused and self._start_deferred:
                self._start_deferred = False
                self._start_question()
            return self.is_paused

    def end_game(self, requester: str) -> None:
        with self._lock:
            self._require_host(requester)
            self._finish()

    def kick_player(self, requester: str, target_conn_id: str) -> Optional[Player]:
        with self._lock:
            self._require_host(requester)
            if target_conn_id not in self.players:
                return None
            self.gateway.send_to_connection(target_conn_id, 'kicked-from-game', {
                'message': 'You have been removed from the game',
            })
            return self.remove_player(target_conn_id)

    # ---- timer-driven transitions ----

    def _schedule(self, action: str, delay: float) -> None:
        self._timer = self.scheduler.schedule(
            delay, self._on_timer, action, self.phase_token,
            key=self.code, token=self.phase_token, label=action,
        )

    def _bump_token(self) -> None:
        self.phase_token += 1
        self.scheduler.cancel(self._timer)
        self._timer = None

    def _on_timer(self, action: str, token: int) -> None:
        with self._lock:
            if token != self.phase_token:
                self.logger.info(
                    f"[timer-abort] game={self.code} action={action} token={token} current={self.phase_token}"
                )
                return
            if action != 'evict':
                getattr(self, f'_{action}')()
                return
        # eviction takes the registry lock, never while holding ours
        if self.on_evict is not None:
            self.on_evict(self)

    def _start_question(self) -> None:
        if self.has_ended:
            return
        if self.is_paused:
            # keep the start pending until the host resumes
            self._start_deferred = True
            self.logger.info(f"[question-deferred] game={self.code} index={self.current_question_index}")
            return
        question = self.current_question
        if question is None:
            self._finish()
            return
        for player in self.players.values():
            player.reset_answer()
        self.phase = Phase.QUESTION_ACTIVE
        self._bump_token()
        self.question_started_at = self.scheduler.now()
        self.gateway.send_to_room(self.room, 'question-started', {
            'question': question.to_dict(include_answer=self.timings.reveal_answer),
            'questionIndex': self.current_question_index,
            'timeLimit': question.time_limit,
        })
        self._schedule('end_question', question.time_limit)
        self.logger.info(
            f"[question-start] game={self.code} index={self.current_question_index} limit={question.time_limit}s"
        )

    def _end_question(self) -> None:
        if self.phase != Phase.QUESTION_ACTIVE:
            return
        self._bump_token()
        question = self.current_question
        results = []
        for player in self.players.values():
            player.score += player.pending_points
            results.append({
                'playerId': player.conn_id,
                'playerName': player.name,
                'answerIndex': player.last_answer,
                'isCorrect': player.has_answered and player.last_answer == question.correct_answer,
                'timeToAnswer': player.answer_time if player.has_answered else question.time_limit,
                'pointsEarned': player.pending_points,
                'totalScore': player.score,
            })
        self.phase = Phase.RESOLVING
        self.gateway.send_to_room(self.room, 'question-ended', {
            'correctAnswer': question.correct_answer,
            'results': results,
        })
        self.gateway.send_to_room(self.room, 'leaderboard-updated', {'leaderboard': self.leaderboard()})
        self._schedule('advance', self.timings.results_duration)
        answered = sum(1 for p in self.players.values() if p.has_answered)
        self.logger.info(
            f"[question-end] game={self.code} index={self.current_question_index} answered={answered}/{len(self.players)}"
        )

    def _advance(self) -> None:
        if self.phase != Phase.RESOLVING:
            return
        self.current_question_index += 1
        if self.current_question is None:
            self._finish()
        else:
            self._start_question()

    def _finish(self) -> None:
        if self.has_ended:
            return
        self.phase = Phase.ENDED
        self._start_deferred = False
        self._bump_token()
        self.gateway.send_to_room(self.room, 'game-ended', {'finalLeaderboard': self.leaderboard()})
        self._schedule('evict', self.timings.eviction_grace)
        self.logger.info(f"[game-end] game={self.code} players={len(self.players)}")

    def _all_answered(self) -> bool:
        return bool(self.players) and all(p.has_answered for p in self.players.values())
