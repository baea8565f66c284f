import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set, Tuple, Union

from quizlive.errors import MissingQuizData, SessionNotFound
from quizlive.gateway import BroadcastGateway
from quizlive.models import Player, Quiz, generate_join_code, normalize_join_code
from .scheduler import Scheduler
from .session import Session, SessionTimings


ROLE_HOST = 'host'
ROLE_PLAYER = 'player'


class SessionRegistry:
    """Live sessions by join code, plus connection -> (code, role) routing.

    The registry lock only guards the two maps. Session methods are always
    called after it is released so a session never waits on the registry
    while another thread waits on that session.
    """

    def __init__(self, gateway: BroadcastGateway, scheduler: Scheduler, timings: SessionTimings = None,
                 logger: logging.Logger = None, code_length: int = 6,
                 code_factory: Callable[[int], str] = generate_join_code):
        self.gateway = gateway
        self.scheduler = scheduler
        self.timings = timings or SessionTimings()
        self.logger = logger or logging.getLogger(__name__)
        self.code_length = code_length
        self.code_factory = code_factory
        self._sessions: Dict[str, Session] = {}
        self._bindings: Dict[str, Set[Tuple[str, str]]] = {}
        self._members: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def __contains__(self, code):
        with self._lock:
            return normalize_join_code(code) in self._sessions

    # ---- lookup and lifecycle ----

    def allocate(self) -> str:
        with self._lock:
            return self._allocate()

    def _allocate(self) -> str:
        while True:
            code = self.code_factory(self.code_length)
            if code not in self._sessions:
                return code

    def find(self, code) -> Optional[Session]:
        code = normalize_join_code(code)
        with self._lock:
            return self._sessions.get(code) if code else None

    def get(self, code) -> Session:
        session = self.find(code)
        if session is None:
            raise SessionNotFound()
        return session

    def sessions(self) -> List[Session]:
        with self._lock:
            return list(self._sessions.values())

    def summaries(self) -> List[Dict[str, Any]]:
        return [s.summary() for s in self.sessions()]

    def create(self, quiz: Union[Quiz, Dict[str, Any]], join_code=None) -> Session:
        """Create a session with no host attached, e.g. the seeded demo quiz."""
        session, _ = self._get_or_create(join_code, quiz)
        return session

    def _get_or_create(self, join_code, quiz) -> Tuple[Session, bool]:
        code = normalize_join_code(join_code)
        with self._lock:
            session = self._sessions.get(code) if code else None
            if session is not None:
                return session, False
            if quiz is None:
                raise MissingQuizData()
            if not isinstance(quiz, Quiz):
                quiz = Quiz.from_dict(quiz)
            code = code or self._allocate()
            session = Session(
                code, quiz, self.gateway, self.scheduler,
                timings=self.timings, logger=self.logger, on_evict=self._evict_session,
            )
            self._sessions[code] = session
        self.logger.info(f"[session-create] game={code} title={quiz.title!r} questions={len(quiz.questions)}")
        return session, True

    def create_or_attach(self, host_conn_id: str, join_code=None, quiz=None) -> Tuple[Session, Dict[str, Any], bool]:
        session, created = self._get_or_create(join_code, quiz)
        with self._lock:
            self._bind(host_conn_id, session.code, ROLE_HOST)
        state = session.attach_host(host_conn_id)
        return session, state, created

    def evict(self, code) -> bool:
        code = normalize_join_code(code)
        with self._lock:
            if self._sessions.pop(code, None) is None:
                return False
            self._drop_members(code)
        self.logger.info(f"[session-evict] game={code}")
        return True

    def _evict_session(self, session: Session) -> None:
        with self._lock:
            if self._sessions.get(session.code) is not session:
                return
            del self._sessions[session.code]
            self._drop_members(session.code)
        self.logger.info(f"[session-evict] game={session.code}")

    # ---- routed operations ----

    def join_player(self, join_code, conn_id: str, name: str) -> Tuple[Session, Player]:
        session = self.get(join_code)
        player = session.add_player(conn_id, name)
        with self._lock:
            previous = [code for code, role in self._bindings.get(conn_id, set())
                        if role == ROLE_PLAYER and code != session.code]
            for code in previous:
                self._unbind(conn_id, code, ROLE_PLAYER)
            self._bind(conn_id, session.code, ROLE_PLAYER)
            stale = [self._sessions.get(code) for code in previous]
        # a connection plays in one session at a time
        for other in stale:
            if other is not None:
                other.remove_player(conn_id)
        return session, player

    def submit_answer(self, conn_id: str, question_id, option_index: int, elapsed: float, join_code=None) -> bool:
        if join_code is None:
            join_code = self.player_session_code(conn_id)
        session = self.find(join_code)
        if session is None:
            return False
        return session.submit_answer(conn_id, str(question_id), option_index, elapsed)

    def start_game(self, join_code, requester: str) -> bool:
        return self.get(join_code).start_game(requester)

    def toggle_pause(self, join_code, requester: str) -> bool:
        return self.get(join_code).toggle_pause(requester)

    def end_game(self, join_code, requester: str) -> None:
        self.get(join_code).end_game(requester)

    def kick_player(self, join_code, requester: str, target_conn_id: str) -> Optional[Player]:
        session = self.get(join_code)
        player = session.kick_player(requester, target_conn_id)
        if player is not None:
            with self._lock:
                self._unbind(target_conn_id, session.code, ROLE_PLAYER)
        return player

    def handle_disconnect(self, conn_id: str) -> None:
        with self._lock:
            bindings = self._bindings.pop(conn_id, set())
            targets = []
            for code, role in bindings:
                members = self._members.get(code)
                if members is not None:
                    members.discard(conn_id)
                targets.append((self._sessions.get(code), role))
        for session, role in targets:
            if session is None:
                continue
            if role == ROLE_PLAYER:
                session.remove_player(conn_id)
            else:
                session.detach_host(conn_id)

    def player_session_code(self, conn_id: str) -> Optional[str]:
        with self._lock:
            for code, role in self._bindings.get(conn_id, set()):
                if role == ROLE_PLAYER:
                    return code
        return None

    def roles_for(self, conn_id: str) -> Set[Tuple[str, str]]:
        with self._lock:
            return set(self._bindings.get(conn_id, set()))

    # ---- reverse mapping (caller holds self._lock) ----

    def _bind(self, conn_id, code, role):
        self._bindings.setdefault(conn_id, set()).add((code, role))
        self._members.setdefault(code, set()).add(conn_id)

    def _unbind(self, conn_id, code, role):
        entries = self._bindings.get(conn_id)
        if entries is None:
            return
        entries.discard((code, role))
        if not any(c == code for c, _ in entries):
            members = self._members.get(code)
            if members is not None:
                members.discard(conn_id)
        if not entries:
            del self._bindings[conn_id]

    def _drop_members(self, code):
        for conn_id in self._members.pop(code, set()):
            entries = self._bindings.get(conn_id)
            if entries is None:
                continue
            entries.difference_update({e for e in entries if e[0] == code})
            if not entries:
                del self._bindings[conn_id]
