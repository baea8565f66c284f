"""Game domain services: scoring, timers and the session state machine.

This package contains the core game mechanics that socket handlers and
HTTP routes call into, keeping transport concerns separated from phase
timing, answer collection and scoring.
"""

from .registry import SessionRegistry
from .scheduler import ManualScheduler, Scheduler
from .session import Phase, Session, SessionTimings

__all__ = ['ManualScheduler', 'Phase', 'Scheduler', 'Session', 'SessionRegistry', 'SessionTimings']
