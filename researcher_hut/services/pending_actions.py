"""
Pending actions: an OTP was issued for some purpose and is waiting to be verified.

A pending action is keyed by ``(subject_key, flow_type)``. Writing a new one for
the same key supersedes the previous one, expired actions read as absent, and
``consume`` removes an action in the same step that reads it, so a code can be
verified at most once. Expired actions are dropped by a sweep that runs at
most once per ``SWEEP_INTERVAL``, triggered from ``put`` and ``sweep``.

The in-memory store lives as long as the process. Restarting the server drops
every in-flight OTP and the user simply requests a new one. Several server
instances would need a shared implementation of ``PendingActionStore``.
"""
import enum
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

from researcher_hut.core.ratelimit import utcnow


class FlowType(str, enum.Enum):
    admin_login = "AdminLogin"
    admin_reset = "AdminReset"
    user_signup = "UserSignup"
    email_change = "EmailChange"
    password_reset = "PasswordReset"


@dataclass(frozen=True)
class PendingAction:
    subject_key: str
    flow_type: FlowType
    otp_hash: str
    created_at: datetime
    expires_at: datetime
    payload: Mapping[str, Any] = field(default_factory=dict)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PendingActionStore(ABC):

    @abstractmethod
    def put(
        self,
        subject_key: str,
        flow_type: FlowType,
        otp_hash: str,
        payload: Mapping[str, Any],
        ttl: timedelta,
    ) -> PendingAction:
        """Stores a new action, replacing any action for the same key and flow."""

    @abstractmethod
    def get(self, subject_key: str, flow_type: FlowType) -> PendingAction | None:
        """Returns the live action, or None when absent or expired."""

    @abstractmethod
    def consume(self, subject_key: str, flow_type: FlowType) -> PendingAction | None:
        """Removes the action and returns it if it was live."""

    @abstractmethod
    def live_actions(self, flow_type: FlowType) -> list[PendingAction]:
        ...

    @abstractmethod
    def purge_expired(self) -> int:
        """Drops every expired action and returns how many were dropped."""

    @abstractmethod
    def sweep(self) -> int:
        """Like ``purge_expired`` but at most once per sweep interval."""


SWEEP_INTERVAL = timedelta(minutes=1)


class InMemoryPendingActionStore(PendingActionStore):

    def __init__(
        self,
        clock: Callable[[], datetime] = utcnow,
        sweep_interval: timedelta = SWEEP_INTERVAL,
    ):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep: datetime | None = None
        self._actions: dict[tuple[str, FlowType], PendingAction] = {}
        self._lock = threading.Lock()

    def put(self, subject_key, flow_type, otp_hash, payload, ttl):
        now = self._clock()
        action = PendingAction(
            subject_key=subject_key,
            flow_type=flow_type,
            otp_hash=otp_hash,
            created_at=now,
            expires_at=now + ttl,
            payload=MappingProxyType(dict(payload)),
        )
        with self._lock:
            self._sweep_if_due(now)
            self._actions[(subject_key, flow_type)] = action
        return action

    def get(self, subject_key, flow_type):
        key = (subject_key, flow_type)
        with self._lock:
            action = self._actions.get(key)
            if action is None:
                return None
            if action.is_expired(self._clock()):
                del self._actions[key]
                return None
            return action

    def consume(self, subject_key, flow_type):
        with self._lock:
            action = self._actions.pop((subject_key, flow_type), None)
        if action is None or action.is_expired(self._clock()):
            return None
        return action

    def live_actions(self, flow_type):
        now = self._clock()
        with self._lock:
            return [
                a for (_, ft), a in self._actions.items()
                if ft == flow_type and not a.is_expired(now)
            ]

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            self._next_sweep = now + self._sweep_interval
            return self._drop_expired(now)

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_if_due(self._clock())

    def _sweep_if_due(self, now: datetime) -> int:
        # caller holds the lock
        if self._next_sweep is not None and now < self._next_sweep:
            return 0
        self._next_sweep = now + self._sweep_interval
        return self._drop_expired(now)

    def _drop_expired(self, now: datetime) -> int:
        expired = [k for k, a in self._actions.items() if a.is_expired(now)]
        for k in expired:
            del self._actions[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)
