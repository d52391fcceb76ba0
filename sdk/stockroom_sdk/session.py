"""
Session tracking for the Stockroom SDK.

SessionProvider turns the auth backend's state notifications into a
subscribable (identity, loading) signal. It is created explicitly and
injected into consumers; there is no module-level session.

Invariants:
    - Starts as (identity=None, loading=True)
    - The first auth notification always clears loading
    - Listeners are notified only when the state changes
    - stop() leaves no listener registered with the backend
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from .backend.base import AuthBackend, AuthUser, Unsubscribe
from .models import Identity

logger = logging.getLogger(__name__)

SessionListener = Callable[["SessionState"], None]


@dataclass(frozen=True)
class SessionState:
    """Current authentication state.

    Attributes:
        identity: Signed-in identity, None when signed out or unknown
        loading: True until the auth backend reports for the first time
    """

    identity: Optional[Identity] = None
    loading: bool = True

    @property
    def signed_in(self) -> bool:
        return self.identity is not None


class SessionProvider:
    """Tracks the authenticated identity and its lifecycle.

    Example:
        >>> session = SessionProvider(backend)
        >>> session.start()
        >>> state = await session.wait_until_ready()
        >>> unsubscribe = session.subscribe(lambda s: print(s.identity))
        >>> session.stop()
    """

    def __init__(self, auth: AuthBackend) -> None:
        self._auth = auth
        self._state = SessionState()
        self._listeners: List[SessionListener] = []
        self._unsubscribe: Optional[Unsubscribe] = None
        self._ready: Optional[asyncio.Event] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Optional[Identity]:
        return self._state.identity

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        """Begin listening for auth state changes."""
        if self._unsubscribe is not None:
            return
        self._ready = asyncio.Event()
        self._unsubscribe = self._auth.on_auth_state_change(self._handle_auth_change)
        logger.debug("Session provider started")

    def stop(self) -> None:
        """Stop listening. The last known state is kept."""
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.debug("Session provider stopped")

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener and call it with the current state.

        Returns:
            Handle that removes the listener
        """
        self._listeners.append(listener)
        listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def wait_until_ready(self) -> SessionState:
        """Wait for the first auth notification after start()."""
        if self._ready is None:
            raise RuntimeError("SessionProvider.start() has not been called")
        await self._ready.wait()
        return self._state

    def _handle_auth_change(self, user: Optional[AuthUser]) -> None:
        new_state = SessionState(identity=user.uid if user else None, loading=False)
        if self._ready is not None:
            self._ready.set()
        if new_state == self._state:
            return

        previous = self._state
        self._state = new_state
        logger.info(
            "Session changed",
            extra={"identity": new_state.identity, "previous_identity": previous.identity},
        )
        for listener in list(self._listeners):
            listener(new_state)
