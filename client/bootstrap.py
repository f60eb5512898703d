"""
client/bootstrap.py -- Launch-time decision: is the stored session usable?

Two layers:

  transition(context, event) -> (context, action)
      Pure state machine. No I/O, no clock, no globals. Every edge is in the
      table below; anything else raises InvalidTransition.

  BootstrapController
      Drives the machine: performs each action (network / storage), turns the
      outcome into the next event, and stops when the machine asks for
      nothing more. Also the explicit re-entry point for login, register and
      logout.

  state           event                              next              action
  --------------  ---------------------------------  ----------------  -------------
  INITIALIZING    TOKENS_FOUND                       INITIALIZING      FETCH_ACCOUNT
  INITIALIZING    NO_TOKENS                          UNAUTHENTICATED   NONE
  INITIALIZING    ACCOUNT_OK                         AUTHENTICATED     NONE
  INITIALIZING    ACCOUNT_UNAUTHORIZED (no refresh)  INITIALIZING      REFRESH
  INITIALIZING    ACCOUNT_UNAUTHORIZED (refreshed)   UNAUTHENTICATED   CLEAR_SESSION
  INITIALIZING    ACCOUNT_FAILED                     UNAUTHENTICATED   CLEAR_SESSION
  INITIALIZING    REFRESH_OK                         INITIALIZING      FETCH_ACCOUNT
  INITIALIZING    REFRESH_FAILED                     UNAUTHENTICATED   CLEAR_SESSION
  terminal        any                                InvalidTransition

Fail-closed: every path that is not a confirmed account ends signed out with
storage cleared. At most one refresh per run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Optional

from client.api import ApiClient, ApiError
from client.session import ActiveProfileSelection, SessionClient, Tokens
from client.storage import StorageError

logger = logging.getLogger("medilog.client")


class BootState(str, Enum):
    INITIALIZING = "initializing"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class BootEvent(Enum):
    TOKENS_FOUND = "tokens_found"
    NO_TOKENS = "no_tokens"
    ACCOUNT_OK = "account_ok"
    ACCOUNT_UNAUTHORIZED = "account_unauthorized"
    ACCOUNT_FAILED = "account_failed"
    REFRESH_OK = "refresh_ok"
    REFRESH_FAILED = "refresh_failed"


class BootAction(Enum):
    FETCH_ACCOUNT = "fetch_account"
    REFRESH = "refresh"
    CLEAR_SESSION = "clear_session"
    NONE = "none"


class InvalidTransition(Exception):
    def __init__(self, state: BootState, event: BootEvent) -> None:
        super().__init__(f"No transition from {state.value} on {event.value}")
        self.state = state
        self.event = event


@dataclass(frozen=True)
class BootContext:
    state: BootState = BootState.INITIALIZING
    refresh_attempted: bool = False

    @property
    def terminal(self) -> bool:
        return self.state is not BootState.INITIALIZING


def transition(context: BootContext, event: BootEvent) -> tuple[BootContext, BootAction]:
    """Return the next context and the action the driver must perform."""
    if context.terminal:
        raise InvalidTransition(context.state, event)

    signed_out = replace(context, state=BootState.UNAUTHENTICATED)

    if event is BootEvent.TOKENS_FOUND:
        return context, BootAction.FETCH_ACCOUNT
    if event is BootEvent.NO_TOKENS:
        return signed_out, BootAction.NONE
    if event is BootEvent.ACCOUNT_OK:
        return replace(context, state=BootState.AUTHENTICATED), BootAction.NONE
    if event is BootEvent.ACCOUNT_UNAUTHORIZED:
        if context.refresh_attempted:
            return signed_out, BootAction.CLEAR_SESSION
        return replace(context, refresh_attempted=True), BootAction.REFRESH
    if event is BootEvent.REFRESH_OK:
        return context, BootAction.FETCH_ACCOUNT
    if event in (BootEvent.ACCOUNT_FAILED, BootEvent.REFRESH_FAILED):
        return signed_out, BootAction.CLEAR_SESSION
    raise InvalidTransition(context.state, event)


class BootstrapController:
    """Runs the launch sequence once and owns later login/logout re-entry.

    Usage:
        controller = BootstrapController(session, api, selection)
        state = controller.run()   # BootState.AUTHENTICATED or UNAUTHENTICATED
    """

    def __init__(
        self,
        session: SessionClient,
        api: ApiClient,
        selection: Optional[ActiveProfileSelection] = None,
    ) -> None:
        self.session = session
        self.api = api
        self.selection = selection
        self._lock = threading.Lock()
        self._context = BootContext()

    @property
    def state(self) -> BootState:
        return self._context.state

    # ------------------------------------------------------------------
    # Launch
    # ------------------------------------------------------------------

    def run(self) -> BootState:
        """Decide the launch state. Later and concurrent callers get the decided state."""
        with self._lock:
            if self._context.terminal:
                return self._context.state

            stored = self.session.hydrate()
            if self.selection is not None:
                self.selection.hydrate()

            if stored.complete:
                event: Optional[BootEvent] = BootEvent.TOKENS_FOUND
            else:
                if not stored.empty:
                    # Half a pair can never be used; drop it
                    self.session.clear_session()
                event = BootEvent.NO_TOKENS

            context = self._context
            while event is not None:
                context, action = transition(context, event)
                event = self._perform(action)
            self._context = context
            logger.info("Bootstrap finished: %s", context.state.value)
            return context.state

    def _perform(self, action: BootAction) -> Optional[BootEvent]:
        if action is BootAction.FETCH_ACCOUNT:
            try:
                account = self.api.get_me(self.session.access_token)
            except ApiError as e:
                if e.is_unauthorized:
                    return BootEvent.ACCOUNT_UNAUTHORIZED
                logger.warning("Account lookup failed during bootstrap: %s", e.code)
                return BootEvent.ACCOUNT_FAILED
            self.session.set_account(account)
            return BootEvent.ACCOUNT_OK

        if action is BootAction.REFRESH:
            try:
                tokens = self.api.refresh(self.session.refresh_token)
                self.session.set_tokens(tokens)
            except ApiError as e:
                logger.info("Stored session could not be refreshed: %s", e.code)
                return BootEvent.REFRESH_FAILED
            except StorageError as e:
                logger.warning("Refreshed tokens could not be stored: %s", e)
                return BootEvent.REFRESH_FAILED
            return BootEvent.REFRESH_OK

        if action is BootAction.CLEAR_SESSION:
            self._clear_local()
        return None

    def _clear_local(self) -> None:
        self.session.clear_session()
        if self.selection is not None:
            self.selection.clear()

    # ------------------------------------------------------------------
    # Explicit re-entry
    # ------------------------------------------------------------------

    def _signed_in(self, account: dict[str, Any], tokens: Tokens) -> dict[str, Any]:
        self.session.set_tokens(tokens)
        self.session.set_account(account)
        self._context = BootContext(state=BootState.AUTHENTICATED)
        return account

    def login(self, email: str, password: str) -> dict[str, Any]:
        """Sign in. Raises ApiError or StorageError; state is unchanged on failure."""
        with self._lock:
            account, tokens = self.api.login(email, password)
            return self._signed_in(account, tokens)

    def register(self, email: str, password: str, name: str) -> dict[str, Any]:
        with self._lock:
            account, tokens = self.api.register(email, password, name)
            return self._signed_in(account, tokens)

    def logout(self) -> None:
        """Revoke the refresh token server-side if possible; always sign out locally."""
        with self._lock:
            if not self.session.is_hydrated:
                self.session.hydrate()
            refresh_token = self.session.refresh_token
            if refresh_token:
                try:
                    self.api.logout(refresh_token)
                except ApiError as e:
                    logger.info("Server logout failed (%s); clearing local session anyway", e.code)
            self._clear_local()
            self._context = BootContext(state=BootState.UNAUTHENTICATED)
