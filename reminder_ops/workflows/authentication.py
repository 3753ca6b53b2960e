"""Portal authentication as an explicit state machine.

START -> SESSION_LOADED | NO_SESSION -> CHECK_SESSION -> AUTHENTICATED
                                                      -> LOGGING_IN -> AUTHENTICATED | LOGIN_FAILED
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from reminder_ops.adapters.browser_driver import BrowserDriver, DriverError
from reminder_ops.adapters.consent import ConsentHandler
from reminder_ops.adapters.credentials import CredentialSource
from reminder_ops.adapters.session_store import SessionStore
from reminder_ops.domain.errors import AuthenticationError
from reminder_ops.settings import PortalSettings
from reminder_ops.utils.retry import capture_failure_screenshot
from reminder_ops.workflows.machine import run_state_machine

logger = logging.getLogger(__name__)


class AuthState(Enum):
    START = "start"
    SESSION_LOADED = "session_loaded"
    NO_SESSION = "no_session"
    CHECK_SESSION = "check_session"
    LOGGING_IN = "logging_in"
    AUTHENTICATED = "authenticated"
    LOGIN_FAILED = "login_failed"


TERMINAL_STATES = frozenset({AuthState.AUTHENTICATED, AuthState.LOGIN_FAILED})


class AuthenticationFlow:
    def __init__(
        self,
        driver: BrowserDriver,
        *,
        portal: PortalSettings,
        credentials: CredentialSource,
        session_store: SessionStore,
        session_loaded: bool,
        consent: ConsentHandler | None = None,
        screenshots_dir: Path | None = None,
    ) -> None:
        self.driver = driver
        self.portal = portal
        self.credentials = credentials
        self.session_store = session_store
        self.session_loaded = session_loaded
        self.consent = consent or ConsentHandler(visibility_timeout_ms=portal.timeouts.consent_visible_ms)
        self.screenshots_dir = screenshots_dir
        self.logged_in = False
        self.failure: str | None = None
        self.history: list[AuthState] = []

    def _start(self) -> AuthState:
        return AuthState.SESSION_LOADED if self.session_loaded else AuthState.NO_SESSION

    def _session_loaded(self) -> AuthState:
        logger.info("Reusing saved session")
        return AuthState.CHECK_SESSION

    def _no_session(self) -> AuthState:
        logger.info("No saved session; login will be required if the portal asks")
        return AuthState.CHECK_SESSION

    def _on_sign_in(self) -> bool:
        if self.portal.sign_in_marker in self.driver.current_url():
            return True
        return self.driver.is_visible(self.portal.sign_in_form_selector, timeout_ms=self.portal.timeouts.consent_visible_ms)

    def _check_session(self) -> AuthState:
        try:
            self.driver.navigate(self.portal.appointments_url)
        except DriverError as exc:
            self.failure = f"Could not open {self.portal.appointments_url}: {exc}"
            return AuthState.LOGIN_FAILED
        try:
            self.driver.wait_for_load(timeout_ms=self.portal.timeouts.network_idle_ms)
        except DriverError as exc:
            logger.debug("Network did not go idle: %s", exc)
        self.consent.attempt_dismiss(self.driver)

        try:
            on_sign_in = self._on_sign_in()
        except DriverError as exc:
            logger.debug("Sign-in form check failed: %s", exc)
            on_sign_in = self.portal.sign_in_marker in self.driver.current_url()
        if on_sign_in:
            logger.info("Portal asked for sign-in")
            return AuthState.LOGGING_IN
        logger.info("Session restored, logged in")
        return AuthState.AUTHENTICATED

    def _logging_in(self) -> AuthState:
        timeouts = self.portal.timeouts
        try:
            credentials = self.credentials.get()
        except AuthenticationError as exc:
            self.failure = str(exc)
            return AuthState.LOGIN_FAILED

        try:
            self.driver.navigate(self.portal.login_url)
            self.consent.attempt_dismiss(self.driver)
            self.driver.fill(self.portal.email_selector, credentials.email, timeout_ms=timeouts.login_field_ms)
            self.driver.click(self.portal.continue_selector, timeout_ms=timeouts.login_field_ms)
            self.driver.wait_for_selector(self.portal.password_selector, timeout_ms=timeouts.login_field_ms)
            self.driver.type_keys(
                self.portal.password_selector,
                credentials.password,
                delay_ms=self.portal.typing_delay_ms,
                timeout_ms=timeouts.login_field_ms,
            )
            self.driver.click(self.portal.login_selector, timeout_ms=timeouts.login_field_ms)
            marker = self.portal.sign_in_marker
            self.driver.wait_for_url(lambda url: marker not in url, timeout_ms=timeouts.login_redirect_ms)
        except DriverError as exc:
            self.failure = f"Login did not complete: {exc}"
            capture_failure_screenshot(self.driver, self.screenshots_dir, "login_failed")
            return AuthState.LOGIN_FAILED

        logger.info("Login successful")
        self.logged_in = True
        try:
            state = self.driver.storage_state()
        except DriverError as exc:
            logger.warning("Session not persisted: %s", exc)
        else:
            self.session_store.save(state)
        return AuthState.AUTHENTICATED

    def run(self) -> AuthState:
        """Authenticate or raise ``AuthenticationError``."""
        handlers = {
            AuthState.START: self._start,
            AuthState.SESSION_LOADED: self._session_loaded,
            AuthState.NO_SESSION: self._no_session,
            AuthState.CHECK_SESSION: self._check_session,
            AuthState.LOGGING_IN: self._logging_in,
        }
        final = run_state_machine(
            "authentication",
            AuthState.START,
            handlers,
            TERMINAL_STATES,
            trace=self.history,
        )
        if final is AuthState.LOGIN_FAILED:
            raise AuthenticationError(self.failure or "Login failed")
        return final
