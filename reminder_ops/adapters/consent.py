from __future__ import annotations

import logging
from typing import Sequence

from reminder_ops.adapters.browser_driver import BrowserDriver, DriverError, FrameHandle
from reminder_ops.domain.errors import ConsentDismissError

logger = logging.getLogger(__name__)

# Known consent-platform accept buttons, most specific first.
CONSENT_SELECTORS: tuple[str, ...] = (
    "#onetrust-accept-btn-handler",
    "#didomi-notice-agree-button",
    "#CybotCookiebotDialogBodyLevelButtonLevelOptinAllowAll",
    "#CybotCookiebotDialogBodyButtonAccept",
    "button[data-testid='uc-accept-all-button']",
    ".qc-cmp2-summary-buttons button[mode='primary']",
    "button.fc-cta-consent",
    "button[data-qa='cookie-consent-accept']",
    "button[data-qa='accept-all-cookies']",
    "[data-testid='cookie-banner'] button:has-text('Accept')",
)

FALLBACK_SELECTORS: tuple[str, ...] = (
    "button:text-matches('^\\s*(Aceitar|Accept|Agree|Concordo|Consent)', 'i')",
    "[role='button']:text-matches('^\\s*(Aceitar|Accept|Agree|Concordo|Consent)', 'i')",
)


class ConsentHandler:
    """Best-effort dismissal of cookie/consent banners on the page and its frames."""

    def __init__(
        self,
        selectors: Sequence[str] = CONSENT_SELECTORS,
        fallback_selectors: Sequence[str] = FALLBACK_SELECTORS,
        visibility_timeout_ms: int = 1_500,
    ) -> None:
        self.selectors = tuple(selectors)
        self.fallback_selectors = tuple(fallback_selectors)
        self.visibility_timeout_ms = visibility_timeout_ms

    def _try_click(self, target: FrameHandle, selector: str) -> bool:
        try:
            if not target.is_visible(selector, timeout_ms=0):
                return False
            try:
                target.click(selector, timeout_ms=self.visibility_timeout_ms)
            except DriverError as exc:
                raise ConsentDismissError(f"click failed for {selector!r}") from exc
        except ConsentDismissError as exc:
            logger.debug("Consent dismiss attempt failed in %s: %s", target.name, exc)
            return False
        except DriverError as exc:
            logger.debug("Consent selector %r unusable in %s: %s", selector, target.name, exc)
            return False
        logger.info("Dismissed consent banner via %r in %s", selector, target.name)
        return True

    def _banner_present(self, target: FrameHandle, selectors: Sequence[str]) -> bool:
        try:
            return target.any_visible(selectors, timeout_ms=self.visibility_timeout_ms)
        except DriverError as exc:
            logger.debug("Consent check unusable in %s: %s", target.name, exc)
            return False

    def _try_targets(self, targets: Sequence[FrameHandle], selectors: Sequence[str]) -> bool:
        # One bounded wait per target; individual selectors are then checked instantly.
        for target in targets:
            if not self._banner_present(target, selectors):
                continue
            for selector in selectors:
                if self._try_click(target, selector):
                    return True
        return False

    def attempt_dismiss(self, driver: BrowserDriver) -> bool:
        """Return True when a consent button was clicked. Never raises."""
        try:
            frames = list(driver.list_frames())
        except DriverError as exc:
            logger.debug("Could not enumerate frames: %s", exc)
            frames = []

        if self._try_targets([driver], self.selectors):
            return True
        if self._try_targets(frames, self.selectors):
            return True
        if self._try_targets([driver, *frames], self.fallback_selectors):
            return True
        logger.debug("No consent banner found")
        return False
