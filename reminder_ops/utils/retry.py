from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Callable, TypeVar

from reminder_ops.adapters.browser_driver import BrowserDriver, DriverError, DriverTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def is_transient(exc: Exception) -> bool:
    if isinstance(exc, DriverTimeoutError):
        return True
    if isinstance(exc, DriverError):
        message = str(exc).lower()
        return "selector" in message or "timeout" in message
    return False


def capture_failure_screenshot(driver: BrowserDriver, screenshots_dir: Path | None, action: str) -> Path | None:
    """Best-effort screenshot of the current page; never masks the original failure."""
    if screenshots_dir is None:
        return None
    path = Path(screenshots_dir) / f"{int(time.time() * 1000)}_{action}.png"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        driver.screenshot(path)
    except (DriverError, OSError) as exc:
        logger.warning("Could not capture %s screenshot: %s", action, exc)
        return None
    return path


def retry_transient(
    action: str,
    fn: Callable[[], T],
    *,
    driver: BrowserDriver,
    screenshots_dir: Path | None = None,
    attempts: int = 3,
    delay_s: float = 0.6,
) -> T:
    last_exc: Exception | None = None
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except Exception as exc:
            if not is_transient(exc):
                capture_failure_screenshot(driver, screenshots_dir, f"{action}_fatal")
                raise
            last_exc = exc
            if attempt == attempts:
                capture_failure_screenshot(driver, screenshots_dir, f"{action}_retries_exhausted")
                raise
            logger.info("Transient failure in %s (attempt %s/%s): %s", action, attempt, attempts, exc)
            time.sleep(delay_s)
    raise RuntimeError(f"Unreachable retry state for action={action}") from last_exc
