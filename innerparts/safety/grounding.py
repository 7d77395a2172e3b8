"""Grounding mode: the safety state that reweights every persona toward calm"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from innerparts.core.global_config import DEFAULT_CONFIG, GlobalConfig


class GroundingController:
    """
    Session-scoped grounding flag with an auto-exit timer.

    Activation is idempotent: activating while already active only resets the
    auto-exit timer. Deactivation clears the flag and cancels the timer.
    Listeners are called with the new state whenever it flips.
    """

    def __init__(self) -> None:
        self._active = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._listeners: list[Callable[[bool], None]] = []
        self.activation_count = 0

    @property
    def active(self) -> bool:
        return self._active

    def subscribe(self, listener: Callable[[bool], None]) -> Callable[[], None]:
        """Register a state listener; returns an unsubscribe callable"""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def activate(self, trigger: str = "auto", config: Optional[GlobalConfig] = None) -> None:
        """
        Enter grounding mode, or extend it if already active.

        Args:
            trigger: What caused activation ("crisis_keywords", "distress", "manual")
            config: Snapshot supplying ``grounding.autoExitMinutes``
        """
        config = config or DEFAULT_CONFIG
        if self._active:
            logger.debug(f"Grounding re-triggered ({trigger}), resetting auto-exit")
            self._reset_auto_exit(config)
            return

        self._active = True
        self.activation_count += 1
        logger.warning(f"Grounding mode activated (trigger: {trigger})")
        self._notify()
        self._reset_auto_exit(config)

    def deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        self._cancel_timer()
        logger.info("Grounding mode deactivated")
        self._notify()

    def close(self) -> None:
        """Cancel any pending timer without notifying listeners"""
        self._cancel_timer()

    def _reset_auto_exit(self, config: GlobalConfig) -> None:
        self._cancel_timer()
        delay = config.grounding.auto_exit_minutes * 60
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; grounding auto-exit not scheduled")
            return
        self._timer = loop.call_later(delay, self.deactivate)

    def _cancel_timer(self) -> None:
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._active)
            except Exception as e:
                logger.error(f"Grounding listener failed: {e}")
