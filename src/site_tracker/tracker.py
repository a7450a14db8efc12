"""Session attribution state machine."""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .aggregator import StatsAggregator
from .config import TrackerSettings
from .host import IdleConfigurator, TargetDirectory
from .messages import IdleState
from .models import Session, TargetInfo
from .normalization import classify_domain, is_trackable_url

logger = logging.getLogger(__name__)


class SessionTracker:
    """Owns the one session that may be open at any instant.

    Every transition closes the current session before deciding what comes
    next, so time is never attributed to two targets at once. Callers must
    serialize calls; the tracker itself holds no lock.
    """

    def __init__(
        self,
        directory: TargetDirectory,
        aggregator: StatsAggregator,
        *,
        settings: Optional[TrackerSettings] = None,
        clock: Callable[[], float] = time.time,
        idle_configurator: Optional[IdleConfigurator] = None,
        on_session_open: Optional[Callable[[Session], None]] = None,
    ) -> None:
        self._directory = directory
        self._aggregator = aggregator
        self._settings = settings or TrackerSettings()
        self._clock = clock
        self._idle_configurator = idle_configurator
        self._on_session_open = on_session_open
        self._session: Optional[Session] = None
        self._host_idle = False
        self._aggregator.configure(
            timezone=self._settings.timezone, reset_hour=self._settings.daily_reset_hour
        )

    @property
    def current_session(self) -> Optional[Session]:
        return self._session

    @property
    def settings(self) -> TrackerSettings:
        return self._settings

    @property
    def host_idle(self) -> bool:
        return self._host_idle

    def focus_gained(self, target_id: int) -> Optional[Session]:
        self.close()
        return self._open(self._lookup(target_id))

    def focus_lost(self) -> None:
        self.close()

    def navigated(self, target_id: int) -> Optional[Session]:
        """Re-attribute the active target after its URL changed."""
        if self._session is None or self._session.target_id != target_id:
            return self._session
        return self.focus_gained(target_id)

    def target_removed(self, target_id: int) -> None:
        if self._session is not None and self._session.target_id == target_id:
            self.close()

    def idle_state_changed(self, state: IdleState) -> Optional[Session]:
        if state == "active":
            self._host_idle = False
            return self.resume_focused()
        self._host_idle = True
        self.close()
        return None

    def resume_focused(self) -> Optional[Session]:
        """Open a session for whatever the host currently has focused."""
        self.close()
        try:
            target = self._directory.focused_target()
        except LookupError:
            logger.warning("Focused target lookup failed; staying idle.", exc_info=True)
            target = None
        return self._open(target)

    def apply_settings(self, settings: TrackerSettings) -> None:
        previous = self._settings
        self._settings = settings
        self._aggregator.configure(
            timezone=settings.timezone, reset_hour=settings.daily_reset_hour
        )
        if (
            self._idle_configurator is not None
            and settings.idle_timeout_seconds != previous.idle_timeout_seconds
        ):
            self._idle_configurator.set_detection_interval(settings.idle_timeout_seconds)
        if settings.tracking_paused and not previous.tracking_paused:
            logger.info("Tracking paused.")
            self.close()
        elif previous.tracking_paused and not settings.tracking_paused:
            logger.info("Tracking resumed.")
            self.resume_focused()

    def close(self) -> int:
        """Close the open session, if any, and return the seconds recorded."""
        session = self._session
        if session is None:
            return 0
        self._session = None
        duration = session.elapsed_seconds(self._clock())
        logger.debug(
            "Closed session target=%s domain=%s after %ss",
            session.target_id,
            session.domain,
            duration,
        )
        if duration <= 0:
            return 0
        self._aggregator.record(session.domain, duration, session.resource)
        self._aggregator.flush()
        return duration

    def _lookup(self, target_id: int) -> Optional[TargetInfo]:
        try:
            return self._directory.get_target(target_id)
        except LookupError:
            logger.warning("Target %s disappeared; staying idle.", target_id, exc_info=True)
            return None

    def _open(self, target: Optional[TargetInfo]) -> Optional[Session]:
        if target is None or self._host_idle or self._settings.tracking_paused:
            return None
        if not target.url or not is_trackable_url(target.url):
            return None
        session = Session(
            target_id=target.target_id,
            domain=classify_domain(target.url),
            resource=target.url,
            start_time=self._clock(),
        )
        self._session = session
        logger.debug("Opened session target=%s domain=%s", session.target_id, session.domain)
        if self._on_session_open is not None:
            self._on_session_open(session)
        return session
