"""Host-side collaborators: target lookup and idle detection."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from .models import TargetInfo

logger = logging.getLogger(__name__)


class TargetDirectory(Protocol):
    def get_target(self, target_id: int) -> Optional[TargetInfo]:
        ...

    def focused_target(self) -> Optional[TargetInfo]:
        ...


class IdleConfigurator(Protocol):
    def set_detection_interval(self, seconds: int) -> None:
        ...


class HostRegistry:
    """Mirror of the host's tabs as reported through the signal API.

    The HTTP handlers write to it as signals arrive and the tracker reads it
    from the service thread, hence the lock.
    """

    def __init__(self, idle_timeout_seconds: int = 60) -> None:
        self._lock = threading.Lock()
        self._targets: dict[int, TargetInfo] = {}
        self._focused: Optional[int] = None
        self._idle_timeout_seconds = idle_timeout_seconds

    def upsert_target(
        self, target_id: int, url: Optional[str], window_id: Optional[int] = None
    ) -> TargetInfo:
        with self._lock:
            previous = self._targets.get(target_id)
            if window_id is None and previous is not None:
                window_id = previous.window_id
            info = TargetInfo(target_id=target_id, url=url, window_id=window_id)
            self._targets[target_id] = info
            return info

    def remove_target(self, target_id: int) -> None:
        with self._lock:
            self._targets.pop(target_id, None)
            if self._focused == target_id:
                self._focused = None

    def set_focused(self, target_id: Optional[int]) -> None:
        with self._lock:
            self._focused = target_id

    def get_target(self, target_id: int) -> Optional[TargetInfo]:
        with self._lock:
            return self._targets.get(target_id)

    def focused_target(self) -> Optional[TargetInfo]:
        with self._lock:
            if self._focused is None:
                return None
            return self._targets.get(self._focused)

    def set_detection_interval(self, seconds: int) -> None:
        with self._lock:
            self._idle_timeout_seconds = seconds
        logger.info("Idle detection interval set to %ss.", seconds)

    @property
    def idle_timeout_seconds(self) -> int:
        with self._lock:
            return self._idle_timeout_seconds
