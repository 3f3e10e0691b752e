# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Registry of the active container monitors, keyed by container name.
"""
import logging
import threading
from typing import Dict, List, Optional, TYPE_CHECKING

from ..errors import AlreadyMonitored, NotMonitored

if TYPE_CHECKING:
    from .container_monitor import ContainerMonitor

logger = logging.getLogger(__name__)


class MonitorRegistry:
    """
    Holds at most one monitor per container name.
    Every mutation happens under a single lock.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._monitors: Dict[str, "ContainerMonitor"] = {}

    def schedule(self, container_name: str, monitor: "ContainerMonitor") -> None:
        """
        Register the monitor for a container.

        Raises:
            AlreadyMonitored: If a monitor is already registered for that name.
                The registered monitor is left in place.
        """
        with self._lock:
            if container_name in self._monitors:
                raise AlreadyMonitored(container_name)
            self._monitors[container_name] = monitor
        logger.debug("Registered monitor for container %s", container_name)

    def cancel(self, container_name: str) -> "ContainerMonitor":
        """
        Remove the monitor for a container and return it.
        Cancelling the returned monitor is up to the caller.

        Raises:
            NotMonitored: If no monitor is registered for that name.
        """
        with self._lock:
            try:
                monitor = self._monitors.pop(container_name)
            except KeyError:
                raise NotMonitored(container_name) from None
        logger.debug("Deregistered monitor for container %s", container_name)
        return monitor

    def release(self, container_name: str, monitor: "ContainerMonitor") -> bool:
        """
        Remove the entry only if it still points at this exact monitor.

        Returns:
            True if the entry was removed.
        """
        with self._lock:
            if self._monitors.get(container_name) is not monitor:
                return False
            del self._monitors[container_name]
        logger.debug("Released monitor for container %s", container_name)
        return True

    def drain(self) -> List["ContainerMonitor"]:
        """Remove and return every registered monitor."""
        with self._lock:
            monitors = list(self._monitors.values())
            self._monitors.clear()
        return monitors

    def get(self, container_name: str) -> Optional["ContainerMonitor"]:
        with self._lock:
            return self._monitors.get(container_name)

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._monitors)

    def __contains__(self, container_name: object) -> bool:
        with self._lock:
            return container_name in self._monitors

    def __len__(self) -> int:
        with self._lock:
            return len(self._monitors)
