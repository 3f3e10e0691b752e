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
Polling of a single remote container, forwarding each observed state to the
application that owns the container.
"""
import logging
import threading
from typing import Callable, Optional

from ..errors import NotFound, OrchestratorError
from ..MODELS.collaborators import ApplicationRepository, ApplicationStateUpdater
from ..MODELS.container import ContainerHandle, ContainerState
from ..REGISTRY.catalog_client import RemoteCatalogClient
from ..RUNNERS.scheduler import FixedDelayScheduler, ScheduledTask

logger = logging.getLogger(__name__)


class ContainerMonitor:
    """
    Recurring task bound to one container and its owning application.
    """

    def __init__(
        self,
        handle: ContainerHandle,
        application_id: str,
        client: RemoteCatalogClient,
        applications: ApplicationRepository,
        state_updater: ApplicationStateUpdater,
        on_gone: Optional[Callable[["ContainerMonitor"], None]] = None,
        container_name: Optional[str] = None,
    ):
        """
        Initializes the monitor.

        :param handle: The container to poll.
        :param application_id: Identifier of the owning application.
        :param client: Client used to fetch the container state.
        :param applications: Lookup for the owning application.
        :param state_updater: Receives every observed state.
        :param on_gone: Called once when the container no longer exists remotely.
        :param container_name: Name the container is known by locally and
            reported under. Defaults to the remote handle's name.
        """
        self.handle = handle
        self.container_name = container_name or handle.name
        self.application_id = application_id
        self.client = client
        self.applications = applications
        self.state_updater = state_updater
        self.on_gone = on_gone

        self.last_state: Optional[ContainerState] = None
        self._cancelled = threading.Event()
        # Held for the whole tick; cancel() waits on it
        self._tick_lock = threading.RLock()
        self._task: Optional[ScheduledTask] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self, scheduler: FixedDelayScheduler, initial_delay: float,
              delay: float) -> ScheduledTask:
        """
        Schedule the monitor on the given scheduler.
        """
        if self.cancelled:
            raise RuntimeError(f"Monitor for {self.container_name} was cancelled")
        self._task = scheduler.schedule_with_fixed_delay(
            self.tick, initial_delay, delay, name=f"monitor:{self.container_name}"
        )
        return self._task

    def cancel(self) -> None:
        """
        Request cancellation and wait for a tick in flight to finish.
        No poll is issued once this returns.
        """
        self._cancelled.set()
        if self._task is not None:
            self._task.cancel()
        with self._tick_lock:
            pass

    def tick(self) -> None:
        """
        Fetch the container's current state and report it to its application.
        """
        with self._tick_lock:
            if self.cancelled:
                return

            try:
                latest = self.client.fetch_state(self.handle)
            except NotFound:
                logger.info("Container %s no longer exists, stopping its monitor",
                            self.container_name)
                self.cancel()
                if self.on_gone:
                    self.on_gone(self)
                return
            except OrchestratorError as e:
                logger.warning("Skipping poll of container %s: %s", self.container_name, e)
                return

            if self.cancelled:
                logger.debug("Discarding state of %s fetched after cancellation",
                             self.container_name)
                return

            self.handle = latest
            application = self.applications.find_one(self.application_id)
            if application is None:
                logger.warning("Application %s of container %s not found, skipping update",
                               self.application_id, self.container_name)
                return

            if latest.state != self.last_state:
                logger.info("Container %s is now %s", self.container_name, latest.state.value)
            self.last_state = latest.state
            self.state_updater.update_container_state(
                application, self.container_name, latest.state
            )

    def __repr__(self) -> str:
        return f"ContainerMonitor({self.container_name}, app={self.application_id})"
