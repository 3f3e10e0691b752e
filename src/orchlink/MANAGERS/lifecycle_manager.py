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
Lifecycle of remote containers: create, delete, start and stop, with a state
monitor running for as long as the container exists.
"""
import logging
import threading
from collections import OrderedDict
from enum import Enum
from typing import Dict, Union

from ..errors import (
    AlreadyMonitored,
    ConfigurationError,
    ConsistencyError,
    NotFound,
    NotMonitored,
    RemoteError,
)
from ..MODELS.collaborators import Application, ApplicationRepository, ApplicationStateUpdater
from ..MODELS.container import ContainerHandle
from ..MODELS.image import Image
from ..REGISTRY.catalog_client import RemoteCatalogClient
from ..RUNNERS.scheduler import FixedDelayScheduler
from .container_monitor import ContainerMonitor
from .monitor_registry import MonitorRegistry

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """Where a container stands, as far as this manager knows."""

    NON_EXISTENT = "non-existent"
    CREATED = "created"
    MONITORED = "monitored"
    CANCELLING = "cancelling"
    DELETED = "deleted"


class ContainerLifecycleManager:
    """
    Creates and deletes remote containers and keeps exactly one monitor per
    live container. The monitor is registered right after the remote create
    and cancelled before the remote delete.
    """

    # How many deleted names are remembered for lifecycle_state and delete retries
    deleted_history = 256

    def __init__(
        self,
        client: RemoteCatalogClient,
        registry: MonitorRegistry,
        scheduler: FixedDelayScheduler,
        applications: ApplicationRepository,
        state_updater: ApplicationStateUpdater,
        monitor_delay: float = 2.0,
        monitor_initial_delay: float = 1.0,
    ):
        if monitor_delay <= 0:
            raise ConfigurationError("monitor delay must not be negative or zero")
        if monitor_initial_delay < 0:
            raise ConfigurationError("monitor initial delay must not be negative")
        self.client = client
        self.registry = registry
        self.scheduler = scheduler
        self.applications = applications
        self.state_updater = state_updater
        self.monitor_delay = monitor_delay
        self.monitor_initial_delay = monitor_initial_delay

        # Live containers only; deleted names move to the bounded history
        self._states: Dict[str, LifecycleState] = {}
        self._deleted: "OrderedDict[str, None]" = OrderedDict()
        self._states_lock = threading.Lock()

    def _set_state(self, name: str, state: LifecycleState) -> None:
        with self._states_lock:
            if state == LifecycleState.DELETED:
                self._states.pop(name, None)
                self._deleted[name] = None
                self._deleted.move_to_end(name)
                while len(self._deleted) > self.deleted_history:
                    self._deleted.popitem(last=False)
            else:
                self._deleted.pop(name, None)
                self._states[name] = state

    def _advance(self, name: str, expected: LifecycleState, state: LifecycleState) -> None:
        with self._states_lock:
            if self._states.get(name) == expected:
                self._states[name] = state

    def lifecycle_state(self, name: str) -> LifecycleState:
        with self._states_lock:
            if name in self._states:
                return self._states[name]
            if name in self._deleted:
                return LifecycleState.DELETED
            return LifecycleState.NON_EXISTENT

    def create(self, application: Application, name: str, image: Union[Image, str]) -> ContainerHandle:
        """
        Create a remote container and start monitoring it.

        Args:
            application: Owning application; only its id is kept.
            name: Container name.
            image: Image, or image name, backing the container.

        Returns:
            Handle of the created container.

        Raises:
            RemoteError: The remote create failed; nothing is monitored.
            ConsistencyError: The container exists remotely but could not be
                monitored. It is not rolled back.
        """
        image_ref = image.name if isinstance(image, Image) else image
        handle = self.client.create_container(name, image_ref)
        logger.info("Created container %s from image %s", name, image_ref)

        monitor = ContainerMonitor(
            handle,
            application.id,
            self.client,
            self.applications,
            self.state_updater,
            on_gone=self._monitor_gone,
            container_name=name,
        )
        try:
            self.registry.schedule(name, monitor)
        except AlreadyMonitored as e:
            raise ConsistencyError(
                f"Container {name} was created but is already monitored"
            ) from e
        self._set_state(name, LifecycleState.CREATED)

        try:
            monitor.start(self.scheduler, self.monitor_initial_delay, self.monitor_delay)
        except (RuntimeError, ConfigurationError) as e:
            self.registry.release(name, monitor)
            raise ConsistencyError(
                f"Container {name} was created but its monitor could not be scheduled: {e}"
            ) from e

        # The first tick may already have found the container gone
        self._advance(name, LifecycleState.CREATED, LifecycleState.MONITORED)
        return handle

    def delete(self, application: Application, name: str) -> None:
        """
        Stop monitoring a container, then delete it remotely.

        A container without a monitor is only deleted if this manager created
        it: a previous delete cancelled its monitor, the monitor found it gone,
        or its monitor could never be scheduled.

        Raises:
            NotFound: The container does not exist remotely.
            ConsistencyError: The container is not monitored by this manager, or
                the monitor was cancelled but the remote delete failed. In the
                latter case retrying the delete is safe.
        """
        try:
            monitor = self.registry.cancel(name)
        except NotMonitored as e:
            state = self.lifecycle_state(name)
            if state not in (LifecycleState.CANCELLING, LifecycleState.DELETED,
                             LifecycleState.CREATED):
                raise ConsistencyError(
                    f"Container {name} is not monitored by this manager"
                ) from e
            logger.warning("Container %s has no monitor (%s), deleting it anyway",
                           name, state.value)
        else:
            self._set_state(name, LifecycleState.CANCELLING)
            monitor.cancel()

        try:
            self.client.delete_container(name)
        except NotFound:
            self._set_state(name, LifecycleState.DELETED)
            raise
        except RemoteError as e:
            raise ConsistencyError(
                f"Monitor of container {name} is cancelled but remote delete failed: {e}"
            ) from e

        self._set_state(name, LifecycleState.DELETED)
        logger.info("Deleted container %s of application %s",
                    name, application.id)

    def start(self, name: str) -> None:
        """Start a container. Its monitor picks up the new state on its next tick."""
        self.client.start_container(name)
        logger.info("Requested start of container %s", name)

    def stop(self, name: str) -> None:
        """Stop a container. Its monitor picks up the new state on its next tick."""
        self.client.stop_container(name)
        logger.info("Requested stop of container %s", name)

    def shutdown(self) -> None:
        """Cancel every monitor, leaving the remote containers alone."""
        monitors = self.registry.drain()
        for monitor in monitors:
            monitor.cancel()
        if monitors:
            logger.info("Cancelled %d container monitors", len(monitors))

    def _monitor_gone(self, monitor: ContainerMonitor) -> None:
        if self.registry.release(monitor.container_name, monitor):
            self._set_state(monitor.container_name, LifecycleState.DELETED)
