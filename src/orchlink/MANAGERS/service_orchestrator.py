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
Orchestrator service wiring image reconciliation and container lifecycle
management to one remote API and one worker pool.
"""
import logging
from typing import Any, Optional, Set, Union

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..errors import RemoteUnavailable
from ..MODELS.collaborators import ApplicationRepository, ApplicationStateUpdater, ImageStore
from ..MODELS.container import ContainerHandle
from ..MODELS.image import Image
from ..MODELS.orchestration_config import OrchestratorSettings, load_settings
from ..REGISTRY.catalog_client import RemoteCatalogClient
from ..RUNNERS.scheduler import FixedDelayScheduler
from ..UTILS.logging_config import configure_logging
from .image_reconciler import ImageReconciler
from .lifecycle_manager import ContainerLifecycleManager
from .monitor_registry import MonitorRegistry

logger = logging.getLogger(__name__)


class OrchestratorService:
    """
    Entry point used by the application layer.
    """
    def __init__(
        self,
        settings: OrchestratorSettings,
        image_store: ImageStore,
        applications: ApplicationRepository,
        state_updater: ApplicationStateUpdater,
        client: Optional[RemoteCatalogClient] = None,
        scheduler: Optional[FixedDelayScheduler] = None,
    ):
        """
        Initializes the orchestrator service.

        :param settings: Validated settings.
        :param image_store: Local image cache kept in sync with the catalog.
        :param applications: Lookup of applications by id.
        :param state_updater: Receives container state observations.
        :param client: Remote API client, built from settings if omitted.
        :param scheduler: Worker pool, built from settings if omitted.
        """
        self.settings = settings
        self.client = client or RemoteCatalogClient(settings.base_uri,
                                                    timeout=settings.request_timeout)
        # An injected scheduler belongs to the caller and is never shut down here
        self._owns_scheduler = scheduler is None
        self.scheduler = scheduler or FixedDelayScheduler(max_workers=settings.max_workers)
        self.registry = MonitorRegistry()
        self.reconciler = ImageReconciler(self.client, image_store, settings.monitor_delay)
        self.lifecycle = ContainerLifecycleManager(
            self.client,
            self.registry,
            self.scheduler,
            applications,
            state_updater,
            monitor_delay=settings.monitor_delay,
            monitor_initial_delay=settings.monitor_initial_delay,
        )
        self.started = False

    @classmethod
    def from_config(
        cls,
        image_store: ImageStore,
        applications: ApplicationRepository,
        state_updater: ApplicationStateUpdater,
        path: Optional[str] = None,
        env_file: Optional[str] = None,
    ) -> "OrchestratorService":
        """
        Build the service from a settings file and the environment, with
        console logging at the configured level.

        Raises:
            ConfigurationError: If the settings are invalid. Nothing is scheduled.
        """
        settings = load_settings(path, env_file)
        configure_logging(settings.log_level)
        return cls(settings, image_store, applications, state_updater)

    def wait_for_remote(self) -> None:
        """
        Wait until the remote API root answers.

        Raises:
            RemoteUnavailable: If it is still unreachable after the configured attempts.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.settings.startup_attempts),
            wait=wait_fixed(self.settings.startup_wait),
            retry=retry_if_exception_type(RemoteUnavailable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        retrying(self.client.ping)

    def start(self, wait_for_remote: bool = True) -> None:
        """
        Starts periodic image reconciliation.

        :param wait_for_remote: Probe the remote API before scheduling anything.
        """
        if self.started:
            return
        if wait_for_remote:
            self.wait_for_remote()
        self.reconciler.start(self.scheduler)
        self.started = True
        logger.info("Orchestrator started against %s (every %ss)",
                    self.settings.base_uri, self.settings.monitor_delay)

    def stop(self) -> None:
        """
        Stops reconciliation and every container monitor.
        A scheduler built by the service is shut down as well, so the service
        can only be started again if its scheduler was passed in.
        """
        self.reconciler.stop()
        self.lifecycle.shutdown()
        if self._owns_scheduler:
            self.scheduler.shutdown()
        self.started = False
        logger.info("Orchestrator stopped")

    def __enter__(self) -> "OrchestratorService":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def find_all_images(self) -> Set[Image]:
        """Images currently offered by the remote catalog."""
        return self.client.list_images()

    def create_container(self, application: Any, container_name: str,
                         image: Union[Image, str]) -> ContainerHandle:
        return self.lifecycle.create(application, container_name, image)

    def delete_container(self, application: Any, container_name: str) -> None:
        self.lifecycle.delete(application, container_name)

    def start_container(self, container_name: str) -> None:
        self.lifecycle.start(container_name)

    def stop_container(self, container_name: str) -> None:
        self.lifecycle.stop(container_name)
