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
Periodic reconciliation of the local image cache against the remote catalog.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Set

from ..errors import ConfigurationError, OrchestratorError
from ..MODELS.collaborators import ImageStore
from ..MODELS.image import Image
from ..REGISTRY.catalog_client import RemoteCatalogClient
from ..RUNNERS.scheduler import FixedDelayScheduler, ScheduledTask

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Images changed by one reconciliation pass."""

    inserted: Set[Image] = field(default_factory=set)
    deleted: Set[Image] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.inserted or self.deleted)


class ImageReconciler:
    """
    Keeps the local image store equal to the remote catalog.
    The remote catalog is the source of truth.
    """

    def __init__(self, client: RemoteCatalogClient, store: ImageStore, interval: float):
        """
        Initializes the reconciler.

        :param client: Source of the remote image catalog.
        :param store: Local image store, written only by this reconciler.
        :param interval: Seconds between two passes, strictly positive.
        """
        if interval <= 0:
            raise ConfigurationError("reconciliation interval must not be negative or zero")
        self.client = client
        self.store = store
        self.interval = interval
        self._task: Optional[ScheduledTask] = None

    def reconcile(self) -> ReconcileResult:
        """
        Run one pass: delete images gone from the catalog, then insert new ones.

        Raises:
            RemoteError: If the catalog cannot be fetched. The store is untouched.
        """
        remote = self.client.list_images()
        local = set(self.store.find_all())

        result = ReconcileResult(inserted=remote - local, deleted=local - remote)
        for image in result.deleted:
            self.store.delete(image)
        for image in result.inserted:
            self.store.save(image)

        if result.changed:
            logger.info("Image cache reconciled: %d inserted, %d deleted",
                        len(result.inserted), len(result.deleted))
        return result

    def tick(self) -> None:
        """Scheduled entry point; a failed pass is logged and skipped."""
        try:
            self.reconcile()
        except OrchestratorError as e:
            logger.warning("Skipping image reconciliation: %s", e)
        except Exception:
            logger.exception("Image reconciliation failed")

    def start(self, scheduler: FixedDelayScheduler) -> ScheduledTask:
        """
        Schedule reconciliation immediately, then every interval seconds.
        """
        if self._task is not None and not self._task.cancelled:
            return self._task
        self._task = scheduler.schedule_with_fixed_delay(
            self.tick, 0, self.interval, name="image-reconciler"
        )
        return self._task

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
