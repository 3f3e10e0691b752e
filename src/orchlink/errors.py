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
Exception hierarchy shared by the client, the registry and the managers.
"""
from typing import Optional


class OrchestratorError(Exception):
    """Base class for all orchlink errors."""


class ConfigurationError(OrchestratorError):
    """Invalid settings, raised before anything is scheduled."""


class RemoteError(OrchestratorError):
    """A call to the remote control-plane API failed."""


class RemoteUnavailable(RemoteError):
    """Transport failure: connection refused, timeout, 5xx."""


class RemoteRejected(RemoteError):
    """The remote API refused the request (4xx other than 404)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFound(RemoteError):
    """The addressed remote resource does not exist."""


class MonitorRegistryError(OrchestratorError):
    """Base class for monitor registry consistency violations."""

    def __init__(self, container_name: str, message: str):
        super().__init__(message)
        self.container_name = container_name


class AlreadyMonitored(MonitorRegistryError):
    def __init__(self, container_name: str):
        super().__init__(
            container_name, f"Container '{container_name}' is already monitored"
        )


class NotMonitored(MonitorRegistryError):
    def __init__(self, container_name: str):
        super().__init__(
            container_name, f"Container '{container_name}' is not monitored"
        )


class ConsistencyError(OrchestratorError):
    """Remote state and local monitoring state disagree after an operation."""
