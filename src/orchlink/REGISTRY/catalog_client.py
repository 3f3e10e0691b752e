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
Client for the remote control-plane API.
Endpoints are discovered by following HAL link relations from the API root.
"""

import json
import logging
import socket
from typing import Optional, Dict, List, Any, Set, Sequence, Tuple, Union
from urllib.request import urlopen, Request
from urllib.error import HTTPError, URLError

from . import hal
from ..errors import NotFound, RemoteRejected, RemoteUnavailable
from ..MODELS.container import ContainerHandle
from ..MODELS.image import Image

logger = logging.getLogger(__name__)

REL_IMAGES = "cu:images"
REL_CONTAINERS = "cu:containers"
REL_CONTAINER = "cu:container"
REL_START = "cu:start"
REL_STOP = "cu:stop"

# A hop is a relation name, optionally with template parameters
Hop = Union[str, Tuple[str, Dict[str, Any]]]


class RemoteCatalogClient:
    """
    Client for the remote image catalog and container API.
    Every call blocks until the remote answers or the timeout expires;
    nothing is retried here.
    """

    def __init__(self, base_uri: str, timeout: float = 10.0):
        """
        Initialize the catalog client.

        Args:
            base_uri: Root of the HAL API.
            timeout: Seconds allowed for each HTTP request.
        """
        self.base_uri = base_uri
        self.timeout = timeout

    def _request(self, method: str, url: str,
                 payload: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """
        Perform one HTTP request and decode the JSON response, if any.

        Raises:
            NotFound: On 404.
            RemoteRejected: On other 4xx, or an undecodable body.
            RemoteUnavailable: On 5xx, connection failure or timeout.
        """
        data = None
        request = Request(url, method=method)
        request.add_header("Accept", f"{hal.HAL_JSON}, application/json")
        if payload is not None:
            data = json.dumps(payload).encode()
            request.add_header("Content-Type", "application/json")
        request.data = data

        logger.debug("%s %s", method, url)
        try:
            with urlopen(request, timeout=self.timeout) as response:
                body = response.read()
        except HTTPError as e:
            if e.code == 404:
                raise NotFound(f"{method} {url}: not found") from e
            if 400 <= e.code < 500:
                raise RemoteRejected(f"{method} {url}: HTTP {e.code} {e.reason}",
                                     status=e.code) from e
            raise RemoteUnavailable(f"{method} {url}: HTTP {e.code} {e.reason}") from e
        except (URLError, socket.timeout, ConnectionError) as e:
            raise RemoteUnavailable(f"{method} {url}: {e}") from e

        if not body:
            return None
        try:
            return json.loads(body.decode())
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RemoteRejected(f"{method} {url}: malformed response body") from e

    def _get(self, url: str) -> Dict[str, Any]:
        return self._request("GET", url) or {}

    def _follow(self, *hops: Hop) -> str:
        """
        Walk link relations from the root and return the href of the last one.

        Every intermediate document is fetched; the final href is not.
        """
        url = self.base_uri
        for hop in hops:
            rel, params = (hop, None) if isinstance(hop, str) else hop
            document = self._get(url)
            href = hal.find_link(document, rel)
            if href is None:
                raise RemoteRejected(f"Relation '{rel}' not offered by {url}")
            url = hal.expand(href, params)
        return url

    def _container_hops(self, name: str, *rest: Hop) -> Sequence[Hop]:
        return (REL_CONTAINERS, (REL_CONTAINER, {"name": name})) + rest

    def ping(self) -> None:
        """Fetch the API root, raising if it cannot be reached."""
        self._get(self.base_uri)

    def list_images(self) -> Set[Image]:
        """
        List the images offered by the remote catalog.

        Returns:
            Set of images, identified by name and type.
        """
        document = self._get(self._follow(REL_IMAGES))
        images = set()
        for item in hal.embedded_items(document):
            try:
                images.add(Image(name=item["name"], type=item["type"]))
            except (KeyError, ValueError):
                logger.warning("Ignoring malformed image entry: %r", item)
        return images

    def list_containers(self) -> List[ContainerHandle]:
        """List the containers known to the remote API."""
        document = self._get(self._follow(REL_CONTAINERS))
        containers = []
        for item in hal.embedded_items(document):
            try:
                containers.append(ContainerHandle.from_hal(item))
            except ValueError:
                logger.warning("Ignoring malformed container entry: %r", item)
        return containers

    def create_container(self, name: str, image_ref: str) -> ContainerHandle:
        """
        Create a container from an image.

        Args:
            name: Container name
            image_ref: Name of the backing image

        Returns:
            Handle of the created container
        """
        url = self._follow(REL_CONTAINERS)
        request = ContainerHandle(name=name, image_name=image_ref)
        document = self._request("POST", url, request.to_request())
        if not document:
            raise RemoteRejected(f"POST {url}: empty response for container '{name}'")
        try:
            return ContainerHandle.from_hal(document)
        except ValueError as e:
            raise RemoteRejected(f"POST {url}: {e}") from e

    def delete_container(self, name: str) -> None:
        """Delete a container by name."""
        url = self._follow(*self._container_hops(name))
        self._request("DELETE", url)

    def start_container(self, name: str) -> None:
        """Ask the remote API to start a container."""
        url = self._follow(*self._container_hops(name, REL_START))
        self._request("POST", url)

    def stop_container(self, name: str) -> None:
        """Ask the remote API to stop a container."""
        url = self._follow(*self._container_hops(name, REL_STOP))
        self._request("POST", url)

    def fetch_state(self, handle: ContainerHandle) -> ContainerHandle:
        """
        Fetch the latest representation of a container through its self link.

        Args:
            handle: A previously obtained container handle

        Returns:
            A fresh handle carrying the current state
        """
        url = handle.self_link
        if not url:
            url = self._follow(*self._container_hops(handle.name))
        document = self._get(url)
        try:
            return ContainerHandle.from_hal(document)
        except ValueError as e:
            raise RemoteRejected(f"GET {url}: {e}") from e
