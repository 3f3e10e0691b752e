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
Unit tests for the remote catalog client.
"""
import pytest

from orchlink.errors import NotFound, RemoteRejected, RemoteUnavailable
from orchlink.MODELS.container import ContainerHandle, ContainerState
from orchlink.MODELS.image import Image
from orchlink.REGISTRY.catalog_client import RemoteCatalogClient


@pytest.fixture
def client(hal_api):
    return RemoteCatalogClient(hal_api.base, timeout=2.5)


class TestRemoteCatalogClient:
    """Tests for RemoteCatalogClient against a fake HAL API."""

    def test_list_images(self, client, hal_api):
        """Images are read from the embedded catalog collection."""
        hal_api.images = [{"name": "nginx", "type": "web"}, {"name": "postgres", "type": "db"}]
        assert client.list_images() == {Image(name="nginx", type="web"),
                                        Image(name="postgres", type="db")}

    def test_list_images_skips_malformed_entries(self, client, hal_api):
        hal_api.images = [{"name": "nginx", "type": "web"}, {"name": "broken"}]
        assert client.list_images() == {Image(name="nginx", type="web")}

    def test_every_request_is_bounded(self, client, hal_api):
        """Each request carries the configured timeout."""
        client.list_images()
        assert hal_api.requests
        assert all(timeout == 2.5 for _, _, timeout in hal_api.requests)

    def test_create_container(self, client, hal_api):
        """Creating returns a handle with a self link."""
        handle = client.create_container("c1", "nginx")
        assert handle.name == "c1"
        assert handle.image_name == "nginx"
        assert handle.state == ContainerState.CREATED
        assert handle.self_link == f"{hal_api.base}/containers/c1"
        assert ("POST", f"{hal_api.base}/containers", 2.5) in hal_api.requests

    def test_create_with_unknown_image_is_rejected(self, client):
        with pytest.raises(RemoteRejected) as exc_info:
            client.create_container("c1", "does-not-exist")
        assert exc_info.value.status == 400

    def test_list_containers(self, client):
        client.create_container("c1", "nginx")
        client.create_container("c2", "nginx")
        assert sorted(c.name for c in client.list_containers()) == ["c1", "c2"]

    def test_start_and_stop(self, client, hal_api):
        """Start and stop post to the container's relations."""
        client.create_container("c1", "nginx")
        client.start_container("c1")
        assert hal_api.containers["c1"]["state"] == "RUNNING"
        client.stop_container("c1")
        assert hal_api.containers["c1"]["state"] == "STOPPED"
        assert ("POST", f"{hal_api.base}/containers/c1/start", 2.5) in hal_api.requests

    def test_start_missing_container(self, client):
        with pytest.raises(NotFound):
            client.start_container("ghost")

    def test_delete_container(self, client, hal_api):
        client.create_container("c1", "nginx")
        client.delete_container("c1")
        assert "c1" not in hal_api.containers
        assert hal_api.requests[-1][:2] == ("DELETE", f"{hal_api.base}/containers/c1")

    def test_delete_missing_container(self, client):
        with pytest.raises(NotFound):
            client.delete_container("ghost")

    def test_fetch_state_follows_self_link(self, client, hal_api):
        """Fetching state re-reads the container through its self link."""
        handle = client.create_container("c1", "nginx")
        hal_api.containers["c1"]["state"] = "running"
        hal_api.requests.clear()

        latest = client.fetch_state(handle)

        assert latest.state == ContainerState.RUNNING
        assert [r[:2] for r in hal_api.requests] == [("GET", f"{hal_api.base}/containers/c1")]

    def test_fetch_state_of_deleted_container(self, client, hal_api):
        handle = client.create_container("c1", "nginx")
        del hal_api.containers["c1"]
        with pytest.raises(NotFound):
            client.fetch_state(handle)

    def test_fetch_state_without_self_link(self, client, hal_api):
        """A handle without links is resolved by name."""
        client.create_container("c1", "nginx")
        latest = client.fetch_state(ContainerHandle(name="c1"))
        assert latest.self_link == f"{hal_api.base}/containers/c1"

    def test_connection_failure(self, client, hal_api):
        hal_api.unavailable = True
        with pytest.raises(RemoteUnavailable):
            client.list_images()

    def test_server_error(self, client, hal_api):
        hal_api.server_error = True
        with pytest.raises(RemoteUnavailable):
            client.ping()

    def test_missing_relation(self, hal_api):
        """A root without the expected relation is reported, not crashed on."""
        client = RemoteCatalogClient(hal_api.base + "/images")
        with pytest.raises(RemoteRejected):
            client.list_images()
