"""
Shared fakes: an in-process HAL API behind urlopen, and collaborators.
"""
import io
import json
import threading
from dataclasses import dataclass
from urllib.error import HTTPError, URLError

import pytest

from orchlink.errors import NotFound, RemoteUnavailable
from orchlink.MODELS.container import ContainerHandle, ContainerState
from orchlink.MODELS.image import Image

BASE = "http://orchestrator.test/api"


class FakeResponse:
    def __init__(self, body: bytes):
        self._body = body

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeHalApi:
    """Minimal HAL control-plane API answering through a patched urlopen."""

    def __init__(self):
        self.base = BASE
        self.images = [{"name": "nginx", "type": "web"}]
        self.containers = {}
        self.requests = []
        self.unavailable = False
        self.server_error = False

    def _link(self, href, templated=False):
        link = {"href": href}
        if templated:
            link["templated"] = True
        return link

    def container_doc(self, name):
        c = self.containers[name]
        url = f"{BASE}/containers/{name}"
        return {
            "name": name,
            "imageName": c["imageName"],
            "state": c["state"],
            "_links": {
                "self": self._link(url),
                "cu:start": self._link(url + "/start"),
                "cu:stop": self._link(url + "/stop"),
            },
        }

    def _error(self, url, code, msg):
        return HTTPError(url, code, msg, None, io.BytesIO(b""))

    def urlopen(self, request, timeout=None):
        method = request.get_method()
        url = request.full_url
        self.requests.append((method, url, timeout))

        if self.unavailable:
            raise URLError("connection refused")
        if self.server_error:
            raise self._error(url, 503, "Service Unavailable")

        body = json.loads(request.data.decode()) if request.data else None
        status, doc = self._route(method, url, body)
        if status >= 400:
            raise self._error(url, status, "error")
        return FakeResponse(json.dumps(doc).encode() if doc is not None else b"")

    def _route(self, method, url, body):
        path = url[len(BASE):]
        if method == "GET" and path == "":
            return 200, {"_links": {
                "self": self._link(BASE),
                "cu:images": self._link(BASE + "/images"),
                "cu:containers": self._link(BASE + "/containers"),
            }}
        if method == "GET" and path == "/images":
            return 200, {"_embedded": {"cu:images": list(self.images)}}
        if path == "/containers":
            if method == "GET":
                return 200, {
                    "_embedded": {"cu:containers": [self.container_doc(n) for n in self.containers]},
                    "_links": {"cu:container": self._link(BASE + "/containers/{name}", templated=True)},
                }
            if method == "POST":
                if body["imageName"] not in {i["name"] for i in self.images}:
                    return 400, None
                self.containers[body["name"]] = {"imageName": body["imageName"], "state": "CREATED"}
                return 201, self.container_doc(body["name"])

        parts = path.strip("/").split("/")
        if parts[0] != "containers" or len(parts) < 2:
            return 404, None
        name = parts[1]
        if name not in self.containers:
            return 404, None
        if len(parts) == 2 and method == "GET":
            return 200, self.container_doc(name)
        if len(parts) == 2 and method == "DELETE":
            del self.containers[name]
            return 204, None
        if len(parts) == 3 and method == "POST" and parts[2] in ("start", "stop"):
            self.containers[name]["state"] = "RUNNING" if parts[2] == "start" else "STOPPED"
            return 204, None
        return 404, None


@pytest.fixture
def hal_api(monkeypatch):
    api = FakeHalApi()
    monkeypatch.setattr("orchlink.REGISTRY.catalog_client.urlopen", api.urlopen)
    return api


@dataclass
class FakeApplication:
    id: str


class InMemoryApplications:
    def __init__(self, *applications):
        self._apps = {a.id: a for a in applications}

    def find_one(self, application_id):
        return self._apps.get(application_id)


class RecordingUpdater:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def update_container_state(self, application, container_name, state):
        with self._lock:
            self.calls.append((application.id, container_name, state))


class FakeCatalogClient:
    """
    Stand-in for RemoteCatalogClient that records every call in order.
    """

    def __init__(self):
        self.calls = []
        self.states = {}
        self.remote_images = set()
        self.fail_with = {}
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)
        error = self.fail_with.get(call[0])
        if error is not None:
            raise error

    def list_images(self):
        self._record("list_images")
        return set(self.remote_images)

    def create_container(self, name, image_ref):
        self._record("create_container", name)
        self.states[name] = ContainerState.CREATED
        return ContainerHandle(name=name, image_name=image_ref,
                               links={"self": f"{BASE}/containers/{name}"})

    def delete_container(self, name):
        self._record("delete_container", name)
        if name not in self.states:
            raise NotFound(name)
        del self.states[name]

    def start_container(self, name):
        self._record("start_container", name)
        self.states[name] = ContainerState.RUNNING

    def stop_container(self, name):
        self._record("stop_container", name)
        self.states[name] = ContainerState.STOPPED

    def fetch_state(self, handle):
        self._record("fetch_state", handle.name)
        if handle.name not in self.states:
            raise NotFound(handle.name)
        return handle.model_copy(update={"state": self.states[handle.name]})


class InMemoryImageStore:
    def __init__(self, images=()):
        self.images = set(images)
        self.mutations = []

    def find_all(self):
        return set(self.images)

    def save(self, image):
        self.mutations.append(("save", image))
        self.images.add(image)

    def delete(self, image):
        self.mutations.append(("delete", image))
        self.images.discard(image)


@pytest.fixture
def app1():
    return FakeApplication("app1")


@pytest.fixture
def applications(app1):
    return InMemoryApplications(app1)


@pytest.fixture
def updater():
    return RecordingUpdater()


@pytest.fixture
def fake_client():
    return FakeCatalogClient()


@pytest.fixture
def image_store():
    return InMemoryImageStore()


@pytest.fixture
def nginx():
    return Image(name="nginx", type="web")


@pytest.fixture
def unavailable():
    return RemoteUnavailable("connection refused")
