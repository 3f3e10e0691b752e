"""
Interfaces of the collaborators the managers call out to.
Image persistence, application lookup and application state updates all live
outside this package; anything with these methods can be plugged in.
"""
from typing import Any, Iterable, Optional, Protocol

from .image import Image
from .container import ContainerState


class ImageStore(Protocol):
    """Persistence for the local image cache."""

    def find_all(self) -> Iterable[Image]: ...

    def save(self, image: Image) -> None: ...

    def delete(self, image: Image) -> None: ...


class Application(Protocol):
    """The part of the application aggregate the managers rely on."""

    id: str


class ApplicationRepository(Protocol):
    def find_one(self, application_id: str) -> Optional[Any]: ...


class ApplicationStateUpdater(Protocol):
    """Merges an observed container state into its owning application."""

    def update_container_state(
        self, application: Any, container_name: str, state: ContainerState
    ) -> None: ...
