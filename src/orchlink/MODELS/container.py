"""
Models for remote containers and their observed state.
"""
from typing import Any, Dict, Optional
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..REGISTRY.hal import links_of


class ContainerState(str, Enum):
    """
    State of a container as reported by the remote API.
    """
    CREATED = "CREATED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Any) -> "ContainerState":
        """Map a remote state value, case-insensitively, falling back to UNKNOWN."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.UNKNOWN
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class ContainerHandle(BaseModel):
    """
    A remote container resource.
    The 'self' link is enough to fetch the container again later.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: str
    image_name: str = Field(default="", alias="imageName")
    state: ContainerState = ContainerState.UNKNOWN
    links: Dict[str, str] = {}

    @field_validator("state", mode="before")
    @classmethod
    def _coerce_state(cls, value: Any) -> ContainerState:
        return ContainerState.parse(value)

    @classmethod
    def from_hal(cls, document: Dict[str, Any]) -> "ContainerHandle":
        """
        Build a handle from a HAL container document.

        Raises:
            ValueError: If the document has no container name.
        """
        name = document.get("name")
        if not name:
            raise ValueError("Container document has no name")
        return cls(
            name=name,
            image_name=document.get("imageName") or "",
            state=document.get("state"),
            links=links_of(document),
        )

    @property
    def self_link(self) -> Optional[str]:
        return self.links.get("self")

    def to_request(self) -> Dict[str, str]:
        """Payload used to ask the remote API to create this container."""
        return {"name": self.name, "imageName": self.image_name}
