"""
Model for a catalog image.
"""
from pydantic import BaseModel, ConfigDict


class Image(BaseModel):
    """
    An image offered by the remote catalog.
    Two images are the same image iff name and type match.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    type: str

    def __str__(self) -> str:
        return f"{self.name} ({self.type})"
