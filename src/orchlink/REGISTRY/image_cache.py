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
Local image cache management.
Lets other subsystems query catalog images without a remote round-trip.
"""

import json
import logging
import threading
from typing import Optional, List, Dict, Any, Set
from pathlib import Path
from datetime import datetime, timezone

from ..MODELS.image import Image

logger = logging.getLogger(__name__)


class ImageCache:
    """
    Thread-safe set of known images, optionally persisted to a JSON index.
    """

    def __init__(self, index_file: Optional[str] = None):
        """
        Initialize the image cache.

        Args:
            index_file: JSON file the cache is persisted to. In-memory only if None.
        """
        self.index_file = Path(index_file) if index_file else None
        self._lock = threading.Lock()
        self._images: Dict[Image, str] = {}

        if self.index_file:
            self.index_file.parent.mkdir(parents=True, exist_ok=True)
            self._images = self._load_index()

    def _load_index(self) -> Dict[Image, str]:
        """Load the cache index from disk."""
        if not self.index_file.exists():
            return {}
        try:
            with open(self.index_file, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable image index %s: %s", self.index_file, e)
            return {}

        images = {}
        for entry in data.get("images", []):
            try:
                image = Image(name=entry["name"], type=entry["type"])
            except (KeyError, ValueError):
                continue
            images[image] = entry.get("added_at", "")
        return images

    def _save_index(self) -> None:
        """Save the cache index to disk."""
        if not self.index_file:
            return
        entries: List[Dict[str, Any]] = [
            {"name": image.name, "type": image.type, "added_at": added_at}
            for image, added_at in sorted(self._images.items(),
                                          key=lambda item: (item[0].name, item[0].type))
        ]
        with open(self.index_file, 'w') as f:
            json.dump({"images": entries}, f, indent=2)

    def find_all(self) -> Set[Image]:
        """Return a snapshot of every cached image."""
        with self._lock:
            return set(self._images)

    def contains(self, image: Image) -> bool:
        with self._lock:
            return image in self._images

    def find_by_type(self, image_type: str) -> List[Image]:
        """List cached images of the given type, sorted by name."""
        with self._lock:
            matches = [i for i in self._images if i.type == image_type]
        return sorted(matches, key=lambda i: i.name)

    def save(self, image: Image) -> None:
        """Add an image to the cache; saving a known image is a no-op."""
        with self._lock:
            if image in self._images:
                return
            self._images[image] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
            self._save_index()

    def delete(self, image: Image) -> None:
        """Remove an image from the cache; unknown images are ignored."""
        with self._lock:
            if self._images.pop(image, None) is not None:
                self._save_index()

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)
