"""
Collaborator interfaces for the verified-action loop.

Screen capture and the vision model live outside the engine; only their
shapes are defined here, plus PNG encoding helpers built on Pillow.
"""

from __future__ import annotations

import abc
import base64
from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageChops

from .types import Coordinates


@dataclass(slots=True, frozen=True)
class Screenshot:
    base64: str
    width: int
    height: int
    mime_type: str = "image/png"

    @classmethod
    def from_image(cls, img: Image.Image) -> Screenshot:
        buffer = BytesIO()
        img.save(buffer, format="PNG")
        return cls(base64=base64.b64encode(buffer.getvalue()).decode(), width=img.width, height=img.height)

    def to_image(self) -> Image.Image:
        img = Image.open(BytesIO(base64.b64decode(self.base64)))
        img.load()
        return img


def changed_ratio(before: Screenshot, after: Screenshot) -> float:
    """Fraction of pixels that differ between two captures (1.0 when sizes differ)."""
    if (before.width, before.height) != (after.width, after.height):
        return 1.0
    a = before.to_image().convert("RGB")
    b = after.to_image().convert("RGB")
    diff = ImageChops.difference(a, b).convert("L")
    if diff.getbbox() is None:
        return 0.0
    changed = sum(diff.histogram()[1:])
    return changed / float(max(1, before.width * before.height))


class ScreenCapture(abc.ABC):
    @abc.abstractmethod
    async def capture(self, screen: int = 0) -> Screenshot:
        """Capture the given screen."""


class VisionBackend(abc.ABC):
    """Locates described elements in a screenshot and judges before/after pairs."""

    @abc.abstractmethod
    async def locate(self, description: str, screenshot: Screenshot) -> Coordinates:
        """Return screen coordinates of ``description``; raise when not found."""

    @abc.abstractmethod
    async def verify(self, before: Screenshot, after: Screenshot, action: str, description: str) -> bool:
        """True if the expected change for ``action`` on ``description`` happened."""
