"""
Lumina Data Models
Pydantic models for adjustments, detection regions, images and exports.
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# Neutral values the AI suggestion falls back to when a field is missing
NEUTRAL_TONE = {"brightness": 100, "contrast": 100, "saturation": 100, "warmth": 0}
TONE_BOUNDS = {"brightness": (0, 200), "contrast": (0, 200), "saturation": (0, 200), "warmth": (0, 100)}

# Normalized coordinate scale used by detection regions
REGION_SCALE = 1000


class AdjustmentSet(BaseModel):
    """
    Complete description of the edits applied to one image.

    Frozen: every edit produces a new instance via replace(), so images that
    received the same batch edit never share mutable state.
    """

    model_config = ConfigDict(
        frozen=True,
        ser_json_bytes="base64",
        val_json_bytes="base64",
    )

    # Tone (CSS filter semantics)
    brightness: float = Field(default=100, ge=0, le=200)  # percent
    contrast: float = Field(default=100, ge=0, le=200)  # percent
    saturation: float = Field(default=100, ge=0, le=200)  # percent
    blur: float = Field(default=0, ge=0, le=10)  # pixels
    sepia: float = Field(default=0, ge=0, le=100)  # percent
    grayscale: float = Field(default=0, ge=0, le=100)  # percent
    warmth: float = Field(default=0, ge=0, le=100)

    # Text watermark
    watermark: str = ""

    # Image element overlay, geometry only meaningful when overlay_image is set
    overlay_image: Optional[bytes] = Field(default=None, repr=False)
    overlay_x: float = Field(default=0.5, ge=0, le=1)  # center, fraction of width
    overlay_y: float = Field(default=0.5, ge=0, le=1)  # center, fraction of height
    overlay_scale: float = Field(default=0.2, ge=0.05, le=2.0)  # fraction of frame width
    overlay_opacity: float = Field(default=1.0, ge=0, le=1)

    privacy_blur: bool = False

    def replace(self, **changes) -> "AdjustmentSet":
        """Return a validated copy with the given fields changed."""
        return type(self).model_validate({**self.model_dump(), **changes})

    @property
    def has_overlay(self) -> bool:
        return bool(self.overlay_image)


class DetectionRegion(BaseModel):
    """Bounding box of sensitive content on the 0-1000 normalized scale."""

    model_config = ConfigDict(frozen=True)

    ymin: int = Field(ge=0, le=REGION_SCALE)
    xmin: int = Field(ge=0, le=REGION_SCALE)
    ymax: int = Field(ge=0, le=REGION_SCALE)
    xmax: int = Field(ge=0, le=REGION_SCALE)


class EnhancementSuggestion(BaseModel):
    """
    Tone suggestion returned by the vision model.

    Every field is optional because the remote response is untrusted JSON.
    """

    brightness: Optional[int] = None
    contrast: Optional[int] = None
    saturation: Optional[int] = None
    warmth: Optional[int] = None

    def apply_to(self, adjustments: AdjustmentSet) -> AdjustmentSet:
        """
        Merge the suggestion into an AdjustmentSet.

        Missing fields fall back to neutral values and everything is clamped
        to the AdjustmentSet ranges.
        """
        changes = {}
        for name, neutral in NEUTRAL_TONE.items():
            value = getattr(self, name)
            if value is None:
                value = neutral
            low, high = TONE_BOUNDS[name]
            changes[name] = min(max(value, low), high)
        return adjustments.replace(**changes)


class ImageItem(BaseModel):
    """
    An image in the editing workspace.

    regions is None until detection has run; an empty list means the image
    was scanned and nothing sensitive was found.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    media_type: str = "image/jpeg"
    source: bytes = Field(repr=False)
    adjustments: AdjustmentSet = Field(default_factory=AdjustmentSet)
    regions: Optional[List[DetectionRegion]] = None

    @classmethod
    def from_path(cls, path: Path, adjustments: Optional[AdjustmentSet] = None) -> "ImageItem":
        """Load an image file from disk."""
        path = Path(path)
        suffix = path.suffix.lower().lstrip(".")
        media_type = {
            "jpg": "image/jpeg",
            "jpeg": "image/jpeg",
            "png": "image/png",
            "webp": "image/webp",
            "gif": "image/gif",
            "bmp": "image/bmp",
        }.get(suffix, "application/octet-stream")
        return cls(
            name=path.name,
            media_type=media_type,
            source=path.read_bytes(),
            adjustments=adjustments or AdjustmentSet(),
        )

    @property
    def needs_detection(self) -> bool:
        return self.adjustments.privacy_blur and self.regions is None


class Preset(BaseModel):
    """A named AdjustmentSet snapshot, overlay bytes included."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    adjustments: AdjustmentSet


class ExportArtifact(BaseModel):
    """Deliverable produced by a batch export."""

    filename: str
    media_type: str
    data: bytes = Field(repr=False)
    entries: List[str] = Field(default_factory=list)

    @property
    def is_archive(self) -> bool:
        return self.media_type == "application/zip"

    def save(self, directory: Path) -> Path:
        """Write the artifact into a directory and return its path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / self.filename
        target.write_bytes(self.data)
        return target
