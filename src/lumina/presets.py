"""
Presets and Quick Filters

Built-in one-click filters plus a persistent store of named adjustment
presets (full AdjustmentSet snapshots, overlay image included).
"""

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from .config import settings
from .models import AdjustmentSet, Preset

logger = logging.getLogger(__name__)


class FilterType(str, Enum):
    NONE = "normal"
    VIVID = "vivid"
    BW = "bw"
    VINTAGE = "vintage"
    CINEMATIC = "cinematic"
    PASTEL = "pastel"


# Partial adjustments merged over the current ones
FILTERS: Dict[FilterType, dict] = {
    FilterType.NONE: {},
    FilterType.VIVID: {"brightness": 110, "contrast": 120, "saturation": 140},
    FilterType.BW: {"grayscale": 100, "contrast": 120},
    FilterType.VINTAGE: {"sepia": 60, "contrast": 90, "brightness": 90, "blur": 0.5},
    FilterType.CINEMATIC: {"contrast": 110, "saturation": 90, "warmth": 20},
    FilterType.PASTEL: {"brightness": 115, "contrast": 90, "saturation": 85},
}

SAMPLE_PRESETS = [
    Preset(id="p1", name="Soft Glow", adjustments=AdjustmentSet(brightness=110, contrast=90, blur=0.5)),
    Preset(id="p2", name="Deep Dark", adjustments=AdjustmentSet(brightness=80, contrast=130, saturation=80)),
]


class PresetNotFoundError(KeyError):
    """Raised when a preset id or name is unknown."""
    pass


class PresetStore:
    """
    Named presets saved to a JSON file.

    Newest presets are listed first. Unreadable state falls back to the
    sample presets so the store is always usable.
    """

    def __init__(self, state_file: Optional[Path] = None):
        self.state_file = state_file or settings.presets_file
        self.presets: List[Preset] = []

        self._load_state()

    def _load_state(self):
        """Load presets from disk."""
        if not self.state_file.exists():
            self.presets = list(SAMPLE_PRESETS)
            return

        try:
            data = json.loads(self.state_file.read_text(encoding="utf-8"))
            self.presets = [Preset.model_validate_json(json.dumps(p)) for p in data.get("presets", [])]
            logger.info(f"Loaded {len(self.presets)} presets")
        except Exception as e:
            logger.error(f"Failed to load presets: {e}")
            self.presets = list(SAMPLE_PRESETS)

    def _save_state(self):
        """Save presets to disk."""
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            data = {"presets": [json.loads(p.model_dump_json()) for p in self.presets]}
            self.state_file.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except Exception as e:
            logger.error(f"Failed to save presets: {e}")

    def list(self) -> List[Preset]:
        return list(self.presets)

    def get(self, key: str) -> Preset:
        """Find a preset by id, then by case-insensitive name."""
        for preset in self.presets:
            if preset.id == key:
                return preset
        for preset in self.presets:
            if preset.name.lower() == key.lower():
                return preset
        raise PresetNotFoundError(key)

    def save(self, name: str, adjustments: AdjustmentSet) -> Preset:
        preset = Preset(name=name, adjustments=adjustments)
        self.presets.insert(0, preset)
        self._save_state()
        logger.info(f"Saved preset '{name}' ({preset.id[:8]})")
        return preset

    def delete(self, key: str) -> None:
        preset = self.get(key)
        self.presets = [p for p in self.presets if p.id != preset.id]
        self._save_state()
