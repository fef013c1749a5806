"""
Editing Workspace

Session state for a batch of images: the image list, the multi-selection,
the viewed image and the default adjustments for newly added images.
Edits fan out to every selected image as copies of one frozen AdjustmentSet.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .models import AdjustmentSet, DetectionRegion, ImageItem, Preset
from .presets import FILTERS, FilterType

logger = logging.getLogger(__name__)


class Workspace:
    """
    Owns every ImageItem of the session.

    Subscribers are called after each state change; the privacy detection
    scheduler subscribes here to debounce its runs.
    """

    def __init__(self, default_adjustments: Optional[AdjustmentSet] = None):
        self.images: Dict[str, ImageItem] = {}
        self.selected_ids: List[str] = []
        self.viewed_id: Optional[str] = None
        self.default_adjustments = default_adjustments or AdjustmentSet()
        self._listeners: List[Callable[[], None]] = []

    # --- Change notification ---

    def subscribe(self, listener: Callable[[], None]) -> None:
        self._listeners.append(listener)

    def _changed(self) -> None:
        for listener in self._listeners:
            listener()

    # --- Images ---

    def add_images(self, items: Iterable[ImageItem]) -> List[str]:
        """
        Add images initialised with the default adjustments.

        The first new image becomes the viewed and only selected image.
        """
        added = []
        for item in items:
            item = item.model_copy(update={"adjustments": self.default_adjustments})
            self.images[item.id] = item
            added.append(item.id)

        if added:
            self.viewed_id = added[0]
            self.selected_ids = [added[0]]
            logger.info(f"Added {len(added)} images")
            self._changed()
        return added

    def add_paths(self, paths: Iterable[Path]) -> List[str]:
        return self.add_images(ImageItem.from_path(Path(p)) for p in paths)

    def get(self, image_id: str) -> Optional[ImageItem]:
        return self.images.get(image_id)

    def remove(self, image_id: str) -> None:
        if self.images.pop(image_id, None) is None:
            return
        self.selected_ids = [i for i in self.selected_ids if i != image_id]
        if self.viewed_id == image_id:
            self.viewed_id = next(iter(self.images), None)
        self._changed()

    def clear(self) -> None:
        self.images.clear()
        self.selected_ids = []
        self.viewed_id = None
        self._changed()

    @property
    def viewed(self) -> Optional[ImageItem]:
        return self.images.get(self.viewed_id) if self.viewed_id else None

    @property
    def selected(self) -> List[ImageItem]:
        return [self.images[i] for i in self.selected_ids if i in self.images]

    @property
    def current_adjustments(self) -> AdjustmentSet:
        """Adjustments shown for editing: the viewed image's, else the defaults."""
        viewed = self.viewed
        return viewed.adjustments if viewed else self.default_adjustments

    # --- Selection ---

    def view(self, image_id: str) -> None:
        """Show an image; a single-image selection follows the view."""
        if image_id not in self.images:
            raise KeyError(image_id)
        self.viewed_id = image_id
        if len(self.selected_ids) <= 1 and image_id not in self.selected_ids:
            self.selected_ids = [image_id]
        self._changed()

    def toggle_selection(self, image_id: str, multi: bool = False) -> None:
        if image_id not in self.images:
            raise KeyError(image_id)
        selection = list(self.selected_ids) if multi else []
        if image_id in selection:
            selection.remove(image_id)
        else:
            selection.append(image_id)
        self.selected_ids = selection
        self._changed()

    def select(self, image_ids: Iterable[str]) -> None:
        """Replace the selection with the given images, in workspace order."""
        wanted = set(image_ids)
        unknown = wanted - self.images.keys()
        if unknown:
            raise KeyError(next(iter(unknown)))
        self.selected_ids = [i for i in self.images if i in wanted]
        self._changed()

    def select_all(self) -> None:
        self.select(self.images)

    def toggle_select_all(self) -> None:
        """Select every image, or clear the selection if all are selected."""
        if self.images and len(self.selected) == len(self.images):
            self.selected_ids = []
            self._changed()
        else:
            self.select_all()

    # --- Edits ---

    def update_adjustments(self, adjustments: AdjustmentSet) -> None:
        """
        Replace the AdjustmentSet of every selected image.

        Detection regions are left alone, so re-enabling privacy blur reuses
        an earlier result instead of calling the model again.
        """
        for image_id in self.selected_ids:
            item = self.images.get(image_id)
            if item is not None:
                self.images[image_id] = item.model_copy(update={"adjustments": adjustments})
        self._changed()

    def edit(self, **changes) -> AdjustmentSet:
        """Change fields of the current adjustments and apply to the selection."""
        adjustments = self.current_adjustments.replace(**changes)
        self.update_adjustments(adjustments)
        return adjustments

    def apply_filter(self, filter_type: FilterType) -> AdjustmentSet:
        return self.edit(**FILTERS[filter_type])

    def load_preset(self, preset: Preset) -> None:
        """Apply a preset in full: filters, overlay, watermark and privacy flag."""
        self.update_adjustments(preset.adjustments)
        logger.info(f"Applied preset '{preset.name}' to {len(self.selected_ids)} images")

    def set_regions(self, image_id: str, regions: Optional[List[DetectionRegion]]) -> bool:
        """
        Store detection results for one image.

        Returns:
            False if the image was removed in the meantime
        """
        item = self.images.get(image_id)
        if item is None:
            return False
        self.images[image_id] = item.model_copy(update={"regions": list(regions) if regions is not None else None})
        self._changed()
        return True

    # --- Detection candidates ---

    def detection_candidates(self) -> List[ImageItem]:
        """
        Selected images with privacy blur on and no detection result yet.

        The viewed image comes first so the user sees feedback immediately.
        """
        candidates = [item for item in self.selected if item.needs_detection]
        viewed = next((c for c in candidates if c.id == self.viewed_id), None)
        if viewed is None:
            return candidates
        return [viewed] + [c for c in candidates if c.id != viewed.id]
