"""
AI Assistant Actions

User-triggered AI operations on the viewed image: auto-enhance and overlay
background removal. Each returns a status message; failures never escape.
"""

import logging

from ..workspace import Workspace
from .client import GeminiVisionClient, VisionError
from .resilience import QuotaCircuitBreaker, QuotaExceededError, ResilientInvoker

logger = logging.getLogger(__name__)


class AIAssistant:
    """Auto-enhance and background removal guarded by the quota breaker."""

    def __init__(
        self,
        workspace: Workspace,
        client: GeminiVisionClient,
        invoker: ResilientInvoker,
        breaker: QuotaCircuitBreaker,
    ):
        self.workspace = workspace
        self.client = client
        self.invoker = invoker
        self.breaker = breaker

    def _quota_tripped(self) -> str:
        self.breaker.trip()
        return f"AI quota exceeded. Try again in {self.breaker.remaining()}s."

    async def auto_enhance(self) -> str:
        """Ask the model for tone settings and apply them to the selection."""
        item = self.workspace.viewed
        if item is None:
            return "No image selected."
        if self.breaker.is_open():
            return self.breaker.wait_message()

        try:
            suggestion = await self.invoker.invoke(
                lambda: self.client.suggest_enhancement(item.source, item.media_type)
            )
        except QuotaExceededError:
            return self._quota_tripped()
        except Exception as e:
            logger.error(f"Auto-enhance failed: {e}")
            return "Enhancement analysis failed."

        if suggestion is None:
            return "No enhancement suggestion available."

        # Edits made while the request was in flight must survive
        current = self.workspace.viewed
        if current is None:
            return "No image selected."
        self.workspace.update_adjustments(suggestion.apply_to(current.adjustments))
        return "AI enhancement applied."

    async def remove_background(self) -> str:
        """Replace the overlay image with a transparent cut-out of its subject."""
        item = self.workspace.viewed
        if item is None or not item.adjustments.has_overlay:
            return "No overlay image to process."
        if self.breaker.is_open():
            return self.breaker.wait_message()

        overlay = item.adjustments.overlay_image
        try:
            cutout = await self.invoker.invoke(
                lambda: self.client.remove_background(overlay, "image/png")
            )
        except QuotaExceededError:
            return self._quota_tripped()
        except VisionError as e:
            logger.error(f"Background removal failed: {e}")
            return "Background removal failed."
        except Exception as e:
            logger.exception(f"Unexpected background removal error: {e}")
            return "Background removal failed."

        current = self.workspace.viewed
        if current is None or current.adjustments.overlay_image != overlay:
            logger.info("Overlay changed during background removal, discarding result")
            return "Overlay changed, background removal discarded."
        self.workspace.update_adjustments(current.adjustments.replace(overlay_image=cutout))
        return "Background removed."
