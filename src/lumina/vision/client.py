"""
Remote Vision Client

Thin async boundary to the Gemini generateContent API for the three
AI-assisted operations: enhancement suggestion, background removal and
privacy-region detection.
"""

import base64
import json
import logging
from typing import List, Optional

import httpx

from ..models import REGION_SCALE, DetectionRegion, EnhancementSuggestion

logger = logging.getLogger(__name__)


class VisionError(Exception):
    """Base class for remote vision failures."""
    pass


class VisionConfigError(VisionError):
    """Raised when the client is not configured (e.g. missing API key)."""
    pass


class VisionAPIError(VisionError):
    """Raised when the remote API answers with an error or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class VisionResponseError(VisionError):
    """Raised when the remote response lacks the expected payload."""
    pass


class GeminiVisionClient:
    """
    Interface to a Gemini image model over REST.

    Handles request shaping and response parsing only; retries and quota
    handling live in ResilientInvoker.
    """

    ENHANCE_PROMPT = (
        "Analyze this image and suggest photo editing adjustments to improve its quality professionally. "
        "Return ONLY a valid JSON object. Do not use markdown formatting or backticks. "
        "The JSON object must contain these integer properties (scale where 100 is neutral/original): "
        "brightness (range 50-150), contrast (range 50-150), saturation (range 50-150), "
        "warmth (range 0-50, where 0 is neutral)."
    )

    BACKGROUND_PROMPT = (
        "Extract the main subject from this image and return it as a standalone PNG image "
        "with a transparent background (alpha channel). "
        "Ensure precise edge detection. Return ONLY the image."
    )

    PRIVACY_PROMPT = (
        "Analyze this image for STRICT PRIVACY PROTECTION. "
        "Detect EVERY human face and vehicle license plate so they can be redacted. "
        "Include frontal, profile, partially covered, background and blurry faces, reflections, "
        "and angled, blurry or distant plates. If you are even slightly unsure, include it. "
        'Return a JSON object with a key "boxes" containing an array of bounding boxes. '
        "Each box must be an array of 4 integers [ymin, xmin, ymax, xmax] scaled from 0 to 1000. "
        'Example: {"boxes": [[100, 200, 300, 400]]}. '
        'If nothing is found, return {"boxes": []}. Return ONLY valid JSON.'
    )

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the vision client.

        Args:
            api_key: Gemini API key
            model: Model name (e.g., "gemini-2.5-flash-image")
            base_url: API base URL
            timeout: Request timeout in seconds
            http_client: Optional preconfigured client (tests inject a mock transport)
        """
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GeminiVisionClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def _generate(self, image_bytes: bytes, mime_type: str, prompt: str) -> dict:
        """
        Call generateContent with one inline image and a text prompt.

        Returns:
            Decoded JSON response body

        Raises:
            VisionConfigError: If no API key is configured
            VisionAPIError: On HTTP or transport errors
        """
        if not self.api_key:
            raise VisionConfigError("Gemini API key missing (set GEMINI_API_KEY)")

        payload = {
            "contents": [
                {
                    "parts": [
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(image_bytes).decode("ascii"),
                            }
                        },
                        {"text": prompt},
                    ]
                }
            ]
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/v1beta/models/{self.model}:generateContent",
                headers={"x-goog-api-key": self.api_key},
                json=payload,
            )
            response.raise_for_status()
            return response.json()

        except httpx.HTTPStatusError as e:
            message, code = _error_details(e.response)
            logger.error(f"Vision API error ({e.response.status_code}): {message}")
            raise VisionAPIError(message, status_code=e.response.status_code, code=code) from e

        except httpx.TransportError as e:
            logger.error(f"Cannot reach vision API at {self.base_url}: {e}")
            raise VisionAPIError(f"Connection failed: {e}") from e

    @staticmethod
    def _parts(data: dict) -> list:
        candidates = data.get("candidates") or []
        if not candidates:
            return []
        content = candidates[0].get("content") or {}
        return content.get("parts") or []

    def _response_text(self, data: dict) -> str:
        return "".join(part.get("text", "") for part in self._parts(data))

    @staticmethod
    def _parse_json(text: str):
        """Parse JSON from a model reply, tolerating markdown code fences."""
        cleaned = text.replace("```json", "").replace("```", "").strip()
        return json.loads(cleaned or "{}")

    async def suggest_enhancement(
        self, image_bytes: bytes, mime_type: str = "image/jpeg"
    ) -> Optional[EnhancementSuggestion]:
        """
        Ask the model for tone adjustments.

        Returns:
            EnhancementSuggestion, or None when the reply is not usable JSON
        """
        data = await self._generate(image_bytes, mime_type, self.ENHANCE_PROMPT)
        text = self._response_text(data)

        try:
            parsed = self._parse_json(text)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Unparseable enhancement suggestion: {e}")
            return None

        if not isinstance(parsed, dict):
            logger.warning("Enhancement suggestion is not a JSON object")
            return None

        fields = {}
        for name in ("brightness", "contrast", "saturation", "warmth"):
            value = parsed.get(name)
            # bool is an int subclass, reject it explicitly
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                fields[name] = int(round(value))
        return EnhancementSuggestion(**fields)

    async def remove_background(self, image_bytes: bytes, mime_type: str = "image/png") -> bytes:
        """
        Ask the model to cut out the main subject.

        Returns:
            Image bytes (PNG with transparency)

        Raises:
            VisionResponseError: If the reply contains no image
        """
        data = await self._generate(image_bytes, mime_type, self.BACKGROUND_PROMPT)

        for part in self._parts(data):
            inline = part.get("inlineData") or part.get("inline_data") or {}
            if inline.get("data"):
                return base64.b64decode(inline["data"])

        text = self._response_text(data)
        logger.warning(f"Text response instead of image: {text[:200]}")
        raise VisionResponseError(
            "The model did not return a transparent image. Try an image with a more defined subject."
        )

    async def detect_privacy_regions(
        self, image_bytes: bytes, mime_type: str = "image/jpeg"
    ) -> List[DetectionRegion]:
        """
        Detect faces and license plates.

        Returns:
            List of regions; an empty list means nothing was found

        Raises:
            VisionResponseError: If the reply is not valid JSON
        """
        data = await self._generate(image_bytes, mime_type, self.PRIVACY_PROMPT)
        text = self._response_text(data)

        try:
            parsed = self._parse_json(text)
        except (json.JSONDecodeError, ValueError) as e:
            raise VisionResponseError(f"Unparseable detection response: {e}") from e

        boxes = parsed.get("boxes") if isinstance(parsed, dict) else None
        if not isinstance(boxes, list):
            return []

        regions = []
        for box in boxes:
            region = _box_to_region(box)
            if region is None:
                logger.warning(f"Skipping malformed box: {box!r}")
                continue
            regions.append(region)
        return regions


def _error_details(response: httpx.Response) -> tuple:
    """Extract (message, numeric code) from a Google-style error body."""
    try:
        error = response.json().get("error", {})
    except (json.JSONDecodeError, ValueError, AttributeError):
        return response.text or response.reason_phrase, None

    message = error.get("message") or response.reason_phrase
    status = error.get("status")
    if status:
        message = f"{status}: {message}"
    code = error.get("code")
    return message, code if isinstance(code, int) else None


def _box_to_region(box) -> Optional[DetectionRegion]:
    """Convert [ymin, xmin, ymax, xmax] into a clamped, ordered region."""
    if not isinstance(box, (list, tuple)) or len(box) != 4:
        return None
    if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in box):
        return None

    y0, x0, y1, x1 = (min(max(int(round(v)), 0), REGION_SCALE) for v in box)
    return DetectionRegion(
        ymin=min(y0, y1),
        xmin=min(x0, x1),
        ymax=max(y0, y1),
        xmax=max(x0, x1),
    )
