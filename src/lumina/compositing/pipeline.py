"""
Compositing Pipeline

Turns a source image, an AdjustmentSet and detected privacy regions into the
final raster. Stage order is fixed because later stages paint over earlier
ones:

1. Redaction (pixelate privacy regions)
2. Tone filters
3. Warmth overlay
4. Element overlay image
5. Text watermark

The same stages run for previews (downscaled, Pillow approximations for the
tone and warmth stages) and for exports (full resolution, exact numpy math).
"""

import io
import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
from PIL import Image, ImageDraw, ImageFilter, ImageFont, UnidentifiedImageError

from ..config import settings
from ..models import REGION_SCALE, AdjustmentSet, DetectionRegion, ImageItem
from . import filters

logger = logging.getLogger(__name__)

WARM_HUE = (255, 160, 0)

MIN_BLOCK_SIZE = 10
BLOCK_SIZE_RATIO = 0.02

WATERMARK_MIN_FONT = 20
WATERMARK_FONT_RATIO = 0.05
WATERMARK_PADDING_RATIO = 0.02
WATERMARK_FILL = (255, 255, 255, 178)  # 70% white
WATERMARK_SHADOW = (0, 0, 0, 128)  # 50% black
WATERMARK_SHADOW_BLUR = 4


class CompositingError(Exception):
    """Raised when an image cannot be composited (decode failure, bad region)."""
    pass


def load_image(data: bytes) -> Image.Image:
    """Decode image bytes, raising CompositingError on unsupported data."""
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        return image
    except (UnidentifiedImageError, OSError) as e:
        raise CompositingError(f"Corrupted or unsupported image format: {e}") from e


def encode_image(image: Image.Image, fmt: str = "JPEG", quality: int = 90) -> bytes:
    buffer = io.BytesIO()
    if fmt.upper() in ("JPEG", "JPG"):
        image = image.convert("RGB")
        image.save(buffer, format="JPEG", quality=quality)
    else:
        image.save(buffer, format=fmt.upper())
    return buffer.getvalue()


# --- Stage 1: redaction ---

def block_size_for(width: int) -> int:
    return max(MIN_BLOCK_SIZE, math.floor(width * BLOCK_SIZE_RATIO))


def region_to_pixels(region: DetectionRegion, width: int, height: int) -> Tuple[int, int, int, int]:
    """
    Map a normalized region to (x, y, w, h) pixel bounds of the given frame.

    Raises:
        CompositingError: If the region's max bound lies before its min bound
    """
    if region.ymax < region.ymin or region.xmax < region.xmin:
        raise CompositingError(f"Invalid region bounds: {region}")

    y = math.floor(region.ymin / REGION_SCALE * height)
    x = math.floor(region.xmin / REGION_SCALE * width)
    h = math.floor((region.ymax - region.ymin) / REGION_SCALE * height)
    w = math.floor((region.xmax - region.xmin) / REGION_SCALE * width)
    return x, y, w, h


def pixelate_regions(
    image: Image.Image,
    regions: Sequence[DetectionRegion],
    strict: bool = True,
) -> Image.Image:
    """
    Replace every block inside each region with its average color.

    Args:
        image: Frame to redact
        regions: Normalized regions
        strict: Raise on invalid regions instead of logging and skipping them
    """
    pixels = np.array(image.convert("RGB"))
    height, width = pixels.shape[:2]
    block = block_size_for(width)

    for region in regions:
        try:
            x, y, w, h = region_to_pixels(region, width, height)
        except CompositingError as e:
            if strict:
                raise
            logger.error(f"Failed to redact region: {e}")
            continue

        if w <= 0 or h <= 0:
            continue

        x_end = min(x + w, width)
        y_end = min(y + h, height)
        for by in range(y, y_end, block):
            for bx in range(x, x_end, block):
                cell = pixels[by:min(by + block, y_end), bx:min(bx + block, x_end)]
                cell[...] = np.round(cell.reshape(-1, 3).mean(axis=0)).astype(np.uint8)

    return Image.fromarray(pixels, "RGB")


# --- Stages 2 and 3: tone and warmth ---

def apply_tone_and_warmth(image: Image.Image, adjustments: AdjustmentSet, preview: bool) -> Image.Image:
    opacity = adjustments.warmth / 500.0

    if preview:
        image = filters.preview_tone_chain(image, adjustments)
        if adjustments.warmth > 0:
            image = filters.preview_overlay_blend(image, WARM_HUE, opacity)
        return image

    rgb = filters.tone_chain(filters.to_array(image), adjustments)
    if adjustments.warmth > 0:
        rgb = filters.overlay_blend(rgb, WARM_HUE, opacity)
    return filters.to_image(rgb)


# --- Stage 4: element overlay ---

def apply_overlay(image: Image.Image, adjustments: AdjustmentSet) -> Image.Image:
    """Draw the overlay image centered at its normalized position."""
    overlay = load_image(adjustments.overlay_image).convert("RGBA")
    width, height = image.size

    aspect = overlay.width / overlay.height
    draw_width = width * adjustments.overlay_scale
    draw_height = draw_width / aspect
    size = (max(1, round(draw_width)), max(1, round(draw_height)))
    overlay = overlay.resize(size, Image.Resampling.LANCZOS)

    if adjustments.overlay_opacity < 1.0:
        alpha = overlay.getchannel("A").point(lambda a: round(a * adjustments.overlay_opacity))
        overlay.putalpha(alpha)

    left = round(width * adjustments.overlay_x - draw_width / 2)
    top = round(height * adjustments.overlay_y - draw_height / 2)

    # Plain paste copies RGBA as-is; alpha_composite applies it once
    layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
    layer.paste(overlay, (left, top))
    return Image.alpha_composite(image.convert("RGBA"), layer).convert("RGB")


# --- Stage 5: text watermark ---

def _watermark_font(size: int, font_name: str):
    try:
        return ImageFont.truetype(font_name, size)
    except OSError:
        logger.debug(f"Font {font_name} not found, using Pillow's default font")
        return ImageFont.load_default(size=size)


def apply_watermark(image: Image.Image, text: str, font_name: Optional[str] = None) -> Image.Image:
    """Draw semi-transparent text with a soft shadow in the bottom-right corner."""
    width, height = image.size
    font = _watermark_font(
        round(max(WATERMARK_MIN_FONT, width * WATERMARK_FONT_RATIO)),
        font_name or settings.watermark_font,
    )
    padding = width * WATERMARK_PADDING_RATIO

    # Right/bottom edges of the text box sit on the padding line
    text_layer = Image.new("RGBA", image.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(text_layer)
    _, _, right, bottom = draw.textbbox((0, 0), text, font=font)
    origin = (round(width - padding - right), round(height - padding - bottom))
    draw.text(origin, text, font=font, fill=WATERMARK_FILL)

    shadow = Image.new("RGBA", image.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text(origin, text, font=font, fill=WATERMARK_SHADOW)
    shadow = shadow.filter(ImageFilter.GaussianBlur(WATERMARK_SHADOW_BLUR / 2))

    frame = Image.alpha_composite(image.convert("RGBA"), shadow)
    return Image.alpha_composite(frame, text_layer).convert("RGB")


# --- Pipeline ---

def composite(
    source: Union[bytes, Image.Image],
    adjustments: AdjustmentSet,
    regions: Optional[List[DetectionRegion]] = None,
    preview: bool = False,
    preview_max_size: Optional[int] = None,
    font_name: Optional[str] = None,
) -> Image.Image:
    """
    Run every compositing stage in order.

    Args:
        source: Image bytes or a decoded image
        adjustments: Edits to apply
        regions: Detected privacy regions (None when not yet detected)
        preview: Cheap variant for on-screen display
        preview_max_size: Longest edge of preview renders
        font_name: TrueType font for the watermark

    Returns:
        RGB image

    Raises:
        CompositingError: On decode failure, or an invalid region in export mode
    """
    image = load_image(source) if isinstance(source, bytes) else source
    image = image.convert("RGB")

    if preview:
        max_size = preview_max_size or settings.preview_max_size
        image = image.copy()
        image.thumbnail((max_size, max_size), Image.Resampling.BILINEAR)

    # 1. Redaction
    if adjustments.privacy_blur and regions:
        image = pixelate_regions(image, regions, strict=not preview)

    # 2-3. Tone filters and warmth
    image = apply_tone_and_warmth(image, adjustments, preview)

    # 4. Element overlay, never filtered
    if adjustments.has_overlay:
        try:
            image = apply_overlay(image, adjustments)
        except CompositingError as e:
            if not preview:
                raise
            logger.error(f"Error drawing overlay: {e}")

    # 5. Text watermark, always last
    if adjustments.watermark:
        image = apply_watermark(image, adjustments.watermark, font_name)

    return image


def render_bytes(
    item: ImageItem,
    preview: bool = False,
    fmt: Optional[str] = None,
    quality: Optional[int] = None,
) -> bytes:
    """Composite an ImageItem and encode the result."""
    image = composite(item.source, item.adjustments, item.regions, preview=preview)
    return encode_image(
        image,
        fmt or settings.export_format,
        quality if quality is not None else settings.export_quality,
    )
