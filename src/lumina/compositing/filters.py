"""
Tone Filters

CSS Filter Effects primitives (brightness, contrast, saturate, blur, sepia,
grayscale) and the overlay blend used for warmth. The numpy versions work on
float RGB arrays in [0, 1] and are used for exports; the Pillow versions are
faster approximations used for previews.
"""

import numpy as np
from PIL import Image, ImageChops, ImageEnhance, ImageFilter


def to_array(image: Image.Image) -> np.ndarray:
    return np.asarray(image.convert("RGB"), dtype=np.float32) / 255.0


def to_image(rgb: np.ndarray) -> Image.Image:
    return Image.fromarray(np.round(np.clip(rgb, 0.0, 1.0) * 255.0).astype(np.uint8), "RGB")


def _apply_matrix(rgb: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    return np.clip(rgb @ matrix.T, 0.0, 1.0)


def saturate_matrix(percent: float) -> np.ndarray:
    s = percent / 100.0
    return np.array([
        [0.213 + 0.787 * s, 0.715 - 0.715 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 + 0.285 * s, 0.072 - 0.072 * s],
        [0.213 - 0.213 * s, 0.715 - 0.715 * s, 0.072 + 0.928 * s],
    ])


def sepia_matrix(percent: float) -> np.ndarray:
    inv = 1.0 - min(percent / 100.0, 1.0)
    return np.array([
        [0.393 + 0.607 * inv, 0.769 - 0.769 * inv, 0.189 - 0.189 * inv],
        [0.349 - 0.349 * inv, 0.686 + 0.314 * inv, 0.168 - 0.168 * inv],
        [0.272 - 0.272 * inv, 0.534 - 0.534 * inv, 0.131 + 0.869 * inv],
    ])


def grayscale_matrix(percent: float) -> np.ndarray:
    inv = 1.0 - min(percent / 100.0, 1.0)
    return np.array([
        [0.2126 + 0.7874 * inv, 0.7152 - 0.7152 * inv, 0.0722 - 0.0722 * inv],
        [0.2126 - 0.2126 * inv, 0.7152 + 0.2848 * inv, 0.0722 - 0.0722 * inv],
        [0.2126 - 0.2126 * inv, 0.7152 - 0.7152 * inv, 0.0722 + 0.9278 * inv],
    ])


def brightness(rgb: np.ndarray, percent: float) -> np.ndarray:
    return np.clip(rgb * (percent / 100.0), 0.0, 1.0)


def contrast(rgb: np.ndarray, percent: float) -> np.ndarray:
    amount = percent / 100.0
    return np.clip((rgb - 0.5) * amount + 0.5, 0.0, 1.0)


def saturate(rgb: np.ndarray, percent: float) -> np.ndarray:
    return _apply_matrix(rgb, saturate_matrix(percent))


def sepia(rgb: np.ndarray, percent: float) -> np.ndarray:
    return _apply_matrix(rgb, sepia_matrix(percent))


def grayscale(rgb: np.ndarray, percent: float) -> np.ndarray:
    return _apply_matrix(rgb, grayscale_matrix(percent))


def blur(rgb: np.ndarray, radius: float) -> np.ndarray:
    """Gaussian blur with standard deviation radius, in pixels."""
    if radius <= 0:
        return rgb
    blurred = to_image(rgb).filter(ImageFilter.GaussianBlur(radius))
    return to_array(blurred)


def overlay_blend(rgb: np.ndarray, color, opacity: float) -> np.ndarray:
    """
    Overlay-blend a flat color over the frame.

    Overlay darkens shadows and lifts highlights toward the color, so
    midtones pick up the hue instead of a flat tint.
    """
    layer = np.asarray(color, dtype=np.float32) / 255.0
    blended = np.where(
        rgb <= 0.5,
        2.0 * rgb * layer,
        1.0 - 2.0 * (1.0 - rgb) * (1.0 - layer),
    )
    return np.clip(rgb + (blended - rgb) * opacity, 0.0, 1.0)


def tone_chain(rgb: np.ndarray, adjustments) -> np.ndarray:
    """Apply the tone filters in their fixed order."""
    rgb = brightness(rgb, adjustments.brightness)
    rgb = contrast(rgb, adjustments.contrast)
    rgb = saturate(rgb, adjustments.saturation)
    rgb = blur(rgb, adjustments.blur)
    rgb = sepia(rgb, adjustments.sepia)
    rgb = grayscale(rgb, adjustments.grayscale)
    return rgb


# --- Preview approximations ---

def _matrix_convert(image: Image.Image, matrix: np.ndarray) -> Image.Image:
    flat = []
    for row in matrix:
        flat.extend(float(v) for v in row)
        flat.append(0.0)
    return image.convert("RGB", tuple(flat))


def preview_tone_chain(image: Image.Image, adjustments) -> Image.Image:
    """Same filter order as tone_chain using Pillow's native operations."""
    image = image.convert("RGB")
    if adjustments.brightness != 100:
        image = ImageEnhance.Brightness(image).enhance(adjustments.brightness / 100.0)
    if adjustments.contrast != 100:
        image = ImageEnhance.Contrast(image).enhance(adjustments.contrast / 100.0)
    if adjustments.saturation != 100:
        image = ImageEnhance.Color(image).enhance(adjustments.saturation / 100.0)
    if adjustments.blur > 0:
        image = image.filter(ImageFilter.GaussianBlur(adjustments.blur))
    if adjustments.sepia > 0:
        image = _matrix_convert(image, sepia_matrix(adjustments.sepia))
    if adjustments.grayscale > 0:
        image = _matrix_convert(image, grayscale_matrix(adjustments.grayscale))
    return image


def preview_overlay_blend(image: Image.Image, color, opacity: float) -> Image.Image:
    image = image.convert("RGB")
    layer = Image.new("RGB", image.size, tuple(color))
    return Image.blend(image, ImageChops.overlay(image, layer), opacity)
