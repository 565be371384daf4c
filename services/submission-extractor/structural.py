"""Structural image analysis for vision routing.

Computes two cheap proxies for "this image needs a vision model":
1. Decode image bytes (OpenCV, Pillow for formats OpenCV lacks)
2. Downscale so the longer side is at most 768 px
3. Edge density on a ~256-step sampling grid
4. Colour diversity over coarse colour buckets (top 3 bits per channel)
5. Re-encode the downscaled raster as JPEG for the vision payload
"""

import io
import logging
from dataclasses import dataclass

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

MAX_SIDE = 768
EDGE_GRID_STEPS = 256
EDGE_THRESHOLD = 80
COLOR_SAMPLE_STRIDE = 8
COLOR_DROP_BITS = 5
JPEG_QUALITY = 90


@dataclass(frozen=True)
class ImageStructuralMetrics:
    edge_density: float
    color_diversity: int
    scaled_image: bytes
    scaled_mime: str = "image/jpeg"


def analyze_structure(image_bytes: bytes) -> ImageStructuralMetrics | None:
    """Compute structural metrics for an image, or None if it cannot be decoded."""
    rgb = _decode_rgb(image_bytes)
    if rgb is None or rgb.shape[0] == 0 or rgb.shape[1] == 0:
        logger.warning("structural: could not decode image (%d bytes)", len(image_bytes))
        return None

    rgb = _downscale(rgb)
    scaled = _encode_jpeg(rgb)
    if scaled is None:
        return None

    return ImageStructuralMetrics(
        edge_density=edge_density(rgb),
        color_diversity=color_diversity(rgb),
        scaled_image=scaled,
    )


def _decode_rgb(image_bytes: bytes) -> np.ndarray | None:
    """Decode raw bytes into an RGB uint8 array."""
    if not image_bytes:
        return None

    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is not None:
        return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

    # GIF and some TIFF variants
    try:
        with Image.open(io.BytesIO(image_bytes)) as pil_img:
            return np.asarray(pil_img.convert("RGB"), dtype=np.uint8)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        logger.debug("structural: Pillow decode failed: %s", e)
        return None


def _downscale(rgb: np.ndarray) -> np.ndarray:
    """Shrink so the longer side is at most MAX_SIDE. Never upscales."""
    h, w = rgb.shape[:2]
    longer = max(h, w)
    if longer <= MAX_SIDE:
        return rgb

    scale = MAX_SIDE / longer
    target = (max(1, round(w * scale)), max(1, round(h * scale)))
    return cv2.resize(rgb, target, interpolation=cv2.INTER_AREA)


def edge_density(rgb: np.ndarray) -> float:
    """Fraction of grid samples whose right+down luminance jump exceeds EDGE_THRESHOLD."""
    h, w = rgb.shape[:2]
    step = max(1, max(h, w) // EDGE_GRID_STEPS)

    ys = np.arange(0, h - step, step)
    xs = np.arange(0, w - step, step)
    if ys.size == 0 or xs.size == 0:
        return 0.0

    rgb_f = rgb.astype(np.float32)
    lum = 0.299 * rgb_f[..., 0] + 0.587 * rgb_f[..., 1] + 0.114 * rgb_f[..., 2]

    center = lum[np.ix_(ys, xs)]
    right = lum[np.ix_(ys, xs + step)]
    down = lum[np.ix_(ys + step, xs)]
    diff = np.abs(center - right) + np.abs(center - down)

    edges = int(np.count_nonzero(diff > EDGE_THRESHOLD))
    return edges / diff.size


def color_diversity(rgb: np.ndarray) -> int:
    """Number of distinct colour buckets among every 8th pixel (low 5 bits of each channel dropped)."""
    pixels = rgb.reshape(-1, 3)[::COLOR_SAMPLE_STRIDE].astype(np.uint16) >> COLOR_DROP_BITS
    keys = (pixels[:, 0] << 10) | (pixels[:, 1] << 5) | pixels[:, 2]
    return int(np.unique(keys).size)


def _encode_jpeg(rgb: np.ndarray) -> bytes | None:
    """Encode an RGB raster as JPEG bytes."""
    try:
        bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)
        success, buf = cv2.imencode(".jpg", bgr, [cv2.IMWRITE_JPEG_QUALITY, JPEG_QUALITY])
        if success:
            return buf.tobytes()
    except cv2.error as e:
        logger.warning("structural: JPEG encode failed: %s", e)

    return None
