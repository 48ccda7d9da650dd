from __future__ import annotations

import numpy as np
from PIL import Image, UnidentifiedImageError

from .config import HistogramConfig, histogram
from .errors import DecodeError


def _load_image(path: str, size: int) -> np.ndarray:
    try:
        with Image.open(path) as img:
            # Lanczos matches the resampling most image libraries default to.
            resized = img.convert("RGB").resize((size, size), Image.Resampling.LANCZOS)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise DecodeError(f"Could not decode image {path}: {e}") from e
    return np.asarray(resized, dtype=np.uint8)


def _channel_histogram(channel: np.ndarray, bins: int) -> np.ndarray:
    buckets = np.floor(channel.astype(np.float64) / 255.0 * (bins - 1)).astype(np.int64)
    counts = np.bincount(buckets.ravel(), minlength=bins)
    return counts.astype(np.float64) / channel.size


def compute_color_histogram(
    image_path: str,
    cfg: HistogramConfig = histogram,
) -> np.ndarray:
    """Compute the normalized RGB histogram descriptor of one frame image.

    The image is resized to ``cfg.size`` x ``cfg.size`` first so the cost and
    the bin population do not depend on the source resolution. Each channel
    is quantized into ``cfg.bins`` equal-width buckets and divided by the
    pixel count; the result is R, G and B concatenated (``3 * bins`` values,
    each segment summing to 1).
    """
    pixels = _load_image(image_path, cfg.size)
    segments = [_channel_histogram(pixels[:, :, c], cfg.bins) for c in range(3)]
    return np.concatenate(segments)


def get_descriptor_dim(cfg: HistogramConfig = histogram) -> int:
    return int(cfg.bins * 3)
