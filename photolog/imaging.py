"""
Image normalization for uploaded pictures
Decodes, bounds and re-encodes every picture to a canonical JPEG
"""

import io
import logging
from typing import Tuple

from PIL import Image

from .core import async_wrapper
from .errors import EncodeFailure, PayloadTooLarge, UnsupportedMedia

logger = logging.getLogger(__name__)

# Configuration
MAX_PIC_BYTES = 2097152  # 2MB
MAX_WIDTH = 800
MAX_HEIGHT = 600
SUPPORTED_FORMATS = ('JPEG', 'PNG', 'GIF', 'WEBP')
CANONICAL_FORMAT = 'JPEG'
CANONICAL_EXTENSION = 'jpeg'


def target_size(width: int, height: int, max_width: int = MAX_WIDTH, max_height: int = MAX_HEIGHT) -> Tuple[int, int]:
    """
    Size a picture of width x height is normalized to.

    Pictures inside the bounds keep their size. Larger ones are scaled
    keeping their ratio: landscape pictures get max_width, everything else
    gets max_height. A landscape picture that only overflows in height
    still gets max_width.
    """
    if width <= max_width and height <= max_height:
        return width, height
    d = width / height
    if width > height:
        return max_width, max(1, round(max_width / d))
    return max(1, round(d * max_height)), max_height


def _decode(raw: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(raw), formats=SUPPORTED_FORMATS)
        img.load()
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        logger.info(f"Image decode failed: {e}")
        raise UnsupportedMedia("Unsupported or corrupt image")
    return img


def normalize(raw: bytes, byte_cap: int = MAX_PIC_BYTES, max_width: int = MAX_WIDTH, max_height: int = MAX_HEIGHT) -> bytes:
    """Decode raw, resize it within max_width x max_height and encode it as JPEG"""
    if len(raw) > byte_cap:
        raise PayloadTooLarge()

    img = _decode(raw)
    with img:
        if img.mode != 'RGB':
            img = img.convert('RGB')

        size = target_size(img.width, img.height, max_width, max_height)
        if size != img.size:
            img = img.resize(size, Image.Resampling.LANCZOS)

        output = io.BytesIO()
        try:
            img.save(output, format=CANONICAL_FORMAT)
        except (OSError, ValueError) as e:
            raise EncodeFailure() from e
        return output.getvalue()


@async_wrapper
def normalize_async(raw: bytes, byte_cap: int = MAX_PIC_BYTES, max_width: int = MAX_WIDTH, max_height: int = MAX_HEIGHT) -> bytes:
    return normalize(raw, byte_cap, max_width, max_height)
