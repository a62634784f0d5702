#!/usr/bin/env python3
"""
Prepare product photos for the vision model.

Phone photos can be large PNG/HEIC-converted files with alpha channels;
the model takes JPEG/PNG/GIF/WEBP up to ~5 MB, so everything is flattened
onto white and re-encoded as a bounded JPEG.
"""

import io
import logging

from PIL import Image

MAX_DIMENSION = 1568


def prepare_for_vision(data: bytes, mime_type: str = "image/jpeg", background_color=(255, 255, 255)):
    """
    Return (jpeg_bytes, "image/jpeg") ready to send as an image block.

    Args:
        data: Raw image bytes as stored
        mime_type: Stored content type (only used for logging)
        background_color: RGB tuple used behind transparent pixels
    """
    img = Image.open(io.BytesIO(data))

    # Strip ICC profile to avoid compatibility issues
    img.info.pop("icc_profile", None)

    if img.mode in ("RGBA", "LA", "P"):
        background = Image.new("RGB", img.size, background_color)
        if img.mode == "P":
            img = img.convert("RGBA")
        if img.mode == "RGBA":
            background.paste(img, mask=img.split()[3])
        else:
            background.paste(img.convert("RGB"))
        img = background
    elif img.mode != "RGB":
        img = img.convert("RGB")

    w, h = img.size
    if max(w, h) > MAX_DIMENSION:
        scale = MAX_DIMENSION / max(w, h)
        new_w, new_h = int(w * scale), int(h * scale)
        img = img.resize((new_w, new_h), Image.LANCZOS)
        logging.debug("Resized %s image %dx%d -> %dx%d", mime_type, w, h, new_w, new_h)

    out = io.BytesIO()
    img.save(out, "JPEG", quality=85, optimize=True)
    return out.getvalue(), "image/jpeg"
