# -*- coding: utf-8 -*-
"""Image I/O helpers used by the tools (the core only sees decoded arrays)."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np
from PIL import Image

PathLike = Union[str, Path]


def read_image_robust(path: PathLike, gray: bool = False) -> Optional[np.ndarray]:
    """Read an image from disk as RGB (or grayscale) uint8 with graceful fallbacks.

    Parameters
    ----------
    path:
        Input filepath. DNG files are preferentially decoded with Pillow to
        avoid OpenCV failures. Other formats go through OpenCV first and
        Pillow second.
    gray:
        Return a single-channel image instead of RGB.

    Returns
    -------
    Optional[np.ndarray]
        ``(H, W, 3)`` RGB or ``(H, W)`` gray uint8 on success, otherwise ``None``.
    """

    fp = Path(path)
    pil_mode = "L" if gray else "RGB"

    if fp.suffix.lower() == ".dng":
        try:
            return np.array(Image.open(fp).convert(pil_mode))
        except (OSError, ValueError) as exc:
            logging.warning("Pillow failed to read DNG %s: %s", fp, exc)

    try:
        flag = cv2.IMREAD_GRAYSCALE if gray else cv2.IMREAD_COLOR
        img = cv2.imread(str(fp), flag)
        if img is not None:
            return img if gray else cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    except cv2.error as exc:
        logging.warning("OpenCV failed to read %s: %s", fp, exc)

    try:
        return np.array(Image.open(fp).convert(pil_mode))
    except (OSError, ValueError) as exc:
        logging.warning("Pillow fallback failed %s: %s", fp, exc)

    return None


def write_image_rgba(path: PathLike, rgba: np.ndarray) -> bool:
    """Write an RGB(A) array with OpenCV (which expects BGR(A) channel order)."""
    code = cv2.COLOR_RGBA2BGRA if rgba.ndim == 3 and rgba.shape[2] == 4 else cv2.COLOR_RGB2BGR
    return bool(cv2.imwrite(str(path), cv2.cvtColor(rgba, code)))
