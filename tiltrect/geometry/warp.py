# -*- coding: utf-8 -*-
"""
Warp Operator - Projective resampling of an image onto the patch grid.

Resamples the input image (or one of its derivative images) at
``transform @ [x, y, 1]`` for every patch pixel ``(x, y)`` using bilinear
interpolation, and computes the directional derivative images the
Jacobian is built from.

Dependencies
------------
scipy

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-10-18

Modified
--------
2026-10-18
"""

# Standard library
from typing import Tuple

# Third-party
import numpy as np
from scipy.ndimage import correlate, map_coordinates

# tiltrect internal
from tiltrect.exceptions import ValidationError
from tiltrect.geometry.window import OutputWindow

#: Sobel kernel differentiating along columns (u), scaled to unit gain.
SOBEL_U = np.array([
    [-1.0, 0.0, 1.0],
    [-2.0, 0.0, 2.0],
    [-1.0, 0.0, 1.0],
]) / 8.0

#: Sobel kernel differentiating along rows (v), scaled to unit gain.
SOBEL_V = SOBEL_U.T.copy()


def warp_image(
    image: np.ndarray,
    transform_matrix: np.ndarray,
    window: OutputWindow,
    order: int = 1,
    fill_value: float = 0.0,
) -> np.ndarray:
    """Warp an image onto the patch grid of *window*.

    Uses scipy's map_coordinates for interpolation. The transform maps
    patch coordinates to input coordinates, so no inversion is needed:
    every output pixel pulls its value from the input position it maps to.

    Parameters
    ----------
    image : np.ndarray
        Input image, shape ``window.image_shape``.
    transform_matrix : np.ndarray
        Projective transform, shape (3, 3), patch ``(x, y, 1)`` to
        input ``(u, v, w)``.
    window : OutputWindow
        Coordinate systems of the input image and the patch.
    order : int
        Interpolation order: 0=nearest, 1=bilinear, 3=bicubic.
    fill_value : float
        Value for samples outside the input image.

    Returns
    -------
    np.ndarray
        Warped patch, shape ``window.focus_size``, float64.

    Raises
    ------
    ValidationError
        If *image* is not 2D or does not match ``window.image_shape``.
    """
    if image.ndim != 2:
        raise ValidationError(f"image must be 2D, got shape {image.shape}")
    if image.shape != window.image_shape:
        raise ValidationError(
            f"image shape {image.shape} does not match the window's "
            f"image shape {window.image_shape}"
        )
    if transform_matrix.shape != (3, 3):
        raise ValidationError(
            f"Transform matrix must be (3, 3), got {transform_matrix.shape}"
        )

    x, y = window.grid()
    ones = np.ones_like(x)
    coords_h = np.stack([x, y, ones], axis=0).reshape(3, -1)  # (3, M*N)
    src = transform_matrix @ coords_h
    w = src[2]
    w = np.where(np.abs(w) < 1e-12, 1e-12, w)
    u = (src[0] / w).reshape(window.focus_size)
    v = (src[1] / w).reshape(window.focus_size)
    rows, cols = window.to_array_index(u, v)

    return map_coordinates(
        np.asarray(image, dtype=np.float64),
        [rows, cols],
        order=order,
        mode='constant',
        cval=fill_value,
    )


def image_gradients(image: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Directional derivative images of *image*.

    Parameters
    ----------
    image : np.ndarray
        2D input image.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(du, dv)``: derivatives along columns and rows, same shape as
        *image*, float64. Borders replicate the edge pixels.
    """
    if image.ndim != 2:
        raise ValidationError(f"image must be 2D, got shape {image.shape}")
    working = np.asarray(image, dtype=np.float64)
    du = correlate(working, SOBEL_U, mode='nearest')
    dv = correlate(working, SOBEL_V, mode='nearest')
    return du, dv
