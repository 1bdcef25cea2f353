# -*- coding: utf-8 -*-
"""
Homography Estimation - Direct Linear Transform from point correspondences.

Estimates the 3x3 projective transform mapping source points onto
destination points. The rectification driver uses it to turn four
user-supplied corner points into an initial transform for the patch
window.

Dependencies
------------
numpy

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

# tiltrect internal
from tiltrect.exceptions import ValidationError


def estimate_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """Estimate the homography ``H`` with ``H @ [src, 1] ~ [dst, 1]``.

    Uses the normalized Direct Linear Transform (DLT) algorithm. Requires
    a minimum of 4 non-collinear point pairs.

    Parameters
    ----------
    src : np.ndarray
        Source points. Shape (N, 2), columns are (x, y). N >= 4.
    dst : np.ndarray
        Corresponding destination points. Shape (N, 2).

    Returns
    -------
    np.ndarray
        Homography, shape (3, 3), normalized so ``H[2, 2] = 1`` when
        possible.

    Raises
    ------
    ValidationError
        If fewer than 4 point pairs are provided or shapes do not match.

    Examples
    --------
    >>> src = np.array([[0, 0], [10, 0], [10, 10], [0, 10]], dtype=float)
    >>> H = estimate_homography(src, src + 5.0)
    >>> np.round(H, 6)[:2, 2]
    array([5., 5.])
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    if src.ndim != 2 or src.shape[1] != 2:
        raise ValidationError(f"Points must have shape (N, 2), got {src.shape}")
    if src.shape != dst.shape:
        raise ValidationError(
            f"Point arrays must have the same shape. "
            f"Source: {src.shape}, Destination: {dst.shape}"
        )
    n = src.shape[0]
    if n < 4:
        raise ValidationError(
            f"Homography estimation requires at least 4 points, got {n}"
        )

    # Hartley conditioning
    src_norm, T_src = _normalize_points(src)
    dst_norm, T_dst = _normalize_points(dst)

    # Build DLT system: Ah = 0, two rows per correspondence
    xs, ys = src_norm[:, 0], src_norm[:, 1]
    xd, yd = dst_norm[:, 0], dst_norm[:, 1]
    A = np.zeros((2 * n, 9))
    A[0::2, 0], A[0::2, 1], A[0::2, 2] = xs, ys, 1.0
    A[0::2, 6], A[0::2, 7], A[0::2, 8] = -xd * xs, -xd * ys, -xd
    A[1::2, 3], A[1::2, 4], A[1::2, 5] = xs, ys, 1.0
    A[1::2, 6], A[1::2, 7], A[1::2, 8] = -yd * xs, -yd * ys, -yd

    # null vector of the stacked constraints
    h = np.linalg.svd(A)[2][-1]
    H = np.linalg.solve(T_dst, h.reshape(3, 3) @ T_src)
    return H / H[2, 2] if abs(H[2, 2]) > 1e-12 else H


def _normalize_points(points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Translate the centroid to the origin and scale the mean distance
    from it to sqrt(2).

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        (normalized_points, normalization_matrix).
    """
    origin = points.mean(axis=0)
    spread = np.linalg.norm(points - origin, axis=1).mean()
    k = np.sqrt(2.0) / spread if spread >= 1e-12 else 1.0
    T = np.diag([k, k, 1.0])
    T[:2, 2] = -k * origin
    return k * (points - origin), T
