# -*- coding: utf-8 -*-
"""
Rectification Driver - Region selection, blurring and coarse-to-fine refinement.

``rectify`` is the user-level entry point. It turns corner points into a
focus window and an initial transform, optionally blurs the image, and runs
``refine`` on a dyadic image pyramid from the coarsest level upward. The
transform found at each level is carried to the next by conjugation with
the level's scaling matrix, and the outer tolerance is relaxed as the
resolution increases.

Usage
-----
    >>> import numpy as np
    >>> from tiltrect import rectify
    >>> corners = np.array([[40, 160], [30, 150]])  # x row, y row
    >>> result = rectify(image, 'affine', corners)
    >>> result.raise_for_status().corners()

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
import logging
import math
from typing import List, Optional, Sequence, Tuple, Union

# Third-party
import numpy as np
from scipy.ndimage import affine_transform, gaussian_filter

# tiltrect internal
from tiltrect.config import RectifyConfig, SolverConfig
from tiltrect.exceptions import ValidationError
from tiltrect.geometry.homography import estimate_homography
from tiltrect.geometry.transforms import matrix_to_parameters
from tiltrect.geometry.window import OutputWindow
from tiltrect.solver.outer import Observer, RefineResult, refine
from tiltrect.vocabulary import TransformFamily

logger = logging.getLogger(__name__)

#: ITU-R BT.601 luma weights used for color input.
LUMA_WEIGHTS = np.array([0.299, 0.587, 0.114])


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """Convert an image to a 2D float64 intensity array.

    Parameters
    ----------
    image : np.ndarray
        ``(rows, cols)`` grayscale or ``(rows, cols, C)`` color image with
        ``C >= 3``; channels beyond the third are ignored.

    Returns
    -------
    np.ndarray
        Shape ``(rows, cols)``, float64.

    Raises
    ------
    ValidationError
        If the array is neither grayscale nor color.
    """
    image = np.asarray(image)
    if image.ndim == 2:
        return image.astype(np.float64)
    if image.ndim == 3 and image.shape[2] == 1:
        return image[..., 0].astype(np.float64)
    if image.ndim == 3 and image.shape[2] >= 3:
        return image[..., :3].astype(np.float64) @ LUMA_WEIGHTS
    raise ValidationError(
        f"Expected a (rows, cols) or (rows, cols, 3) image, got shape "
        f"{image.shape}"
    )


def blur_image(
    image: np.ndarray,
    factor: float,
    config: Optional[RectifyConfig] = None,
) -> np.ndarray:
    """Gaussian blur with sigma and kernel extent proportional to *factor*.

    The kernel is ``ceil(blur_size_k * factor)`` pixels wide with standard
    deviation ``ceil(blur_sigma_k * factor)``, so at the default settings it
    is clipped well inside the Gaussian's tails.

    Parameters
    ----------
    image : np.ndarray
        2D image.
    factor : float
        Scale of the blur, e.g. the pyramid downsampling factor.
    config : RectifyConfig, optional
        Supplies ``blur_sigma_k`` and ``blur_size_k``.

    Returns
    -------
    np.ndarray
        Blurred image, float64, same shape.
    """
    cfg = config if config is not None else RectifyConfig()
    size = math.ceil(cfg.blur_size_k * factor)
    sigma = math.ceil(cfg.blur_sigma_k * factor)
    radius = (size - 1) / 2.0
    if radius < 0.5 or sigma <= 0:
        return np.asarray(image, dtype=np.float64)
    return gaussian_filter(
        np.asarray(image, dtype=np.float64),
        sigma=sigma,
        truncate=radius / sigma,
        mode='nearest',
    )


def focus_from_points(
    initial_points: np.ndarray,
    focus_size: Optional[Sequence[int]] = None,
) -> Tuple[Tuple[int, int], Tuple[int, int], Optional[np.ndarray]]:
    """Derive center, focus size and initial transform from user points.

    Parameters
    ----------
    initial_points : np.ndarray
        Shape (2, 2): top-left and bottom-right corners as columns, x in
        row 0 and y in row 1. Shape (2, 4): the four corners of the region,
        clockwise from the top-left.
    focus_size : Sequence[int], optional
        ``(rows, cols)`` overriding the size derived from the points.

    Returns
    -------
    Tuple
        ``(center, focus_size, transform)``. ``center`` is the 0-based
        ``(x, y)`` pixel origin, ``transform`` is the homography mapping the
        patch window onto the four corners, or None for two points.

    Raises
    ------
    ValidationError
        If the points are malformed or describe an empty region.
    """
    points = np.asarray(initial_points, dtype=np.float64)
    if points.ndim != 2 or points.shape[0] != 2 or points.shape[1] not in (2, 4):
        raise ValidationError(
            f"initial_points must have shape (2, 2) or (2, 4), got "
            f"{points.shape}"
        )
    if not np.all(np.isfinite(points)):
        raise ValidationError("initial_points contains non-finite values")

    if points.shape[1] == 2:
        points = np.floor(points)
        center = np.floor(points.mean(axis=1)).astype(int)
        if focus_size is None:
            focus_size = (
                points[1, 1] - points[1, 0] + 1,
                points[0, 1] - points[0, 0] + 1,
            )
        size = tuple(int(math.floor(s)) for s in focus_size)
        if size[0] < 1 or size[1] < 1:
            raise ValidationError(
                f"initial_points describe an empty region: {points.tolist()}"
            )
        return (int(center[0]), int(center[1])), size, None

    center = np.floor(points.mean(axis=1))
    offsets = points - center[:, None]
    if focus_size is None:
        extent = np.floor(np.abs(offsets).mean(axis=1) * 2.0)
        focus_size = (extent[1], extent[0])
    size = tuple(int(math.floor(s)) for s in focus_size)
    if size[0] < 1 or size[1] < 1:
        raise ValidationError(
            f"initial_points describe an empty region: {points.tolist()}"
        )

    # only the patch coordinates of this window are used
    window = OutputWindow((1, 1), (0, 0), size)
    transform = estimate_homography(window.corners(), np.floor(offsets).T)
    return (int(center[0]), int(center[1])), size, transform


def downsample(image: np.ndarray, level: int) -> np.ndarray:
    """Resample *image* by ``0.5 ** level`` with bicubic interpolation.

    Output pixel ``i`` samples input position ``2 ** level * i``, so pixel
    coordinates scale exactly by the factor and the level transform is the
    conjugate of the full-resolution one.
    """
    step = 2 ** level
    shape = tuple((n - 1) // step + 1 for n in image.shape)
    return affine_transform(
        np.asarray(image, dtype=np.float64),
        np.array([step, step], dtype=np.float64),
        output_shape=shape,
        order=3,
        mode='nearest',
    )


def _scaling(level: int) -> np.ndarray:
    factor = 0.5 ** level
    return np.diag([factor, factor, 1.0])


def rectify(
    image: np.ndarray,
    family: Union[str, TransformFamily],
    initial_points: np.ndarray,
    config: Optional[SolverConfig] = None,
    rectify_config: Optional[RectifyConfig] = None,
    initial_transform: Optional[np.ndarray] = None,
    focus_size: Optional[Sequence[int]] = None,
    observer: Optional[Observer] = None,
) -> RefineResult:
    """Rectify the region of *image* outlined by *initial_points*.

    Parameters
    ----------
    image : np.ndarray
        Grayscale ``(rows, cols)`` or color ``(rows, cols, 3)`` image.
    family : str or TransformFamily
        ``'euclidean'``, ``'affine'`` or ``'homography'`` (or a member).
        ``rectify_config.no_translation`` picks the no-translation variant.
    initial_points : np.ndarray
        Region outline, see ``focus_from_points``.
    config : SolverConfig, optional
        Options of the refinement loop.
    rectify_config : RectifyConfig, optional
        Blur and pyramid options.
    initial_transform : np.ndarray, optional
        3x3 starting transform. Takes precedence over the homography
        derived from four corner points.
    focus_size : Sequence[int], optional
        ``(rows, cols)`` of the rectified patch, overriding the size
        derived from the points.
    observer : callable, optional
        Passed to every ``refine`` call.

    Returns
    -------
    RefineResult
        Result of the finest level refined. Its ``transform``, ``window``
        and ``parameters`` refer to the full-resolution image; its arrays
        are at ``pyramid_level``. Iteration counts and elapsed time cover
        all levels.

    Raises
    ------
    ValidationError
        If the image, points or transform are invalid.
    """
    solver_cfg = config if config is not None else SolverConfig()
    if not isinstance(solver_cfg, SolverConfig):
        raise ValidationError(
            f"config must be a SolverConfig, got {type(solver_cfg).__name__}"
        )
    cfg = rectify_config if rectify_config is not None else RectifyConfig()
    if not isinstance(cfg, RectifyConfig):
        raise ValidationError(
            f"rectify_config must be a RectifyConfig, got {type(cfg).__name__}"
        )

    gray = to_grayscale(image)
    family = TransformFamily.parse(family).with_translation(
        not cfg.no_translation
    )
    center, size, point_transform = focus_from_points(
        initial_points, focus_size
    )
    if initial_transform is None:
        initial_transform = (
            point_transform if point_transform is not None else np.eye(3)
        )
    transform = np.asarray(initial_transform, dtype=np.float64)
    if transform.shape != (3, 3) or not np.all(np.isfinite(transform)):
        raise ValidationError(
            "initial_transform must be a finite (3, 3) matrix"
        )
    full_window = OutputWindow(gray.shape, center, size)

    if not cfg.pyramid:
        working = gray
        if cfg.blur:
            working = blur_image(gray, max(gray.shape) / 50.0, cfg)
        logger.info(
            "Rectifying %s focus %s at center %s (no pyramid)",
            family.value, size, center,
        )
        result = refine(working, family, center, size, transform,
                        solver_cfg, observer)
        return result

    total_scale = int(math.ceil(
        max(math.log2(min(size) / cfg.focus_threshold), 0.0)
    ))
    logger.info(
        "Rectifying %s focus %s at center %s over %d pyramid level(s)",
        family.value, size, center, min(total_scale + 1, cfg.pyramid_max_level),
    )

    level_cfg = solver_cfg
    elapsed = 0.0
    outer_total = 0
    inner_counts: List[int] = []
    result = None
    refined_level = total_scale

    for level in range(total_scale, -1, -1):
        if total_scale - level >= cfg.pyramid_max_level:
            break
        working = gray
        if cfg.blur and level != 0:
            working = blur_image(gray, 2.0 ** level, cfg)
        scaling = _scaling(level)
        if level != 0:
            working = downsample(working, level)
        level_center = tuple(
            int(c) for c in np.floor(scaling[:2, :2] @ np.asarray(center, float))
        )
        level_size = tuple(int(math.floor(s / 2 ** level)) for s in size)
        level_transform = scaling @ transform @ np.linalg.inv(scaling)

        logger.info(
            "Pyramid level %d: image %s, focus %s, outer_tol=%.3g",
            level, working.shape, level_size, level_cfg.outer_tol,
        )
        result = refine(working, family, level_center, level_size,
                        level_transform, level_cfg, observer)
        refined_level = level
        elapsed += result.elapsed
        outer_total += result.outer_iterations
        inner_counts.extend(result.inner_iterations)
        if result.error_sign:
            break

        transform = np.linalg.inv(scaling) @ result.transform @ scaling
        transform = transform / transform[2, 2]
        level_cfg = level_cfg.replace(
            outer_tol=level_cfg.outer_tol * cfg.outer_tol_step
        )

    result.transform = transform
    result.parameters = matrix_to_parameters(transform, family)
    result.window = full_window
    result.pyramid_level = refined_level
    result.elapsed = elapsed
    result.outer_iterations = outer_total
    result.inner_iterations = inner_counts
    logger.info(
        "Rectification finished with status %s in %.3f s",
        result.status.value, elapsed,
    )
    return result
