# -*- coding: utf-8 -*-
"""
Output Window - Coordinate systems of the input image and the rectified patch.

The input image is addressed in centered coordinates ``(u, v)`` whose
origin is the chosen image center; the rectified patch is addressed in
centered coordinates ``(x, y)`` whose origin is the middle of the focus
window. A transform matrix maps homogeneous ``(x, y, 1)`` to ``(u, v, w)``.
The four extents (``u_data``, ``v_data``, ``x_data``, ``y_data``) are the
inclusive coordinate ranges of the two grids.

Points follow ``(x, y)`` ordering (column first); sizes follow
``(rows, cols)`` ordering.

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
from typing import Sequence, Tuple

# Third-party
import numpy as np

# tiltrect internal
from tiltrect.exceptions import ValidationError


class OutputWindow:
    """Origin and extent of the input image and of the focus window.

    Parameters
    ----------
    image_shape : Tuple[int, int]
        ``(rows, cols)`` of the input image.
    center : Sequence[float]
        ``(x, y)`` pixel position (0-based column, row) of the input-image
        origin. Floored to integers.
    focus_size : Sequence[int]
        ``(rows, cols)`` of the rectified patch. Floored to integers.

    Raises
    ------
    ValidationError
        If the focus window is empty or the center lies outside the image.
    """

    def __init__(
        self,
        image_shape: Tuple[int, int],
        center: Sequence[float],
        focus_size: Sequence[int],
    ) -> None:
        if len(image_shape) < 2:
            raise ValidationError(
                f"image_shape must have two entries, got {image_shape!r}"
            )
        rows, cols = int(image_shape[0]), int(image_shape[1])
        if rows < 1 or cols < 1:
            raise ValidationError(f"Empty input image of shape {image_shape!r}")
        if len(center) != 2 or len(focus_size) != 2:
            raise ValidationError(
                "center and focus_size must both have two entries"
            )
        fm, fn = (int(np.floor(s)) for s in focus_size)
        if fm < 1 or fn < 1:
            raise ValidationError(
                f"Focus window must be non-empty, got focus_size={tuple(focus_size)!r}"
            )
        cx, cy = (int(np.floor(c)) for c in center)
        if not (0 <= cx < cols and 0 <= cy < rows):
            raise ValidationError(
                f"Center {(cx, cy)!r} lies outside the image of shape "
                f"{(rows, cols)!r}"
            )

        self.image_shape = (rows, cols)
        self.center = (cx, cy)
        self.focus_size = (fm, fn)

        fx = (fn - 1) // 2
        fy = (fm - 1) // 2
        self.u_data = (-cx, cols - 1 - cx)
        self.v_data = (-cy, rows - 1 - cy)
        self.x_data = (-fx, fn - 1 - fx)
        self.y_data = (-fy, fm - 1 - fy)

    @property
    def width(self) -> int:
        """Distance between the first and last patch column."""
        return self.x_data[1] - self.x_data[0]

    @property
    def height(self) -> int:
        """Distance between the first and last patch row."""
        return self.y_data[1] - self.y_data[0]

    def grid(self) -> Tuple[np.ndarray, np.ndarray]:
        """Patch coordinates of every output pixel.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray]
            ``(x, y)`` arrays of shape ``focus_size``.
        """
        xs = np.arange(self.x_data[0], self.x_data[1] + 1, dtype=np.float64)
        ys = np.arange(self.y_data[0], self.y_data[1] + 1, dtype=np.float64)
        x, y = np.meshgrid(xs, ys)
        return x, y

    def corners(self) -> np.ndarray:
        """Patch-coordinate corners, clockwise from the top-left.

        Returns
        -------
        np.ndarray
            Shape (4, 2), columns are (x, y).
        """
        x0, x1 = self.x_data
        y0, y1 = self.y_data
        return np.array(
            [[x0, y0], [x1, y0], [x1, y1], [x0, y1]], dtype=np.float64
        )

    def to_array_index(
        self, u: np.ndarray, v: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Convert centered input coordinates to array ``(row, col)``."""
        return v - self.v_data[0], u - self.u_data[0]

    def to_centered(self, points: np.ndarray) -> np.ndarray:
        """Convert 0-based ``(x, y)`` pixel positions to centered ``(u, v)``."""
        return np.asarray(points, dtype=np.float64) - np.asarray(
            self.center, dtype=np.float64
        )

    def to_pixels(self, points: np.ndarray) -> np.ndarray:
        """Convert centered ``(u, v)`` positions to 0-based ``(x, y)`` pixels."""
        return np.asarray(points, dtype=np.float64) + np.asarray(
            self.center, dtype=np.float64
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OutputWindow):
            return NotImplemented
        return (
            self.image_shape == other.image_shape
            and self.center == other.center
            and self.focus_size == other.focus_size
        )

    def __repr__(self) -> str:
        return (
            f"OutputWindow(image_shape={self.image_shape}, "
            f"center={self.center}, focus_size={self.focus_size})"
        )
