# -*- coding: utf-8 -*-
"""
Transform Models - Parameter vectors, 3x3 matrices and their derivatives.

Each base ``TransformFamily`` owns one ``TransformModel`` that maps a flat
parameter vector ``tau`` to a 3x3 matrix and back, and that differentiates
the mapped position of patch points with respect to ``tau``. The
no-translation variants share their base family's model; translation is
frozen through the constraint matrix instead (see
``tiltrect.geometry.sensitivity``).

Parameterizations
-----------------
- Euclidean: ``tau = [theta, tx, ty]``
- Affine: ``tau = [a11, a12, a21, a22, tx, ty]``
- Homography: ``tau = [h11, h12, h13, h21, h22, h23, h31, h32]``, ``h33 = 1``

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
from abc import ABC, abstractmethod
from typing import Dict, Tuple, Union

# Third-party
import numpy as np

# tiltrect internal
from tiltrect.exceptions import ValidationError
from tiltrect.vocabulary import BASE_FAMILIES, TransformFamily


class TransformModel(ABC):
    """Abstract parameterization of one transform family.

    Attributes
    ----------
    parameter_count : int
        Length of the parameter vector.
    translation_indices : Tuple[int, int]
        Positions of the two translation parameters within ``tau``.
    """

    parameter_count: int = 0
    translation_indices: Tuple[int, int] = (0, 0)

    @abstractmethod
    def to_matrix(self, tau: np.ndarray) -> np.ndarray:
        """Build the 3x3 matrix for parameter vector *tau*."""
        ...

    @abstractmethod
    def from_matrix(self, matrix: np.ndarray) -> np.ndarray:
        """Extract the parameter vector from a 3x3 *matrix*."""
        ...

    @abstractmethod
    def point_jacobian(
        self,
        tau: np.ndarray,
        x: np.ndarray,
        y: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Map patch points and differentiate the result.

        Parameters
        ----------
        tau : np.ndarray
            Parameter vector.
        x, y : np.ndarray
            Patch coordinates, any (matching) shape.

        Returns
        -------
        Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]
            ``(u, v, du_dtau, dv_dtau)``; ``u`` and ``v`` have the shape of
            *x*, the derivatives have that shape plus a trailing axis of
            length ``parameter_count``.
        """
        ...


class EuclideanModel(TransformModel):
    """In-plane rotation plus translation."""

    parameter_count = 3
    translation_indices = (1, 2)

    def to_matrix(self, tau: np.ndarray) -> np.ndarray:
        theta, tx, ty = tau
        c, s = np.cos(theta), np.sin(theta)
        return np.array([[c, -s, tx], [s, c, ty], [0.0, 0.0, 1.0]])

    def from_matrix(self, matrix: np.ndarray) -> np.ndarray:
        m = matrix / matrix[2, 2]
        theta = np.arctan2(m[1, 0], m[0, 0])
        return np.array([theta, m[0, 2], m[1, 2]])

    def point_jacobian(self, tau, x, y):
        theta, tx, ty = tau
        c, s = np.cos(theta), np.sin(theta)
        u = c * x - s * y + tx
        v = s * x + c * y + ty
        zeros = np.zeros_like(x)
        ones = np.ones_like(x)
        du = np.stack([-s * x - c * y, ones, zeros], axis=-1)
        dv = np.stack([c * x - s * y, zeros, ones], axis=-1)
        return u, v, du, dv


class AffineModel(TransformModel):
    """General affine map."""

    parameter_count = 6
    translation_indices = (4, 5)

    def to_matrix(self, tau: np.ndarray) -> np.ndarray:
        a11, a12, a21, a22, tx, ty = tau
        return np.array([[a11, a12, tx], [a21, a22, ty], [0.0, 0.0, 1.0]])

    def from_matrix(self, matrix: np.ndarray) -> np.ndarray:
        m = matrix / matrix[2, 2]
        return np.array([m[0, 0], m[0, 1], m[1, 0], m[1, 1], m[0, 2], m[1, 2]])

    def point_jacobian(self, tau, x, y):
        a11, a12, a21, a22, tx, ty = tau
        u = a11 * x + a12 * y + tx
        v = a21 * x + a22 * y + ty
        zeros = np.zeros_like(x)
        ones = np.ones_like(x)
        du = np.stack([x, y, zeros, zeros, ones, zeros], axis=-1)
        dv = np.stack([zeros, zeros, x, y, zeros, ones], axis=-1)
        return u, v, du, dv


class HomographyModel(TransformModel):
    """Projective map normalized to ``h33 = 1``."""

    parameter_count = 8
    translation_indices = (2, 5)

    def to_matrix(self, tau: np.ndarray) -> np.ndarray:
        return np.append(np.asarray(tau, dtype=np.float64), 1.0).reshape(3, 3)

    def from_matrix(self, matrix: np.ndarray) -> np.ndarray:
        return (matrix / matrix[2, 2]).ravel()[:8].copy()

    def point_jacobian(self, tau, x, y):
        h11, h12, h13, h21, h22, h23, h31, h32 = tau
        w = h31 * x + h32 * y + 1.0
        w = np.where(np.abs(w) < 1e-12, 1e-12, w)
        u = (h11 * x + h12 * y + h13) / w
        v = (h21 * x + h22 * y + h23) / w
        zeros = np.zeros_like(x)
        du = np.stack(
            [x / w, y / w, 1.0 / w, zeros, zeros, zeros,
             -u * x / w, -u * y / w],
            axis=-1,
        )
        dv = np.stack(
            [zeros, zeros, zeros, x / w, y / w, 1.0 / w,
             -v * x / w, -v * y / w],
            axis=-1,
        )
        return u, v, du, dv


_MODELS: Dict[TransformFamily, TransformModel] = {
    TransformFamily.EUCLIDEAN: EuclideanModel(),
    TransformFamily.AFFINE: AffineModel(),
    TransformFamily.HOMOGRAPHY: HomographyModel(),
}

if set(_MODELS) != set(BASE_FAMILIES):
    raise ImportError(
        "Transform model table does not cover every base TransformFamily"
    )


def get_model(family: Union[str, TransformFamily]) -> TransformModel:
    """Return the parameterization shared by *family* and its variant."""
    return _MODELS[TransformFamily.parse(family).base]


def parameter_count(family: Union[str, TransformFamily]) -> int:
    """Length of the parameter vector of *family*."""
    return get_model(family).parameter_count


def _validate_matrix(matrix: np.ndarray) -> np.ndarray:
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (3, 3):
        raise ValidationError(
            f"Transform matrix must be (3, 3), got {matrix.shape}"
        )
    if not np.all(np.isfinite(matrix)):
        raise ValidationError("Transform matrix contains non-finite values")
    if abs(matrix[2, 2]) < 1e-12:
        raise ValidationError(
            "Transform matrix must have a nonzero (2, 2) entry"
        )
    return matrix


def parameters_to_matrix(
    tau: np.ndarray,
    family: Union[str, TransformFamily],
) -> np.ndarray:
    """Build the 3x3 transform matrix for parameter vector *tau*.

    Parameters
    ----------
    tau : np.ndarray
        Flat parameter vector of length ``parameter_count(family)``.
    family : str or TransformFamily
        Transform family.

    Returns
    -------
    np.ndarray
        Transform matrix, shape (3, 3), mapping patch ``(x, y, 1)`` to
        input ``(u, v, w)``.

    Raises
    ------
    ValidationError
        If *tau* has the wrong length.
    """
    model = get_model(family)
    tau = np.asarray(tau, dtype=np.float64).ravel()
    if tau.size != model.parameter_count:
        raise ValidationError(
            f"{TransformFamily.parse(family).value} expects "
            f"{model.parameter_count} parameters, got {tau.size}"
        )
    return model.to_matrix(tau)


def matrix_to_parameters(
    matrix: np.ndarray,
    family: Union[str, TransformFamily],
) -> np.ndarray:
    """Extract the parameter vector of *family* from a 3x3 matrix.

    The matrix is normalized by its (2, 2) entry first. Components the
    family cannot represent (e.g. the projective row for affine maps) are
    dropped.

    Parameters
    ----------
    matrix : np.ndarray
        Transform matrix, shape (3, 3).
    family : str or TransformFamily
        Transform family.

    Returns
    -------
    np.ndarray
        Parameter vector, shape ``(parameter_count(family),)``.

    Raises
    ------
    ValidationError
        If the matrix is not 3x3, is non-finite, or has a zero (2, 2)
        entry.
    """
    return get_model(family).from_matrix(_validate_matrix(matrix))


def apply_transform_to_points(
    points: np.ndarray,
    transform_matrix: np.ndarray,
) -> np.ndarray:
    """Apply a projective transform to a set of 2D points.

    Parameters
    ----------
    points : np.ndarray
        Points to transform. Shape (N, 2), columns are (x, y).
    transform_matrix : np.ndarray
        Projective transform matrix, shape (3, 3).

    Returns
    -------
    np.ndarray
        Transformed points. Shape (N, 2), columns are (x, y).
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    if transform_matrix.shape != (3, 3):
        raise ValidationError(
            f"Transform matrix must be (3, 3), got {transform_matrix.shape}"
        )
    ones = np.ones((points.shape[0], 1))
    pts_h = np.hstack([points, ones])  # (N, 3)
    result_h = pts_h @ transform_matrix.T  # (N, 3)
    w = result_h[:, 2:3]
    w = np.where(np.abs(w) < 1e-12, 1e-12, w)
    return result_h[:, :2] / w
