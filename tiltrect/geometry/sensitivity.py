# -*- coding: utf-8 -*-
"""
Sensitivity Model - Jacobian and constraint matrix of the linearized warp.

The Jacobian ``J`` holds, per transform parameter, the sensitivity of every
patch pixel to that parameter, flattened in C order to shape
``(pixels, params)``. When the un-normalized patch is supplied, the
derivative of the unit-Frobenius normalization is folded into each column,
so ``J`` linearizes the normalized patch the solver actually sees.

The constraint matrix ``S`` restricts the parameter increment through
``S @ delta_tau = 0``. Affine and projective families conserve the summed
squared lengths of the horizontal edges and, separately, of the vertical
edges of the quadrilateral the patch window maps to. This removes the
per-axis scale freedom that would let the patch shrink onto a single line
or point. No-translation variants add one row per translation parameter.

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
from typing import Optional, Tuple, Union

# Third-party
import numpy as np

# tiltrect internal
from tiltrect.exceptions import ValidationError
from tiltrect.geometry.transforms import get_model
from tiltrect.geometry.window import OutputWindow
from tiltrect.vocabulary import TransformFamily


def build_jacobian(
    du: np.ndarray,
    dv: np.ndarray,
    window: OutputWindow,
    tau: np.ndarray,
    family: Union[str, TransformFamily],
    patch: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Per-pixel sensitivity of the warped patch to each parameter.

    Parameters
    ----------
    du, dv : np.ndarray
        Derivative images of the input warped onto the patch grid, shape
        ``window.focus_size``.
    window : OutputWindow
        Patch coordinate system.
    tau : np.ndarray
        Current parameter vector.
    family : str or TransformFamily
        Transform family.
    patch : np.ndarray, optional
        Un-normalized warped patch. When given, the columns differentiate
        ``patch / ||patch||_F`` instead of ``patch``.

    Returns
    -------
    np.ndarray
        Jacobian, shape ``(rows * cols, parameter_count)``.

    Raises
    ------
    ValidationError
        If the derivative images do not match the focus window.
    """
    if du.shape != window.focus_size or dv.shape != window.focus_size:
        raise ValidationError(
            f"Derivative images {du.shape} / {dv.shape} do not match the "
            f"focus size {window.focus_size}"
        )
    model = get_model(family)
    x, y = window.grid()
    _, _, du_dtau, dv_dtau = model.point_jacobian(
        np.asarray(tau, dtype=np.float64), x, y
    )
    jac = du[..., None] * du_dtau + dv[..., None] * dv_dtau
    jac = jac.reshape(-1, model.parameter_count)

    if patch is not None:
        if patch.shape != window.focus_size:
            raise ValidationError(
                f"Patch shape {patch.shape} does not match the focus size "
                f"{window.focus_size}"
            )
        d = patch.ravel()
        norm = np.linalg.norm(d)
        if norm > 0.0:
            jac = jac / norm - np.outer(d, d @ jac) / norm ** 3
    return jac


def build_constraints(
    window: OutputWindow,
    tau: np.ndarray,
    family: Union[str, TransformFamily],
) -> np.ndarray:
    """Linear constraints on the parameter increment.

    Parameters
    ----------
    window : OutputWindow
        Patch coordinate system.
    tau : np.ndarray
        Current parameter vector.
    family : str or TransformFamily
        Transform family.

    Returns
    -------
    np.ndarray
        Constraint matrix, shape ``(k, parameter_count)``; ``k`` is 0 for
        the Euclidean family, 2 for affine and projective families, plus 2
        for no-translation variants. Rows have unit norm.
    """
    family = TransformFamily.parse(family)
    model = get_model(family)
    p = model.parameter_count
    rows = []

    if family.base is not TransformFamily.EUCLIDEAN:
        corners = window.corners()
        u, v, du_dtau, dv_dtau = model.point_jacobian(
            np.asarray(tau, dtype=np.float64), corners[:, 0], corners[:, 1]
        )
        un, vn = np.roll(u, -1), np.roll(v, -1)
        dun, dvn = np.roll(du_dtau, -1, axis=0), np.roll(dv_dtau, -1, axis=0)

        # d/dtau of ||c_{i+1} - c_i||^2 for the edges top, right, bottom, left
        edge_grads = 2.0 * (
            (un - u)[:, None] * (dun - du_dtau)
            + (vn - v)[:, None] * (dvn - dv_dtau)
        )
        rows.append(edge_grads[0] + edge_grads[2])
        rows.append(edge_grads[1] + edge_grads[3])

    if family.fixes_translation:
        for idx in model.translation_indices:
            row = np.zeros(p)
            row[idx] = 1.0
            rows.append(row)

    if not rows:
        return np.zeros((0, p))
    constraints = np.vstack(rows)
    norms = np.linalg.norm(constraints, axis=1, keepdims=True)
    return constraints / np.where(norms > 0.0, norms, 1.0)


def build_sensitivity(
    du: np.ndarray,
    dv: np.ndarray,
    window: OutputWindow,
    tau: np.ndarray,
    family: Union[str, TransformFamily],
    patch: Optional[np.ndarray] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Build the linearized sensitivity model ``(J, S)``.

    See ``build_jacobian`` and ``build_constraints`` for the meaning of the
    arguments.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(J, S)`` with shapes ``(pixels, p)`` and ``(k, p)``.
    """
    jac = build_jacobian(du, dv, window, tau, family, patch=patch)
    return jac, build_constraints(window, tau, family)
