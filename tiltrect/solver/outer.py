# -*- coding: utf-8 -*-
"""
Outer Refinement Loop - Gauss-Newton re-linearization around the inner solver.

``refine`` estimates the transform that makes a window of an image as low
rank as possible. Every outer iteration warps the image and its derivative
images at the current transform, normalizes the patch, linearizes the warp
into a Jacobian and a constraint matrix, and hands the linearized problem to
``LowRankSparseSolver``. The returned increment updates the transform, and
the loop stops once the objective settles, the iteration cap is reached, or
the inner solver reports a degenerate decomposition.

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
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

# Third-party
import numpy as np
from scipy import linalg

# tiltrect internal
from tiltrect.config import SolverConfig
from tiltrect.exceptions import DegenerateSolutionError, ValidationError
from tiltrect.geometry.sensitivity import build_sensitivity
from tiltrect.geometry.transforms import (
    apply_transform_to_points,
    matrix_to_parameters,
    parameters_to_matrix,
)
from tiltrect.geometry.warp import image_gradients, warp_image
from tiltrect.geometry.window import OutputWindow
from tiltrect.solver.inner import InnerSolution, LowRankSparseSolver
from tiltrect.vocabulary import RefineStatus, TransformFamily

logger = logging.getLogger(__name__)


@dataclass
class IterationRecord:
    """Snapshot of one outer iteration, passed to the observer.

    Attributes
    ----------
    round : int
        1-based outer iteration number.
    objective : float
        Objective of the inner solve of this round.
    rank : int
        Numerical rank of the low-rank component.
    sparse_l1 : float
        ``||E||_1`` of this round.
    transform : np.ndarray
        Transform after applying this round's increment, shape (3, 3).
    rectified : np.ndarray
        Normalized patch warped at ``transform``.
    inner_iterations : int
        Inner iterations this round used.
    mu : float
        Final penalty of the inner solve.
    """

    round: int
    objective: float
    rank: int
    sparse_l1: float
    transform: np.ndarray
    rectified: np.ndarray
    inner_iterations: int
    mu: float


Observer = Callable[[IterationRecord], Any]


class RefineResult:
    """Outcome of a ``refine`` run.

    A degenerate run still carries shaped ``low_rank`` and
    ``sparse_error`` arrays; check ``error_sign`` (or call
    ``raise_for_status``) before trusting the decomposition.

    Parameters
    ----------
    rectified : np.ndarray
        Normalized patch warped at the final transform, shape (m, n).
    low_rank : np.ndarray
        Low-rank component ``A``, shape (m, n).
    sparse_error : np.ndarray
        Sparse error ``E``, shape (m, n).
    objective : float
        ``||A||_* + lambda * ||E||_1`` of the last inner solve; NaN when
        degenerate.
    transform : np.ndarray
        Final transform, shape (3, 3), patch ``(x, y, 1)`` to centered
        input coordinates.
    error_sign : bool
        True when the run ended in a degenerate decomposition.
    window : OutputWindow
        Coordinate systems the transform is expressed in.
    scale : float
        Frobenius norm of the un-normalized final patch.
    elapsed : float
        Wall-clock seconds spent in ``refine``.
    status : RefineStatus
        Terminal state.
    outer_iterations : int
        Outer iterations performed.
    inner_iterations : List[int]
        Inner iterations per outer iteration.
    parameters : np.ndarray
        Final parameter vector.
    family : TransformFamily
        Family the parameters belong to.
    solver_version : str
        Version of the inner solver that produced the result.
    reason : str
        Why the run is degenerate, or ''.
    pyramid_level : int
        Pyramid level the arrays were computed at; 0 is full resolution.
        ``transform`` and ``window`` always refer to the image the caller
        supplied.
    """

    def __init__(
        self,
        rectified: np.ndarray,
        low_rank: np.ndarray,
        sparse_error: np.ndarray,
        objective: float,
        transform: np.ndarray,
        error_sign: bool,
        window: OutputWindow,
        scale: float,
        elapsed: float,
        status: RefineStatus,
        outer_iterations: int,
        inner_iterations: List[int],
        parameters: np.ndarray,
        family: TransformFamily,
        solver_version: str = 'unknown',
        reason: str = '',
        pyramid_level: int = 0,
    ) -> None:
        self.rectified = rectified
        self.low_rank = low_rank
        self.sparse_error = sparse_error
        self.objective = objective
        self.transform = transform
        self.error_sign = error_sign
        self.window = window
        self.scale = scale
        self.elapsed = elapsed
        self.status = status
        self.outer_iterations = outer_iterations
        self.inner_iterations = inner_iterations
        self.parameters = parameters
        self.family = family
        self.solver_version = solver_version
        self.reason = reason
        self.pyramid_level = pyramid_level

    @property
    def rank(self) -> int:
        """Numerical rank of the low-rank component."""
        if self.error_sign or not np.any(self.low_rank):
            return 0
        return int(np.linalg.matrix_rank(self.low_rank))

    def corners(self) -> np.ndarray:
        """Input-image pixel positions of the patch corners.

        Returns
        -------
        np.ndarray
            Shape (4, 2), columns (x, y), clockwise from the top-left, in
            0-based pixels of the image ``refine`` was given.
        """
        mapped = apply_transform_to_points(self.window.corners(),
                                           self.transform)
        return self.window.to_pixels(mapped)

    def raise_for_status(self) -> 'RefineResult':
        """Raise if the run is degenerate; return ``self`` otherwise.

        Raises
        ------
        DegenerateSolutionError
            If ``error_sign`` is set.
        """
        if self.error_sign:
            detail = f": {self.reason}" if self.reason else ''
            raise DegenerateSolutionError(
                f"Rectification produced a degenerate decomposition{detail}"
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Scalar summary of the run."""
        return {
            'status': self.status.value,
            'objective': self.objective,
            'error_sign': self.error_sign,
            'family': self.family.value,
            'parameters': self.parameters.tolist(),
            'scale': self.scale,
            'elapsed': self.elapsed,
            'outer_iterations': self.outer_iterations,
            'inner_iterations': list(self.inner_iterations),
            'solver_version': self.solver_version,
            'pyramid_level': self.pyramid_level,
        }

    def __repr__(self) -> str:
        return (
            f"RefineResult(status={self.status.value}, "
            f"objective={self.objective:.6g}, "
            f"family={self.family.value}, "
            f"outer_iterations={self.outer_iterations}, "
            f"elapsed={self.elapsed:.3f}s)"
        )


def project_multiplier(
    Y: np.ndarray,
    J: np.ndarray,
    S: np.ndarray,
) -> np.ndarray:
    """Remove the Jacobian-range component from a multiplier.

    Computes ``Y - J (J^T J + S^T S)^+ J^T Y`` so a multiplier carried over
    from the previous linearization starts consistent with the new one.

    Parameters
    ----------
    Y : np.ndarray
        Multiplier, any shape with ``J.shape[0]`` entries.
    J : np.ndarray
        Jacobian, shape (pixels, p).
    S : np.ndarray
        Constraint matrix, shape (k, p).

    Returns
    -------
    np.ndarray
        Projected multiplier, flat, shape (pixels,).
    """
    y = np.asarray(Y, dtype=np.float64).ravel()
    if J.shape[1] == 0:
        return y.copy()
    gram = J.T @ J + S.T @ S
    return y - J @ (linalg.pinv(gram) @ (J.T @ y))


def _validate_image(image: np.ndarray) -> np.ndarray:
    image = np.asarray(image)
    if image.ndim != 2:
        raise ValidationError(
            f"image must be a 2D grayscale array, got shape {image.shape}"
        )
    if image.size == 0:
        raise ValidationError("image is empty")
    if not np.issubdtype(image.dtype, np.number) or np.iscomplexobj(image):
        raise ValidationError(
            f"image must hold real numbers, got dtype {image.dtype}"
        )
    image = image.astype(np.float64)
    if not np.all(np.isfinite(image)):
        raise ValidationError("image contains non-finite values")
    return image


def _warp_patch(
    image: np.ndarray,
    du_image: np.ndarray,
    dv_image: np.ndarray,
    transform: np.ndarray,
    window: OutputWindow,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    return (
        warp_image(image, transform, window),
        warp_image(du_image, transform, window),
        warp_image(dv_image, transform, window),
    )


def refine(
    image: np.ndarray,
    family: Union[str, TransformFamily],
    center: Sequence[float],
    focus_size: Sequence[int],
    initial_transform: Optional[np.ndarray] = None,
    config: Optional[SolverConfig] = None,
    observer: Optional[Observer] = None,
) -> RefineResult:
    """Rectify a window of *image* by low-rank texture refinement.

    Parameters
    ----------
    image : np.ndarray
        2D grayscale image.
    family : str or TransformFamily
        Transform family to estimate.
    center : Sequence[float]
        ``(x, y)`` 0-based pixel position used as the origin of the input
        coordinates.
    focus_size : Sequence[int]
        ``(rows, cols)`` of the rectified patch.
    initial_transform : np.ndarray, optional
        3x3 transform from patch to centered input coordinates. Defaults to
        the identity. Components the family cannot represent are dropped.
    config : SolverConfig, optional
        Loop and solver options. Defaults to ``SolverConfig()``.
    observer : callable, optional
        Called with an ``IterationRecord`` after every outer iteration.

    Returns
    -------
    RefineResult

    Raises
    ------
    ValidationError
        If the image, family, window or initial transform is invalid.
    """
    start = time.perf_counter()
    if config is None:
        config = SolverConfig()
    elif not isinstance(config, SolverConfig):
        raise ValidationError(
            f"config must be a SolverConfig, got {type(config).__name__}"
        )
    image = _validate_image(image)
    family = TransformFamily.parse(family)
    window = OutputWindow(image.shape, center, focus_size)

    if initial_transform is None:
        initial_transform = np.eye(3)
    tau = matrix_to_parameters(initial_transform, family)
    transform = parameters_to_matrix(tau, family)

    solver = LowRankSparseSolver(config)
    version = getattr(LowRankSparseSolver, '__solver_version__', 'unknown')

    du_image, dv_image = image_gradients(image)
    patch, du, dv = _warp_patch(image, du_image, dv_image, transform, window)
    scale = float(np.linalg.norm(patch))

    def _finish(D, A, E, f, status, outer_round, inner_counts, reason=''):
        elapsed = time.perf_counter() - start
        error_sign = status is RefineStatus.DEGENERATE
        if error_sign:
            logger.warning(
                "Refinement degenerate after %d outer iterations (%.3f s): %s",
                outer_round, elapsed, reason,
            )
        else:
            logger.info(
                "Refinement %s after %d outer iterations (%d inner, "
                "%.3f s), f=%.6g",
                status.value, outer_round, sum(inner_counts), elapsed, f,
            )
        return RefineResult(
            rectified=D,
            low_rank=A,
            sparse_error=E,
            objective=f,
            transform=transform,
            error_sign=error_sign,
            window=window,
            scale=scale,
            elapsed=elapsed,
            status=status,
            outer_iterations=outer_round,
            inner_iterations=inner_counts,
            parameters=tau,
            family=family,
            solver_version=version,
            reason=reason,
        )

    if scale == 0.0 or not np.isfinite(scale):
        zeros = np.zeros(window.focus_size)
        return _finish(zeros, zeros.copy(), zeros.copy(), float('nan'),
                       RefineStatus.DEGENERATE, 0, [],
                       'warped patch has zero norm')

    D = patch / scale
    J, S = build_sensitivity(du, dv, window, tau, family, patch=patch)
    f_prev = float(linalg.svdvals(D).sum())

    inner_counts: List[int] = []
    previous: Optional[InnerSolution] = None
    outer_round = 0

    while True:
        outer_round += 1

        if previous is None or not config.warm_start:
            A0 = D
            E0 = np.zeros_like(D)
            Y0 = np.zeros(D.size)
            if config.inner_mu is not None:
                mu0 = float(config.inner_mu)
            else:
                mu0 = 1.25 / float(linalg.norm(D, 2))
        else:
            A0 = previous.A
            E0 = previous.E
            Y0 = project_multiplier(previous.Y, J, S)
            mu0 = previous.mu / config.warm_start_mu_divisor

        solution = solver.solve(D, A0, E0, Y0, mu0, J, S)
        inner_counts.append(solution.iterations)

        if solution.error_sign:
            return _finish(D, solution.A, solution.E, float('nan'),
                           RefineStatus.DEGENERATE, outer_round,
                           inner_counts, solution.reason)

        tau = tau + solution.delta_tau
        transform = parameters_to_matrix(tau, family)
        patch, du, dv = _warp_patch(image, du_image, dv_image, transform,
                                    window)
        scale = float(np.linalg.norm(patch))
        if scale == 0.0 or not np.isfinite(scale):
            return _finish(np.zeros_like(D), solution.A, solution.E,
                           float('nan'), RefineStatus.DEGENERATE,
                           outer_round, inner_counts,
                           'warped patch left the image')
        D = patch / scale
        f = solution.f

        if observer is not None:
            observer(IterationRecord(
                round=outer_round,
                objective=f,
                rank=solution.rank,
                sparse_l1=float(np.abs(solution.E).sum()),
                transform=transform.copy(),
                rectified=D.copy(),
                inner_iterations=solution.iterations,
                mu=solution.mu,
            ))

        if outer_round % config.outer_display_period == 0:
            logger.info(
                "outer %d: f=%.6g, rank(A)=%d, ||E||_1=%.4g, inner=%d",
                outer_round, f, solution.rank,
                float(np.abs(solution.E).sum()), solution.iterations,
            )

        if outer_round >= config.outer_max_iter:
            return _finish(D, solution.A, solution.E, f,
                           RefineStatus.MAX_ITER_REACHED, outer_round,
                           inner_counts)
        if abs(f - f_prev) < config.outer_tol:
            return _finish(D, solution.A, solution.E, f,
                           RefineStatus.CONVERGED, outer_round,
                           inner_counts)

        f_prev = f
        previous = solution
        J, S = build_sensitivity(du, dv, window, tau, family, patch=patch)
