# -*- coding: utf-8 -*-
"""
Inner Solver - Alternating direction method with adaptive penalty.

Solves one linearized subproblem of the rectification problem::

    min  ||A||_* + lambda * ||E||_1
    s.t. D + J @ delta_tau = A + E,   S @ delta_tau = 0

with the augmented Lagrangian

    L = ||A||_* + lambda ||E||_1 + <Y, D + J dtau - A - E>
        + mu / 2 * ||D + J dtau - A - E||_F^2

Each iteration updates the low-rank part by singular value thresholding,
the sparse part by element-wise soft-thresholding and the parameter
increment by a least-squares solve restricted to the null space of ``S``;
the multiplier then takes a dual ascent step. The penalty ``mu`` grows by
``rho`` whenever the iterates stall, and the solve stops when both the
primal residual and the iterate change fall below their tolerances.

The solver accepts any ``(A0, E0, Y0, mu0)``; preparing a warm start is
the caller's responsibility.

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
from dataclasses import dataclass
from typing import Optional, Tuple

# Third-party
import numpy as np
from scipy import linalg

# tiltrect internal
from tiltrect.config import SolverConfig
from tiltrect.exceptions import NumericalSingularityError, ValidationError
from tiltrect.versioning import solver_version

logger = logging.getLogger(__name__)


def soft_threshold(x: np.ndarray, threshold: float) -> np.ndarray:
    """Element-wise shrinkage ``sign(x) * max(|x| - threshold, 0)``."""
    return np.sign(x) * np.maximum(np.abs(x) - threshold, 0.0)


def singular_value_threshold(
    matrix: np.ndarray,
    threshold: float,
) -> Tuple[np.ndarray, np.ndarray]:
    """Proximal operator of ``threshold * ||.||_*``.

    Parameters
    ----------
    matrix : np.ndarray
        2D input.
    threshold : float
        Amount subtracted from every singular value.

    Returns
    -------
    Tuple[np.ndarray, np.ndarray]
        ``(low_rank, singular_values)``: the thresholded matrix and its
        nonzero singular values in descending order.
    """
    try:
        U, s, Vt = linalg.svd(
            matrix, full_matrices=False, lapack_driver='gesdd',
            check_finite=False,
        )
    except linalg.LinAlgError:
        # gesdd occasionally fails to converge where gesvd does not
        U, s, Vt = linalg.svd(
            matrix, full_matrices=False, lapack_driver='gesvd',
            check_finite=False,
        )
    shrunk = s - threshold
    rank = int(np.count_nonzero(shrunk > 0.0))
    low_rank = (U[:, :rank] * shrunk[:rank]) @ Vt[:rank]
    return low_rank, shrunk[:rank]


def sparse_support(
    E: np.ndarray,
    d_norm: float,
    tol: float,
) -> np.ndarray:
    """Boolean mask of the entries of *E* that carry real error.

    Entries are counted when ``|E| > tol * d_norm / sqrt(E.size)``, i.e.
    above *tol* times the RMS value of a patch of Frobenius norm *d_norm*.
    The converged solver leaves residual-sized values across most of
    ``E``; with ``tol=0`` every exact nonzero is counted.
    """
    threshold = tol * d_norm / np.sqrt(E.size)
    return np.abs(E) > threshold


class _IncrementSolver:
    """Least-squares parameter increment restricted to ``null(S)``.

    Solves ``min ||J @ dtau - r||`` subject to ``S @ dtau = 0`` by writing
    ``dtau = N @ z`` with ``N`` an orthonormal basis of the null space of
    ``S`` and applying the pseudo-inverse of ``J @ N``. The pseudo-inverse
    is computed once per subproblem; rank-deficient normal equations get
    the minimum-norm solution.
    """

    def __init__(self, J: np.ndarray, S: np.ndarray) -> None:
        p = J.shape[1]
        if S.shape[0] == 0:
            basis = np.eye(p)
        else:
            basis = linalg.null_space(S)
        self._basis = basis
        if basis.shape[1] == 0 or p == 0:
            self._pinv = None
        else:
            self._pinv = linalg.pinv(J @ basis)
            if not np.all(np.isfinite(self._pinv)):
                raise NumericalSingularityError(
                    "Pseudo-inverse of the constrained Jacobian is not finite"
                )
        self._p = p

    def __call__(self, rhs: np.ndarray) -> np.ndarray:
        if self._pinv is None:
            return np.zeros(self._p)
        dtau = self._basis @ (self._pinv @ rhs)
        if not np.all(np.isfinite(dtau)):
            raise NumericalSingularityError(
                "Parameter increment is not finite"
            )
        return dtau


@dataclass
class InnerSolution:
    """Result of one inner solve.

    Attributes
    ----------
    A : np.ndarray
        Low-rank component, shape (m, n).
    E : np.ndarray
        Sparse error, shape (m, n).
    delta_tau : np.ndarray
        Parameter increment, shape (p,).
    Y : np.ndarray
        Final multiplier, flattened to shape (m * n,).
    mu : float
        Final penalty.
    f : float
        ``||A||_* + lambda * ||E||_1``.
    error_sign : bool
        True when the decomposition is degenerate.
    iterations : int
        Inner iterations performed.
    converged : bool
        Whether both tolerances were met before the iteration cap.
    primal_residual : float
        Final ``||D + J dtau - A - E||_F / ||D||_F``.
    rank : int
        Numerical rank of ``A``.
    reason : str
        Empty, or why the result is degenerate.
    """

    A: np.ndarray
    E: np.ndarray
    delta_tau: np.ndarray
    Y: np.ndarray
    mu: float
    f: float
    error_sign: bool
    iterations: int
    converged: bool
    primal_residual: float
    rank: int = 0
    reason: str = ''


@solver_version('1.0.0')
class LowRankSparseSolver:
    """Adaptive-penalty alternating direction solver for one linearization.

    Parameters
    ----------
    config : SolverConfig, optional
        Inner-loop options (``inner_*``, ``degenerate_tol``,
        ``max_sparse_fraction``, ``sparse_support_tol``). Defaults to
        ``SolverConfig()``.

    Examples
    --------
    >>> solver = LowRankSparseSolver()
    >>> D = np.outer(np.arange(1, 6), np.ones(4)); D /= np.linalg.norm(D)
    >>> J = np.zeros((20, 2)); S = np.zeros((0, 2))
    >>> sol = solver.solve(D, D, np.zeros_like(D), np.zeros(20), 1.25, J, S)
    >>> sol.error_sign
    False
    """

    def __init__(self, config: Optional[SolverConfig] = None) -> None:
        self.config = config if config is not None else SolverConfig()

    def solve(
        self,
        D: np.ndarray,
        A0: np.ndarray,
        E0: np.ndarray,
        Y0: np.ndarray,
        mu0: float,
        J: np.ndarray,
        S: Optional[np.ndarray] = None,
    ) -> InnerSolution:
        """Run the inner iterations to convergence or the iteration cap.

        Parameters
        ----------
        D : np.ndarray
            Normalized patch, shape (m, n).
        A0, E0 : np.ndarray
            Initial low-rank and sparse parts, shape (m, n) or (m * n,).
        Y0 : np.ndarray
            Initial multiplier, shape (m * n,) or (m, n).
        mu0 : float
            Initial penalty, > 0.
        J : np.ndarray
            Jacobian, shape (m * n, p).
        S : np.ndarray, optional
            Constraint matrix, shape (k, p); None or zero rows for none.

        Returns
        -------
        InnerSolution

        Raises
        ------
        ValidationError
            If shapes are inconsistent or ``mu0`` is not positive.
        """
        cfg = self.config
        D, A, E, Y, J, S = self._validate(D, A0, E0, Y0, mu0, J, S)
        m, n = D.shape
        p = J.shape[1]
        lam = cfg.sparsity_weight(m)
        mu = float(mu0)

        d_norm = float(np.linalg.norm(D))
        if d_norm == 0.0 or not np.isfinite(d_norm):
            return self._degenerate(D, A, E, np.zeros(p), Y, mu, 0, 1.0,
                                    'patch has zero or non-finite norm')

        try:
            increment = _IncrementSolver(J, S)
        except NumericalSingularityError as exc:
            return self._degenerate(D, A, E, np.zeros(p), Y, mu, 0, 1.0,
                                    str(exc))

        dtau = np.zeros(p)
        Jdtau = np.zeros_like(D)
        singular_values = np.zeros(0)
        converged = False
        primal = np.inf
        iteration = 0

        for iteration in range(1, cfg.inner_max_iter + 1):
            A_prev, E_prev, Jdtau_prev = A, E, Jdtau

            A, singular_values = singular_value_threshold(
                D + Jdtau - E + Y / mu, 1.0 / mu
            )
            E = soft_threshold(D + Jdtau - A + Y / mu, lam / mu)
            try:
                dtau = increment((A + E - D - Y / mu).ravel())
            except NumericalSingularityError as exc:
                return self._degenerate(D, A, E, dtau, Y, mu, iteration,
                                        primal, str(exc))
            Jdtau = (J @ dtau).reshape(m, n)

            residual = D + Jdtau - A - E
            Y = Y + mu * residual

            primal = float(np.linalg.norm(residual)) / d_norm
            change = mu * max(
                float(np.linalg.norm(A - A_prev)),
                float(np.linalg.norm(E - E_prev)),
                float(np.linalg.norm(Jdtau - Jdtau_prev)),
            ) / d_norm

            if not (np.isfinite(primal) and np.isfinite(change)
                    and np.all(np.isfinite(Y))):
                return self._degenerate(D, A, E, dtau, Y, mu, iteration,
                                        primal, 'iterates became non-finite')

            if iteration % cfg.inner_display_period == 0:
                logger.debug(
                    "inner %d: mu=%.4g, primal=%.3e, change=%.3e, "
                    "rank(A)=%d, nnz(E)=%d",
                    iteration, mu, primal, change,
                    singular_values.size, int(np.count_nonzero(E)),
                )

            if primal < cfg.inner_tol1 and change < cfg.inner_tol2:
                converged = True
                break

            if change < cfg.inner_tol2:
                mu = min(mu * cfg.inner_rho, cfg.inner_mu_max)

        if not converged:
            logger.warning(
                "Inner solver stopped at the iteration cap (%d) with "
                "primal residual %.3e", iteration, primal,
            )

        reason = self._degeneracy_reason(A, E, d_norm)
        if reason:
            return self._degenerate(D, A, E, dtau, Y, mu, iteration, primal,
                                    reason)

        f = float(singular_values.sum() + lam * np.abs(E).sum())
        return InnerSolution(
            A=A,
            E=E,
            delta_tau=dtau,
            Y=Y.ravel(),
            mu=mu,
            f=f,
            error_sign=False,
            iterations=iteration,
            converged=converged,
            primal_residual=primal,
            rank=int(singular_values.size),
        )

    def _degeneracy_reason(
        self, A: np.ndarray, E: np.ndarray, d_norm: float
    ) -> str:
        """Describe why ``(A, E)`` is a trivial decomposition, or ''."""
        if float(np.linalg.norm(A)) <= self.config.degenerate_tol * d_norm:
            return 'low-rank component collapsed to zero'
        sparse_fraction = sparse_support(
            E, d_norm, self.config.sparse_support_tol
        ).mean()
        if sparse_fraction > self.config.max_sparse_fraction:
            return (
                f'sparse component saturated ({sparse_fraction:.0%} of '
                f'entries in its support)'
            )
        return ''

    def _degenerate(
        self,
        D: np.ndarray,
        A: np.ndarray,
        E: np.ndarray,
        dtau: np.ndarray,
        Y: np.ndarray,
        mu: float,
        iterations: int,
        primal: float,
        reason: str,
    ) -> InnerSolution:
        logger.warning("Inner solver detected a degenerate solution: %s",
                       reason)
        return InnerSolution(
            A=A,
            E=E,
            delta_tau=dtau,
            Y=np.asarray(Y).ravel(),
            mu=mu,
            f=float('nan'),
            error_sign=True,
            iterations=iterations,
            converged=False,
            primal_residual=float(primal),
            rank=0,
            reason=reason,
        )

    @staticmethod
    def _validate(D, A0, E0, Y0, mu0, J, S):
        D = np.asarray(D, dtype=np.float64)
        if D.ndim != 2 or D.size == 0:
            raise ValidationError(
                f"D must be a non-empty 2D array, got shape {D.shape}"
            )
        m, n = D.shape
        size = m * n

        def _as_patch(arr, name):
            arr = np.asarray(arr, dtype=np.float64)
            if arr.size != size:
                raise ValidationError(
                    f"{name} has {arr.size} entries, expected {size}"
                )
            return arr.reshape(m, n).copy()

        A = _as_patch(A0, 'A0')
        E = _as_patch(E0, 'E0')
        Y = _as_patch(Y0, 'Y0')

        if not np.isfinite(mu0) or mu0 <= 0.0:
            raise ValidationError(f"mu0 must be positive, got {mu0!r}")

        J = np.asarray(J, dtype=np.float64)
        if J.ndim != 2 or J.shape[0] != size:
            raise ValidationError(
                f"J must have shape ({size}, p), got {J.shape}"
            )
        p = J.shape[1]
        if S is None:
            S = np.zeros((0, p))
        S = np.asarray(S, dtype=np.float64)
        if S.ndim != 2 or S.shape[1] != p:
            raise ValidationError(
                f"S must have shape (k, {p}), got {S.shape}"
            )
        return D, A, E, Y, J, S
