# -*- coding: utf-8 -*-
"""
Solver Configuration - Validated option sets for refinement and rectification.

``SolverConfig`` carries every option of the outer refinement loop and the
inner low-rank/sparse solver. ``RectifyConfig`` carries the driver-level
options (blur, image pyramid, translation freedom). Both are constructed
once, validated once, and never mutated; every option resolves to its
documented default when omitted.

Usage
-----
    >>> from tiltrect.config import SolverConfig
    >>> cfg = SolverConfig(outer_tol=1e-5, warm_start=False)
    >>> cfg.inner_rho
    4.0
    >>> tighter = cfg.replace(inner_tol1=1e-8)

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
import math
from typing import Annotated, Optional

# tiltrect internal
from tiltrect.params import Desc, Range, TunableConfig


class SolverConfig(TunableConfig):
    """Options of the outer refinement loop and the inner solver.

    Attributes
    ----------
    outer_tol : float
        Stop when the objective changes by less than this between outer
        iterations.
    outer_max_iter : int
        Hard cap on outer iterations.
    outer_display_period : int
        Log outer progress every this many iterations.
    inner_c : float
        Sparsity weight scale; ``lambda = inner_c / sqrt(rows)``.
    inner_lambda : float or None
        Explicit sparsity weight overriding ``inner_c``.
    inner_mu : float or None
        Initial penalty for cold starts; None selects ``1.25 / ||D||_2``.
    inner_mu_max : float
        Upper bound on the penalty.
    inner_rho : float
        Multiplicative penalty growth factor.
    inner_tol1 : float
        Relative primal residual tolerance.
    inner_tol2 : float
        Relative iterate-change tolerance; also the stall threshold that
        triggers penalty growth.
    inner_max_iter : int
        Hard cap on inner iterations.
    inner_display_period : int
        Log inner progress every this many iterations.
    warm_start : bool
        Reuse the previous decomposition and projected multiplier.
    warm_start_rho_power : float
        Warm starts seed the penalty with ``mu_prev / inner_rho ** power``.
    degenerate_tol : float
        The run is degenerate when ``||A||_F <= degenerate_tol * ||D||_F``.
    max_sparse_fraction : float
        The run is degenerate when more than this fraction of ``E`` is
        in its support.
    sparse_support_tol : float
        An entry of ``E`` is in the support when its magnitude exceeds
        ``sparse_support_tol`` times the RMS value of ``D``. Zero counts
        every exact nonzero.
    """

    outer_tol: Annotated[float, Range(min=0.0, exclusive_min=True),
                         Desc('Outer objective-change tolerance')] = 1e-4
    outer_max_iter: Annotated[int, Range(min=1, max=100000),
                              Desc('Maximum outer iterations')] = 50
    outer_display_period: Annotated[int, Range(min=1),
                                    Desc('Outer logging period')] = 1
    inner_c: Annotated[float, Range(min=0.0, exclusive_min=True),
                       Desc('Sparsity weight scale, lambda = c / sqrt(m)')] = 1.0
    inner_lambda: Annotated[Optional[float], Range(min=0.0, exclusive_min=True),
                            Desc('Explicit sparsity weight')] = None
    inner_mu: Annotated[Optional[float], Range(min=0.0, exclusive_min=True),
                        Desc('Initial penalty for cold starts')] = None
    inner_mu_max: Annotated[float, Range(min=0.0, exclusive_min=True),
                            Desc('Upper bound on the penalty')] = 1e10
    inner_rho: Annotated[float, Range(min=1.0, max=100.0, exclusive_min=True),
                         Desc('Penalty growth factor')] = 4.0
    inner_tol1: Annotated[float, Range(min=0.0, exclusive_min=True),
                          Desc('Primal residual tolerance')] = 1e-7
    inner_tol2: Annotated[float, Range(min=0.0, exclusive_min=True),
                          Desc('Iterate change tolerance')] = 1e-2
    inner_max_iter: Annotated[int, Range(min=1, max=1000000),
                              Desc('Maximum inner iterations')] = 1000
    inner_display_period: Annotated[int, Range(min=1),
                                    Desc('Inner logging period')] = 100
    warm_start: Annotated[bool, Desc('Warm-start inner solves')] = True
    warm_start_rho_power: Annotated[float, Range(min=0.0, max=64.0),
                                    Desc('Warm-start penalty de-escalation power')] = 8.0
    degenerate_tol: Annotated[float, Range(min=0.0, max=1.0),
                              Desc('Relative norm below which A has collapsed')] = 1e-6
    max_sparse_fraction: Annotated[float, Range(min=0.0, max=1.0, exclusive_min=True),
                                   Desc('Largest admissible nonzero fraction of E')] = 0.95
    sparse_support_tol: Annotated[float, Range(min=0.0, max=1.0),
                                  Desc('Relative magnitude of a supported entry of E')] = 1e-3

    def sparsity_weight(self, rows: int) -> float:
        """Resolve lambda for a patch with *rows* rows."""
        if self.inner_lambda is not None:
            return float(self.inner_lambda)
        return float(self.inner_c) / math.sqrt(rows)

    @property
    def warm_start_mu_divisor(self) -> float:
        """Factor dividing the previous final penalty on warm starts."""
        return float(self.inner_rho) ** float(self.warm_start_rho_power)


class RectifyConfig(TunableConfig):
    """Driver options wrapped around the refinement loop.

    Attributes
    ----------
    no_translation : bool
        Select the no-translation variant of the transform family.
    blur : bool
        Gaussian-blur the input before refinement.
    blur_sigma_k : float
        Blur standard deviation scale.
    blur_size_k : float
        Blur kernel extent scale (kernel half-width in sigmas).
    pyramid : bool
        Refine coarse-to-fine on a dyadic image pyramid.
    focus_threshold : int
        Smallest focus edge length tolerated at the coarsest level.
    pyramid_max_level : int
        Number of pyramid levels (from the coarsest) that are refined.
    outer_tol_step : float
        ``outer_tol`` is multiplied by this after every pyramid level.
    """

    no_translation: Annotated[bool, Desc('Freeze translation')] = True
    blur: Annotated[bool, Desc('Blur the input image')] = True
    blur_sigma_k: Annotated[float, Range(min=0.0, exclusive_min=True),
                            Desc('Blur sigma scale')] = 3.0
    blur_size_k: Annotated[float, Range(min=0.0, exclusive_min=True),
                           Desc('Blur kernel extent scale')] = 3.0
    pyramid: Annotated[bool, Desc('Coarse-to-fine refinement')] = True
    focus_threshold: Annotated[int, Range(min=4),
                               Desc('Smallest focus edge at the coarsest level')] = 50
    pyramid_max_level: Annotated[int, Range(min=1, max=16),
                                 Desc('Pyramid levels refined')] = 2
    outer_tol_step: Annotated[float, Range(min=0.0, exclusive_min=True),
                              Desc('Outer tolerance relaxation per level')] = 10.0
