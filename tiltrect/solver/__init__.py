# -*- coding: utf-8 -*-
"""
Solver Module - Low-rank/sparse decomposition and transform refinement.

Key Classes
-----------
- LowRankSparseSolver: adaptive-penalty solver for one linearized problem
- InnerSolution: result of one inner solve
- RefineResult: result of the outer refinement loop
- IterationRecord: per-iteration snapshot handed to observers

Usage
-----
    >>> from tiltrect.solver import refine
    >>> result = refine(image, 'affine', center=(120, 80), focus_size=(60, 60))
    >>> result.raise_for_status().transform

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

from tiltrect.solver.inner import (
    InnerSolution,
    LowRankSparseSolver,
    singular_value_threshold,
    soft_threshold,
    sparse_support,
)
from tiltrect.solver.outer import (
    IterationRecord,
    RefineResult,
    project_multiplier,
    refine,
)

__all__ = [
    'InnerSolution',
    'LowRankSparseSolver',
    'singular_value_threshold',
    'soft_threshold',
    'sparse_support',
    'IterationRecord',
    'RefineResult',
    'project_multiplier',
    'refine',
]
