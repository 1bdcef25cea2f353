# -*- coding: utf-8 -*-
"""
tiltrect - Transform Invariant Low-rank Texture rectification.

Recovers the geometric transform that maps a region of an image onto its
frontal, low-rank appearance, together with the low-rank texture and the
sparse corruption separating it from the observed pixels.

Dependencies
------------
numpy
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

__version__ = "0.1.0"

from tiltrect.exceptions import (
    TiltError,
    ValidationError,
    DegenerateSolutionError,
    NumericalSingularityError,
)
from tiltrect.vocabulary import (
    TransformFamily,
    RefineStatus,
)
from tiltrect.config import SolverConfig, RectifyConfig
from tiltrect.geometry import OutputWindow
from tiltrect.solver import (
    IterationRecord,
    LowRankSparseSolver,
    RefineResult,
    refine,
)
from tiltrect.rectify import rectify

__all__ = [
    'TiltError',
    'ValidationError',
    'DegenerateSolutionError',
    'NumericalSingularityError',
    'TransformFamily',
    'RefineStatus',
    'SolverConfig',
    'RectifyConfig',
    'OutputWindow',
    'IterationRecord',
    'LowRankSparseSolver',
    'RefineResult',
    'refine',
    'rectify',
]
