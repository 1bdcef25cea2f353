# -*- coding: utf-8 -*-
"""
tiltrect Exception Hierarchy - Domain-specific exceptions for rectification.

Provides a small exception hierarchy that lets callers catch rectification
errors distinctly from Python built-in exceptions. All tiltrect exceptions
subclass both ``TiltError`` and the appropriate built-in exception so that
existing ``except ValueError`` style handlers keep working.

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


class TiltError(Exception):
    """Base exception for all tiltrect errors."""


class ValidationError(TiltError, ValueError):
    """Invalid input data, parameters, or configuration.

    Raised before any iteration begins for empty focus windows,
    non-positive tolerances, mismatched image/derivative shapes, unknown
    transform families and malformed transform matrices.
    """


class DegenerateSolutionError(TiltError, RuntimeError):
    """The low-rank/sparse decomposition collapsed to a trivial solution.

    Raised by ``RefineResult.raise_for_status()`` when a run ended with
    ``error_sign`` set. The arrays carried by such a result are shaped
    correctly but meaningless.
    """


class NumericalSingularityError(TiltError, ArithmeticError):
    """The parameter-increment solve produced a non-finite result.

    Rank-deficient normal equations are handled with a pseudo-inverse;
    this is raised only when that also fails. The inner solver converts
    it into a degenerate result.
    """
