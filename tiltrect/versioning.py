# -*- coding: utf-8 -*-
"""
Solver Versioning - Version stamping for numerical solver classes.

Provides the ``solver_version`` class decorator. The stamped version is
the single source of truth for the algorithm revision a result was
produced with; ``refine`` copies it into every ``RefineResult``.

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
from typing import Optional, Type, TypeVar
import importlib.metadata

T = TypeVar('T')


def solver_version(version: Optional[str] = None):
    """Class decorator that stamps a solver version on a class.

    Sets ``__solver_version__`` as a class attribute. If *version* is not
    provided it is inferred from the installed ``tiltrect`` package
    metadata, falling back to ``'unknown'`` for source checkouts.

    Parameters
    ----------
    version : str, optional
        Semantic version string (e.g., ``'1.0.0'``).

    Returns
    -------
    Callable
        Class decorator that sets ``__solver_version__`` on the class.

    Examples
    --------
    >>> @solver_version('1.0.0')
    ... class MySolver:
    ...     pass
    >>> MySolver.__solver_version__
    '1.0.0'
    """
    def decorator(cls: Type[T]) -> Type[T]:
        if version:
            cls.__solver_version__ = version
        else:
            try:
                cls.__solver_version__ = importlib.metadata.version('tiltrect')
            except importlib.metadata.PackageNotFoundError:
                cls.__solver_version__ = "unknown"
        return cls
    return decorator
