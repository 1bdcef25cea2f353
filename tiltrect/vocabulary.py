# -*- coding: utf-8 -*-
"""
Vocabulary - Enumerations shared across the rectification engine.

``TransformFamily`` is the closed set of geometric models the solver can
estimate. Every site that depends on the parameter dimension dispatches on
``TransformFamily.base`` through a table that is checked for completeness
at import time, so adding a family without updating those tables fails
immediately.

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

from enum import Enum
from typing import Union

from tiltrect.exceptions import ValidationError


class TransformFamily(Enum):
    """Parametric class of the geometric map being estimated.

    Members come in pairs: the full family and its ``_NOTRANSLATION``
    variant, which keeps the same parameter vector but freezes the
    translation parameters through extra rows of the constraint matrix.
    """

    EUCLIDEAN = "euclidean"
    EUCLIDEAN_NOTRANSLATION = "euclidean_notranslation"
    AFFINE = "affine"
    AFFINE_NOTRANSLATION = "affine_notranslation"
    HOMOGRAPHY = "homography"
    HOMOGRAPHY_NOTRANSLATION = "homography_notranslation"

    @property
    def base(self) -> 'TransformFamily':
        """The translation-free-agnostic family (``EUCLIDEAN``, ``AFFINE``
        or ``HOMOGRAPHY``)."""
        return TransformFamily(self.value.replace('_notranslation', ''))

    @property
    def fixes_translation(self) -> bool:
        """Whether translation increments are constrained to zero."""
        return self.value.endswith('_notranslation')

    def with_translation(self, allowed: bool) -> 'TransformFamily':
        """Return the variant of this family with or without translation.

        Parameters
        ----------
        allowed : bool
            True for the full family, False for the no-translation variant.

        Returns
        -------
        TransformFamily
        """
        base = self.base
        if allowed:
            return base
        return TransformFamily(base.value + '_notranslation')

    @classmethod
    def parse(cls, family: Union[str, 'TransformFamily']) -> 'TransformFamily':
        """Coerce a family name or member to a ``TransformFamily``.

        Parameters
        ----------
        family : str or TransformFamily
            Case-insensitive name such as ``'affine'`` or
            ``'homography_notranslation'``.

        Returns
        -------
        TransformFamily

        Raises
        ------
        ValidationError
            If *family* does not name a known family.
        """
        if isinstance(family, cls):
            return family
        if isinstance(family, str):
            try:
                return cls(family.strip().lower())
            except ValueError:
                pass
        names = ', '.join(repr(m.value) for m in cls)
        raise ValidationError(
            f"Unknown transform family {family!r}; expected one of {names}"
        )


#: The families that own a distinct parameterization.
BASE_FAMILIES = (
    TransformFamily.EUCLIDEAN,
    TransformFamily.AFFINE,
    TransformFamily.HOMOGRAPHY,
)


class RefineStatus(Enum):
    """Terminal state of an outer refinement run.

    ``CONVERGED`` and ``MAX_ITER_REACHED`` are both successful; only
    ``DEGENERATE`` marks a failed run.
    """

    CONVERGED = "converged"
    MAX_ITER_REACHED = "max_iter_reached"
    DEGENERATE = "degenerate"

    @property
    def ok(self) -> bool:
        """Whether the run produced a usable decomposition."""
        return self is not RefineStatus.DEGENERATE
