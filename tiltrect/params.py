# -*- coding: utf-8 -*-
"""
Solver Options - Validated, immutable option sets declared with typing.Annotated.

Options are class-body fields of a ``TunableConfig`` subclass, annotated
with ``Range`` bounds and a ``Desc`` text. Each subclass gets a
``__param_specs__`` tuple describing its options and accepts every option
as a keyword argument. Values are checked once, at construction, so
solver code can read them without further validation.

Usage
-----
    from typing import Annotated, Optional
    from tiltrect.params import Desc, Range, TunableConfig

    class LoopConfig(TunableConfig):
        tol: Annotated[float, Range(min=0.0, exclusive_min=True),
                       Desc('Stopping tolerance')] = 1e-4
        mu: Annotated[Optional[float], Range(min=0.0, exclusive_min=True),
                      Desc('Initial penalty, None to derive it')] = None

A ``None`` default with an ``Optional`` hint marks an option that is
resolved from the data at run time.

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
import inspect
from typing import (
    Annotated,
    Any,
    Dict,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

Number = Union[int, float]


class ParamMeta:
    """Marker base: an ``Annotated`` field carrying one of these is an option."""


class Range(ParamMeta):
    """Bounds on a numeric option.

    Parameters
    ----------
    min, max : int or float, optional
        Inclusive bounds.
    exclusive_min : bool
        Reject ``min`` itself, for options that must be strictly positive.
    """

    __slots__ = ('min', 'max', 'exclusive_min')

    def __init__(
        self,
        min: Optional[Number] = None,
        max: Optional[Number] = None,
        exclusive_min: bool = False,
    ) -> None:
        self.min = min
        self.max = max
        self.exclusive_min = exclusive_min

    def __repr__(self) -> str:
        bounds = [f"{k}={getattr(self, k)!r}" for k in ('min', 'max')
                  if getattr(self, k) is not None]
        if self.exclusive_min:
            bounds.append('exclusive_min=True')
        return f"Range({', '.join(bounds)})"


class Desc(ParamMeta):
    """One-line description of an option."""

    __slots__ = ('text',)

    def __init__(self, text: str) -> None:
        self.text = text

    def __repr__(self) -> str:
        return f"Desc({self.text!r})"


class ParamSpec:
    """Everything known about one option of a ``TunableConfig``.

    Attributes
    ----------
    name : str
        Keyword name.
    param_type : type
        ``float``, ``int``, ``bool`` or ``str``.
    default : Any
        Value used when the keyword is omitted.
    description : str
        Text from ``Desc``.
    min_value, max_value : int, float or None
        Bounds from ``Range``.
    exclusive_min : bool
        Whether ``min_value`` is excluded.
    nullable : bool
        Whether ``None`` is accepted.
    """

    __slots__ = (
        'name', 'param_type', 'default', 'has_default', 'description',
        'min_value', 'max_value', 'exclusive_min', 'nullable',
    )

    def __init__(
        self,
        name: str,
        param_type: type,
        default: Any,
        has_default: bool,
        description: str = '',
        min_value: Optional[Number] = None,
        max_value: Optional[Number] = None,
        exclusive_min: bool = False,
        nullable: bool = False,
    ) -> None:
        self.name = name
        self.param_type = param_type
        self.default = default
        self.has_default = has_default
        self.description = description
        self.min_value = min_value
        self.max_value = max_value
        self.exclusive_min = exclusive_min
        self.nullable = nullable

    @classmethod
    def from_hint(cls, name: str, hint: Any, owner: type) -> Optional['ParamSpec']:
        """Build the spec of field *name* of *owner*, or None if not an option."""
        if get_origin(hint) is not Annotated:
            return None
        metas = [m for m in hint.__metadata__ if isinstance(m, ParamMeta)]
        if not metas:
            return None
        bounds = next((m for m in metas if isinstance(m, Range)), Range())
        desc = next((m.text for m in metas if isinstance(m, Desc)), '')

        inner = get_args(hint)[0]
        nullable = False
        if get_origin(inner) is Union:
            members = [a for a in get_args(inner) if a is not type(None)]
            if len(members) == 1:
                inner, nullable = members[0], True

        has_default = any(name in vars(k) for k in owner.__mro__)
        return cls(
            name, inner, getattr(owner, name, None), has_default,
            description=desc,
            min_value=bounds.min,
            max_value=bounds.max,
            exclusive_min=bounds.exclusive_min,
            nullable=nullable,
        )

    def _check_type(self, value: Any) -> None:
        # bool is an int subclass but never a number here
        if self.param_type in (int, float):
            allowed = (int, float) if self.param_type is float else (int,)
            ok = isinstance(value, allowed) and not isinstance(value, bool)
        else:
            ok = isinstance(value, self.param_type)
        if not ok:
            raise TypeError(
                f"Option '{self.name}' expects {self.param_type.__name__}, "
                f"got {type(value).__name__}"
            )

    def validate(self, value: Any) -> None:
        """Check *value* against the type and bounds of this option.

        Raises
        ------
        TypeError
            On a wrong type, or ``None`` for a non-nullable option.
        ValueError
            On a value outside the bounds.
        """
        if value is None:
            if not self.nullable:
                raise TypeError(f"Option '{self.name}' must not be None")
            return
        self._check_type(value)
        low, high = self.min_value, self.max_value
        if low is not None:
            if self.exclusive_min and value <= low:
                raise ValueError(
                    f"Option '{self.name}' must be greater than {low!r}, "
                    f"got {value!r}"
                )
            if value < low:
                raise ValueError(
                    f"Option '{self.name}' must be at least {low!r}, "
                    f"got {value!r}"
                )
        if high is not None and value > high:
            raise ValueError(
                f"Option '{self.name}' must be at most {high!r}, got {value!r}"
            )

    def __repr__(self) -> str:
        return (f"ParamSpec({self.name!r}, {self.param_type.__name__}, "
                f"default={self.default!r})")


def collect_param_specs(cls: type) -> Tuple[ParamSpec, ...]:
    """Options of *cls*, base classes first, in declaration order."""
    hints = get_type_hints(cls, include_extras=True)
    names: Dict[str, None] = {}
    for klass in reversed(cls.__mro__):
        for name in getattr(klass, '__annotations__', {}):
            names.setdefault(name, None)
    specs = (ParamSpec.from_hint(n, hints[n], cls) for n in names if n in hints)
    return tuple(s for s in specs if s is not None)


class TunableConfig:
    """Base class for validated, immutable option sets.

    Instances compare equal when they are the same class with the same
    values. ``replace`` derives a modified, re-validated copy.
    """

    __param_specs__: Tuple[ParamSpec, ...] = ()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        cls.__param_specs__ = collect_param_specs(cls)
        cls.__signature__ = inspect.Signature([
            inspect.Parameter(
                s.name, inspect.Parameter.KEYWORD_ONLY,
                default=s.default if s.has_default else inspect.Parameter.empty,
            )
            for s in cls.__param_specs__
        ])

    def __init__(self, **kwargs: Any) -> None:
        specs = type(self).__param_specs__
        unknown = sorted(set(kwargs) - {s.name for s in specs})
        if unknown:
            raise TypeError(
                f"{type(self).__name__}() got unexpected keyword arguments: "
                f"{', '.join(unknown)}"
            )
        for spec in specs:
            if spec.name not in kwargs and not spec.has_default:
                raise TypeError(
                    f"{type(self).__name__}() missing option '{spec.name}'"
                )
            value = kwargs.get(spec.name, spec.default)
            spec.validate(value)
            object.__setattr__(self, spec.name, value)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(
            f"{type(self).__name__} is immutable; use replace({name}=...)"
        )

    def as_dict(self) -> Dict[str, Any]:
        """``{name: value}`` for every option."""
        return {s.name: getattr(self, s.name) for s in type(self).__param_specs__}

    def replace(self, **changes: Any) -> 'TunableConfig':
        """Copy with *changes* applied; raises like the constructor."""
        return type(self)(**{**self.as_dict(), **changes})

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.as_dict() == other.as_dict()

    def __hash__(self) -> int:
        return hash((type(self), tuple(self.as_dict().items())))

    def __repr__(self) -> str:
        body = ', '.join(f"{k}={v!r}" for k, v in self.as_dict().items())
        return f"{type(self).__name__}({body})"
