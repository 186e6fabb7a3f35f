"""Prior distributions for model parameters

A prior contributes its negative log density (up to a constant) to the
objective function of the generated ADMB model.
"""

from __future__ import annotations

import math
import re
from typing import Any

from pyadmb.internals.immutable import Immutable


def _format_number(x: float) -> str:
    # Shortest representation that round-trips, keeps rendering deterministic
    return repr(float(x))


class Prior(Immutable):
    """Base class for all priors"""

    kind: str = ''
    argnames: tuple[str, ...] = ()

    def __init__(self, *args: float):
        self._args = tuple(float(a) for a in args)

    @property
    def args(self) -> tuple[float, ...]:
        return self._args

    def validate(self):
        for name, value in zip(self.argnames, self._args):
            if not math.isfinite(value):
                raise ValueError(f'Argument {name} of {self.kind} prior must be finite')

    def in_support(self, x: float) -> bool:
        return True

    def negative_log_density(self, name: str) -> str:
        """ADMB expression for the negative log density of parameter *name*"""
        raise NotImplementedError()

    def to_dict(self) -> dict[str, Any]:
        return {'kind': self.kind, **dict(zip(self.argnames, self._args))}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Prior:
        d = dict(d)
        kind = d.pop('kind')
        prior_class = _prior_class(kind)
        return prior_class.create(*(d[name] for name in prior_class.argnames))

    @classmethod
    def create(cls, *args: float):
        if len(args) != len(cls.argnames):
            raise ValueError(
                f'{cls.kind} prior takes {len(cls.argnames)} arguments '
                f'({", ".join(cls.argnames)}), got {len(args)}'
            )
        prior = cls(*args)
        prior.validate()
        return prior

    def __eq__(self, other):
        return isinstance(other, Prior) and self.kind == other.kind and self._args == other._args

    def __hash__(self):
        return hash((self.kind, self._args))

    def __repr__(self):
        return f'{self.kind}({", ".join(_format_number(a) for a in self._args)})'


class NormalPrior(Prior):
    kind = 'normal'
    argnames = ('mean', 'sd')

    def validate(self):
        super().validate()
        if self._args[1] <= 0:
            raise ValueError('Standard deviation of normal prior must be positive')

    def negative_log_density(self, name):
        mean, sd = map(_format_number, self._args)
        return f'0.5 * square(({name} - {mean}) / {sd})'


class LogNormalPrior(Prior):
    """Lognormal prior with *mean* and *sd* given on the log scale"""

    kind = 'lognormal'
    argnames = ('mean', 'sd')

    def validate(self):
        super().validate()
        if self._args[1] <= 0:
            raise ValueError('Standard deviation of lognormal prior must be positive')

    def in_support(self, x):
        return x > 0

    def negative_log_density(self, name):
        mean, sd = map(_format_number, self._args)
        return f'log({name}) + 0.5 * square((log({name}) - {mean}) / {sd})'


class UniformPrior(Prior):
    kind = 'uniform'
    argnames = ('lower', 'upper')

    def validate(self):
        super().validate()
        if self._args[0] >= self._args[1]:
            raise ValueError('Lower limit of uniform prior must be less than upper limit')

    def in_support(self, x):
        return self._args[0] <= x <= self._args[1]

    def negative_log_density(self, name):
        # Constant within the support, the parameter bounds take care of the rest
        return None


class GammaPrior(Prior):
    kind = 'gamma'
    argnames = ('shape', 'scale')

    def validate(self):
        super().validate()
        if self._args[0] <= 0 or self._args[1] <= 0:
            raise ValueError('Shape and scale of gamma prior must be positive')

    def in_support(self, x):
        return x > 0

    def negative_log_density(self, name):
        shape, scale = self._args
        # Coefficients in parentheses, they can be negative
        return f'{name} / {_format_number(scale)} + ({_format_number(1.0 - shape)}) * log({name})'


class BetaPrior(Prior):
    kind = 'beta'
    argnames = ('a', 'b')

    def validate(self):
        super().validate()
        if self._args[0] <= 0 or self._args[1] <= 0:
            raise ValueError('Parameters of beta prior must be positive')

    def in_support(self, x):
        return 0 < x < 1

    def negative_log_density(self, name):
        a, b = self._args
        return (
            f'({_format_number(1.0 - a)}) * log({name}) '
            f'+ ({_format_number(1.0 - b)}) * log(1.0 - {name})'
        )


_priors = {cls.kind: cls for cls in (NormalPrior, LogNormalPrior, UniformPrior, GammaPrior, BetaPrior)}

_descriptor = re.compile(r'^\s*([A-Za-z]+)\s*\(([^()]*)\)\s*$')


def _prior_class(kind: str):
    try:
        return _priors[kind.lower()]
    except KeyError:
        raise ValueError(
            f'Unknown prior distribution "{kind}". Available: {", ".join(sorted(_priors))}'
        ) from None


def parse_prior(descriptor: str) -> Prior:
    """Create a prior from a descriptor string

    Example
    -------
    >>> from pyadmb.model import parse_prior
    >>> parse_prior("lognormal(-0.7, 0.3)")
    lognormal(-0.7, 0.3)
    """
    m = _descriptor.match(descriptor)
    if not m:
        raise ValueError(f'Could not parse prior descriptor "{descriptor}"')
    prior_class = _prior_class(m.group(1))
    args = [a.strip() for a in m.group(2).split(',') if a.strip()]
    try:
        values = [float(a) for a in args]
    except ValueError:
        raise ValueError(f'Arguments of prior "{descriptor}" must be numbers') from None
    return prior_class.create(*values)


def create_prior(prior) -> Prior | None:
    if prior is None or isinstance(prior, Prior):
        return prior
    if isinstance(prior, str):
        return parse_prior(prior)
    if isinstance(prior, dict):
        return Prior.from_dict(prior)
    raise TypeError(f'Cannot create prior from object of type {type(prior)}')
