from __future__ import annotations

import math
from collections.abc import Sequence as CollectionsSequence
from typing import TYPE_CHECKING, Any, Optional, Sequence, Union, overload

from pyadmb.internals.immutable import Immutable

from .priors import Prior, create_prior

if TYPE_CHECKING:
    import pandas as pd
else:
    from pyadmb.deps import pandas as pd


class Parameter(Immutable):
    """A single estimated parameter

    Example
    -------

    >>> from pyadmb.model import Parameter
    >>> param = Parameter.create("r", 0.5, lower=0.2, upper=0.8)
    >>> param.init
    0.5

    Parameters
    ----------
    name : str
        Name of the parameter. Used as the variable name in the generated template
    init : float
        Initial estimate
    lower : float
        The lower bound of the parameter
    upper : float
        The upper bound of the parameter
    prior : Prior
        Prior distribution or None for no prior
    phase : int
        Estimation phase. Parameters in phase 1 are estimated first. A negative phase
        keeps the parameter fixed at its initial value.
    """

    def __init__(
        self,
        name: str,
        init: float,
        lower: float = -float("inf"),
        upper: float = float("inf"),
        prior: Optional[Prior] = None,
        phase: int = 1,
    ):
        self._name = name
        self._init = init
        self._lower = lower
        self._upper = upper
        self._prior = prior
        self._phase = phase

    @classmethod
    def create(
        cls,
        name: str,
        init: float,
        lower: Optional[float] = None,
        upper: Optional[float] = None,
        prior: Union[Prior, str, dict, None] = None,
        phase: int = 1,
        fix: bool = False,
    ):
        """Alternative constructor for Parameter with type conversion

        Consistency between the initial estimate and the bounds is not checked here
        but when the model is rendered.
        """
        if not isinstance(name, str):
            raise ValueError("Name of parameter must be of type string")
        init = float(init)
        if math.isnan(init):
            raise ValueError(f'Initial estimate of {name} cannot be NaN')
        lower = -float('inf') if lower is None else float(lower)
        upper = float('inf') if upper is None else float(upper)
        phase = int(phase)
        if fix:
            phase = -abs(phase)
        return cls(name, init, lower, upper, create_prior(prior), phase)

    def replace(self, **kwargs) -> Parameter:
        """Replace properties and create a new Parameter"""
        d = {
            'name': self._name,
            'init': self._init,
            'lower': self._lower,
            'upper': self._upper,
            'prior': self._prior,
            'phase': self._phase,
        }
        d.update(kwargs)
        return Parameter.create(**d)

    @property
    def name(self) -> str:
        """Parameter name"""
        return self._name

    @property
    def init(self) -> float:
        """Initial parameter estimate"""
        return self._init

    @property
    def lower(self) -> float:
        """Lower bound of the parameter"""
        return self._lower

    @property
    def upper(self) -> float:
        """Upper bound of the parameter"""
        return self._upper

    @property
    def prior(self) -> Optional[Prior]:
        """Prior distribution of the parameter"""
        return self._prior

    @property
    def phase(self) -> int:
        """Estimation phase"""
        return self._phase

    @property
    def fix(self) -> bool:
        """Is the parameter kept fixed at its initial value"""
        return self._phase < 0

    @property
    def is_bounded(self) -> bool:
        return math.isfinite(self._lower) or math.isfinite(self._upper)

    def __hash__(self):
        return hash((self._name, self._init, self._lower, self._upper, self._prior, self._phase))

    def __eq__(self, other: Any):
        return (
            isinstance(other, Parameter)
            and self._name == other._name
            and self._init == other._init
            and self._lower == other._lower
            and self._upper == other._upper
            and self._prior == other._prior
            and self._phase == other._phase
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {'name': self._name, 'init': self._init}
        if math.isfinite(self._lower):
            d['lower'] = self._lower
        if math.isfinite(self._upper):
            d['upper'] = self._upper
        if self._prior is not None:
            d['prior'] = self._prior.to_dict()
        if self._phase != 1:
            d['phase'] = self._phase
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        return cls.create(**d)

    def __repr__(self):
        lower = "-∞" if self._lower == -float("inf") else self._lower
        upper = "∞" if self._upper == float("inf") else self._upper
        s = f'Parameter("{self._name}", {self._init}, lower={lower}, upper={upper}'
        if self._prior is not None:
            s += f', prior={self._prior!r}'
        if self._phase != 1:
            s += f', phase={self._phase}'
        return s + ')'


class Parameters(CollectionsSequence, Immutable):
    """An immutable ordered collection of parameters

    Specific parameters can be found using indexing on the parameter name

    Example
    -------

    >>> from pyadmb.model import Parameters, Parameter
    >>> pset = Parameters((Parameter("r", 0.5), Parameter("K", 10000.0)))
    >>> pset["K"].init
    10000.0
    >>> "r" in pset
    True
    """

    def __init__(self, parameters: tuple[Parameter, ...] = ()):
        self._params = parameters

    @classmethod
    def create(cls, parameters: Optional[Union[Parameters, Sequence[Parameter]]] = None):
        if isinstance(parameters, Parameters):
            return parameters
        elif parameters is None:
            parameters = ()
        else:
            parameters = tuple(parameters)
        for p in parameters:
            if not isinstance(p, Parameter):
                raise ValueError(f'Can not add variable of type {type(p)} to Parameters')
        return cls(parameters)

    def __len__(self):
        return len(self._params)

    def _lookup_param(self, ind: Union[int, str]):
        if isinstance(ind, str):
            for param in self._params:
                if ind == param.name:
                    return param
            raise KeyError(f'Could not find {ind} in Parameters')
        return self._params[ind]

    @overload
    def __getitem__(self, ind: Union[int, str]) -> Parameter: ...

    @overload
    def __getitem__(self, ind: slice) -> Parameters: ...

    def __getitem__(self, ind):
        if isinstance(ind, slice):
            return Parameters(self._params[ind])
        return self._lookup_param(ind)

    def __contains__(self, ind):
        if isinstance(ind, Parameter):
            return ind in self._params
        return any(p.name == ind for p in self._params)

    @property
    def names(self) -> list[str]:
        """List of all parameter names"""
        return [p.name for p in self._params]

    @property
    def inits(self) -> dict[str, float]:
        """Initial estimates of parameters as dict"""
        return {p.name: p.init for p in self._params}

    @property
    def bounds(self) -> dict[str, tuple[float, float]]:
        """Lower and upper bounds of all parameters as a dictionary"""
        return {p.name: (p.lower, p.upper) for p in self._params}

    @property
    def estimated(self) -> Parameters:
        """All parameters that are not fixed"""
        return Parameters(tuple(p for p in self._params if not p.fix))

    def set_initial_estimates(self, inits: dict[str, float]) -> Parameters:
        """Create a new Parameters with changed initial estimates"""
        new = [p.replace(init=inits[p.name]) if p.name in inits else p for p in self._params]
        return Parameters(tuple(new))

    def to_dataframe(self) -> pd.DataFrame:
        """Create a dataframe with one row per parameter

        The columns are init, lower, upper, prior and phase and the index is the names
        """
        return pd.DataFrame(
            {
                'init': [p.init for p in self._params],
                'lower': [p.lower for p in self._params],
                'upper': [p.upper for p in self._params],
                'prior': [repr(p.prior) if p.prior is not None else None for p in self._params],
                'phase': [p.phase for p in self._params],
            },
            index=pd.Index(self.names, name='name'),
        )

    def __eq__(self, other: Any):
        return isinstance(other, Parameters) and self._params == other._params

    def __hash__(self):
        return hash(self._params)

    def __repr__(self):
        if len(self) == 0:
            return "Parameters()"
        return '\n'.join(repr(p) for p in self._params)
