from __future__ import annotations

import importlib
import json
import lzma
import re
from collections.abc import Sequence as CollectionsSequence
from contextlib import closing
from dataclasses import asdict, dataclass, field
from enum import Enum
from io import StringIO
from lzma import open as lzma_open
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterator, Literal, Optional, Union, overload

import pyadmb
from pyadmb.internals.immutable import Immutable, frozenmapping

from .log import Log

if TYPE_CHECKING:
    import pandas as pd
else:
    from pyadmb.deps import pandas as pd


class ConvergenceStatus(Enum):
    """Outcome of the estimation"""

    CONVERGED = 'Converged'
    MAX_ITERATIONS = 'MaxIterations'
    NUMERICAL_FAILURE = 'NumericalFailure'
    EXTERNAL_TOOL_MISSING = 'ExternalToolMissing'

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class ParameterEstimate:
    """Final estimate of one parameter

    Attributes
    ----------
    name : str
        Parameter name
    estimate : float
        Point estimate
    standard_error : float
        Standard error of the estimate or None if it is unavailable
    bound_active : bool
        True if the estimate is at (or very near) one of the parameter bounds
    """

    name: str
    estimate: float
    standard_error: Optional[float] = None
    bound_active: bool = False

    @property
    def has_standard_error(self) -> bool:
        return self.standard_error is not None

    @property
    def relative_standard_error(self) -> Optional[float]:
        if self.standard_error is None or self.estimate == 0:
            return None
        return abs(self.standard_error / self.estimate)


class Trajectory(CollectionsSequence):
    """A time indexed series of values

    Iterating gives (time, value) pairs. Pairs are generated on demand and
    every iteration starts from the beginning.
    """

    def __init__(self, name: str, time: tuple[float, ...] = (), values: tuple[float, ...] = ()):
        if len(time) != len(values):
            raise ValueError(
                f'Trajectory {name} has {len(values)} values but {len(time)} time points'
            )
        self.name = name
        self._time = tuple(time)
        self._values = tuple(values)

    @property
    def time(self) -> tuple[float, ...]:
        return self._time

    @property
    def values(self) -> tuple[float, ...]:
        return self._values

    def __iter__(self) -> Iterator[tuple[float, float]]:
        return zip(self._time, self._values)

    def __len__(self):
        return len(self._values)

    def __getitem__(self, i):
        if isinstance(i, slice):
            return Trajectory(self.name, self._time[i], self._values[i])
        return (self._time[i], self._values[i])

    def __eq__(self, other):
        return (
            isinstance(other, Trajectory)
            and self.name == other.name
            and self._time == other._time
            and self._values == other._values
        )

    def __hash__(self):
        return hash((self.name, self._time, self._values))

    def to_series(self) -> pd.Series:
        return pd.Series(self._values, index=pd.Index(self._time, name='time'), name=self.name)

    def __repr__(self):
        return f'Trajectory({self.name}, {len(self)} points)'


def _df_to_json(df: pd.DataFrame) -> dict[str, Any]:
    df_json = df.to_json(orient='table', double_precision=15)
    assert df_json is not None
    return json.loads(df_json)


def _df_read_json(obj) -> pd.DataFrame:
    return pd.read_json(StringIO(json.dumps(obj)), typ='frame', orient='table', precise_float=True)


class ResultsJSONEncoder(json.JSONEncoder):
    def default(self, obj) -> Union[dict[str, Any], list[Any], None]:
        # NOTE: Only called for objects the base encoder cannot handle itself
        if isinstance(obj, Results):
            d = obj.to_dict()
            d['__module__'] = obj.__class__.__module__
            d['__class__'] = obj.__class__.__qualname__
            return d
        elif isinstance(obj, pd.DataFrame):
            d = _df_to_json(obj)
            d['__class__'] = 'DataFrame'
            return d
        elif isinstance(obj, Log):
            d = obj.to_dict()
            d['__class__'] = 'Log'
            return d
        elif isinstance(obj, ConvergenceStatus):
            return {'value': obj.value, '__class__': 'ConvergenceStatus'}
        elif isinstance(obj, ParameterEstimate):
            d = asdict(obj)
            d['__class__'] = 'ParameterEstimate'
            return d
        elif isinstance(obj, frozenmapping):
            return dict(obj)
        elif isinstance(obj, Path):
            return {'path': str(obj), '__class__': 'Path'}
        else:
            return super().default(obj)


class ResultsJSONDecoder(json.JSONDecoder):
    def __init__(self, *args, **kwargs):
        json.JSONDecoder.__init__(self, object_hook=self.object_hook, *args, **kwargs)

    def object_hook(self, obj):
        # NOTE: Called for every dict produced by the base decoder, innermost first
        module = obj.pop('__module__', None)
        cls = obj.pop('__class__', None)

        if cls is None:
            return obj
        if cls == 'DataFrame':
            return _df_read_json(obj)
        if cls == 'Log':
            return Log.from_dict(obj)
        if cls == 'ConvergenceStatus':
            return ConvergenceStatus(obj['value'])
        if cls == 'ParameterEstimate':
            return ParameterEstimate(**obj)
        if cls == 'Path':
            return Path(obj['path'])
        if cls.endswith('Result') or cls.endswith('Results'):
            if module is None:
                raise ValueError(f'Cannot read {cls} without module')
            results_class = getattr(importlib.import_module(module), cls)
            return results_class.from_dict(obj)
        raise ValueError(f'Unknown class {cls} in results')


def _is_likely_to_be_json(source: str):
    # NOTE: Heuristic to determine if path or buffer: first non-space character is '{'
    match = re.match(r'\s*([^\s])', source)
    return match is not None and match.group(1) == '{'


def read_results(path_or_str: Union[str, Path]):
    """Read results from a json file, a directory containing results.json or a json string"""
    if isinstance(path_or_str, str) and _is_likely_to_be_json(path_or_str):
        manager = closing(StringIO(path_or_str))
    else:
        path = Path(path_or_str)
        if path.is_dir():
            path /= 'results.json'
        if path.name.endswith('.xz'):
            manager = lzma.open(path, 'rt', encoding='utf-8')
        else:
            manager = open(path, 'r')

    with manager as readable:
        return json.load(readable, cls=ResultsJSONDecoder)


@dataclass(frozen=True)
class Results(Immutable):
    """Base class for all result classes"""

    __version__: str = pyadmb.__version__

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        """Create results object from dictionary"""
        return cls(
            __version__=d.get('__version__', 'unknown'),
            **{k: v for k, v in d.items() if k != '__version__'},
        )

    @overload
    def to_json(self, path: None = None, lzma: Literal[False] = False) -> str: ...

    @overload
    def to_json(self, path: Path, lzma: bool = False) -> None: ...

    def to_json(self, path: Optional[Path] = None, lzma: bool = False) -> Union[str, None]:
        """Serialize results object as json

        Parameters
        ----------
        path : Path
            Path to save json file or None to serialize to string
        lzma : bool
            Set to compress file with lzma

        Returns
        -------
        str
            Json as string unless path was used
        """
        s = ResultsJSONEncoder().encode(self)
        if path:
            path = Path(path)
            if not lzma:
                with open(path, 'w') as fh:
                    fh.write(s)
            else:
                xz_path = path.parent / (path.name + '.xz')
                with lzma_open(xz_path, 'w') as fh:
                    fh.write(bytes(s, 'utf-8'))
            return None
        return s

    def to_dict(self) -> dict[str, Any]:
        """Convert results object to a dictionary"""
        return vars(self).copy()

    def __str__(self):
        s = f'{self.__class__.__name__}\n\n'
        for key, value in self.to_dict().items():
            s += f'{key}\n'
            if isinstance(value, pd.DataFrame):
                s += value.to_string()
            elif isinstance(value, tuple) and value and isinstance(value[0], ParameterEstimate):
                s += '\n'.join(str(e) for e in value)
            else:
                s += str(value)
            s += '\n\n'
        return s


@dataclass(frozen=True)
class FitResult(Results):
    """Results of one ADMB fit

    Attributes
    ----------
    model_name : str
        Name of the fitted model
    status : ConvergenceStatus
        Outcome of the estimation
    estimates : tuple
        One :class:`ParameterEstimate` per parameter found in the parameter file, in
        declaration order
    diagnostics : str
        Free text diagnostics of the run. Messages from the engine on failure
    ofv : float
        Final objective function value (negative log likelihood plus penalties)
    max_gradient : float
        Maximum gradient component at the final estimates
    time_label : str
        Name of the time index of the trajectories
    time : tuple
        Time index of the trajectories
    trajectories : frozenmapping
        Values over the time index for each reported trajectory
    reference_values : frozenmapping
        Derived reference values, e.g. MSY
    reference_standard_errors : frozenmapping
        Standard errors of the reference values where available
    variables : frozenmapping
        Other reported scalar variables of the model
    log_determinant_hessian : float
        Base 10 logarithm of the determinant of the hessian
    correlation_matrix : pd.DataFrame
        Correlation matrix of the estimates and the reference values
    log : Log
        Warnings and errors collected while reading the results
    """

    model_name: Optional[str] = None
    status: ConvergenceStatus = ConvergenceStatus.NUMERICAL_FAILURE
    estimates: tuple[ParameterEstimate, ...] = ()
    diagnostics: str = ''
    ofv: Optional[float] = None
    max_gradient: Optional[float] = None
    time_label: Optional[str] = None
    time: tuple[float, ...] = ()
    trajectories: frozenmapping[str, tuple[float, ...]] = field(default_factory=frozenmapping)
    reference_values: frozenmapping[str, float] = field(default_factory=frozenmapping)
    reference_standard_errors: frozenmapping[str, float] = field(default_factory=frozenmapping)
    variables: frozenmapping[str, float] = field(default_factory=frozenmapping)
    log_determinant_hessian: Optional[float] = None
    correlation_matrix: Optional[pd.DataFrame] = field(default=None, compare=False)
    log: Log = field(default_factory=Log)

    @classmethod
    def from_dict(cls, d: dict[str, Any]):
        d = dict(d)
        if 'status' in d and not isinstance(d['status'], ConvergenceStatus):
            d['status'] = ConvergenceStatus(d['status'])
        d['estimates'] = tuple(
            e if isinstance(e, ParameterEstimate) else ParameterEstimate(**e)
            for e in d.get('estimates', ())
        )
        d['time'] = tuple(d.get('time', ()))
        d['trajectories'] = frozenmapping(
            {k: tuple(v) for k, v in d.get('trajectories', {}).items()}
        )
        for key in ('reference_values', 'reference_standard_errors', 'variables'):
            d[key] = frozenmapping(d.get(key, {}))
        if 'log' in d and not isinstance(d['log'], Log):
            d['log'] = Log.from_dict(d['log'])
        return super().from_dict(d)

    @property
    def converged(self) -> bool:
        return self.status is ConvergenceStatus.CONVERGED

    @property
    def parameter_names(self) -> list[str]:
        return [e.name for e in self.estimates]

    def estimate(self, name: str) -> ParameterEstimate:
        """The estimate of the parameter *name*"""
        for e in self.estimates:
            if e.name == name:
                return e
        raise KeyError(f'No estimate for parameter {name}')

    @property
    def parameter_estimates(self) -> pd.Series:
        """Final parameter estimates as a Series indexed by name"""
        return pd.Series(
            [e.estimate for e in self.estimates],
            index=pd.Index(self.parameter_names, name='name'),
            name='estimate',
            dtype='float64',
        )

    @property
    def standard_errors(self) -> pd.Series:
        """Standard errors as a Series indexed by name. NaN where unavailable"""
        return pd.Series(
            [float('nan') if e.standard_error is None else e.standard_error for e in self.estimates],
            index=pd.Index(self.parameter_names, name='name'),
            name='standard_error',
            dtype='float64',
        )

    def to_dataframe(self) -> pd.DataFrame:
        """Table with one row per parameter in declaration order

        The columns are estimate, standard_error, relative_standard_error and
        bound_active and the index is the parameter names. Unavailable standard
        errors are NaN.
        """
        rse = [e.relative_standard_error for e in self.estimates]
        return pd.DataFrame(
            {
                'estimate': self.parameter_estimates,
                'standard_error': self.standard_errors,
                'relative_standard_error': [float('nan') if x is None else x for x in rse],
                'bound_active': [e.bound_active for e in self.estimates],
            },
            index=pd.Index(self.parameter_names, name='name'),
        )

    def summary(self) -> dict[str, Any]:
        """Convergence status and headline values of the fit"""
        return {
            'model': self.model_name,
            'status': self.status.value,
            'converged': self.converged,
            'ofv': self.ofv,
            'max_gradient': self.max_gradient,
            'parameters': {e.name: e.estimate for e in self.estimates},
            'reference_values': dict(self.reference_values),
        }

    @property
    def trajectory_names(self) -> list[str]:
        return list(self.trajectories.keys())

    def trajectory(self, name: str) -> Trajectory:
        """The values of a trajectory over the time index

        An empty trajectory is returned if the fit did not report *name*.
        """
        values = self.trajectories.get(name)
        if values is None:
            return Trajectory(name)
        return Trajectory(name, self.time, values)

    def trajectories_dataframe(self) -> pd.DataFrame:
        """All trajectories as columns of a table indexed by time"""
        index = pd.Index(self.time, name=self.time_label or 'time')
        return pd.DataFrame({k: list(v) for k, v in self.trajectories.items()}, index=index)

    def to_csv(self, path: Union[str, Path]):
        """Save the parameter table and the trajectories as a human readable csv file"""
        s = f'status\n{self.status.value}\n\n'
        s += 'estimates\n'
        s += self.to_dataframe().to_csv()
        if self.reference_values:
            s += '\nreference_values\n'
            s += pd.Series(dict(self.reference_values), name='value').to_csv()
        if self.trajectories:
            s += '\ntrajectories\n'
            s += self.trajectories_dataframe().to_csv()
        with open(path, 'w', newline='') as fh:
            fh.write(s)
