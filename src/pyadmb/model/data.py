from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Union

from pyadmb.internals.immutable import Immutable

if TYPE_CHECKING:
    import pandas as pd
else:
    from pyadmb.deps import pandas as pd

TIME_ROLE = 'time'


class DataBinding(Immutable):
    """Binding of a column in the dataset to a role in the model

    Roles are the names the model template uses for its data, e.g. ``catch``
    or ``index`` (survey index). The role ``time`` gives the time index of all
    observations and of the reported trajectories.

    Parameters
    ----------
    column : str
        Name of the column in the dataset
    role : str
        Role of the column in the model
    """

    def __init__(self, column: str, role: str):
        self._column = column
        self._role = role

    @property
    def column(self) -> str:
        return self._column

    @property
    def role(self) -> str:
        return self._role

    @property
    def variable(self) -> str:
        """Name of the data variable in the generated template"""
        return f'obs_{self._role}'

    def __eq__(self, other):
        return (
            isinstance(other, DataBinding)
            and self._column == other._column
            and self._role == other._role
        )

    def __hash__(self):
        return hash((self._column, self._role))

    def to_dict(self) -> dict[str, str]:
        return {'column': self._column, 'role': self._role}

    def __repr__(self):
        return f'DataBinding("{self._column}" -> {self._role})'


def create_bindings(bindings: Any) -> tuple[DataBinding, ...]:
    """Create data bindings from a mapping of column name to role or a sequence"""
    if bindings is None:
        return ()
    if isinstance(bindings, Mapping):
        return tuple(DataBinding(str(column), str(role)) for column, role in bindings.items())
    created = []
    for binding in bindings:
        if isinstance(binding, DataBinding):
            created.append(binding)
        elif isinstance(binding, Mapping):
            created.append(DataBinding(str(binding['column']), str(binding['role'])))
        else:
            column, role = binding
            created.append(DataBinding(str(column), str(role)))
    return tuple(created)


def read_dataset(path: Union[str, Path]) -> pd.DataFrame:
    """Read a dataset from a csv file

    Missing values can be given as empty fields or using the missing data token
    of the configuration.
    """
    import pyadmb

    token = pyadmb.conf.missing_data_token
    return pd.read_csv(path, na_values=[token], skipinitialspace=True)


def as_dataframe(data: Any) -> pd.DataFrame:
    if isinstance(data, pd.DataFrame):
        return data
    if data is None:
        return pd.DataFrame()
    if isinstance(data, (str, Path)):
        return read_dataset(data)
    return pd.DataFrame(data)
