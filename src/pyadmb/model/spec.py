from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from pyadmb.internals.immutable import Immutable

from .data import DataBinding, create_bindings
from .parameters import Parameter, Parameters
from .templates import ModelTemplate, get_template


class ModelSpec(Immutable):
    """Description of an estimation problem

    Example
    -------

    >>> from pyadmb.model import ModelSpec, Parameter
    >>> spec = ModelSpec.create(
    ...     'hake',
    ...     parameters=[
    ...         Parameter.create('r', 0.5, lower=0.2, upper=0.8),
    ...         Parameter.create('K', 10000, lower=5000, upper=20000),
    ...     ],
    ...     data_bindings={'year': 'time', 'catch': 'catch', 'cpue': 'index'},
    ... )
    >>> spec.parameters.names
    ['r', 'K']

    Parameters
    ----------
    name : str
        Name of the model. Used as the name of the generated files and executable
    parameters : Parameters
        Parameters to estimate, in declaration order
    data_bindings : tuple
        Bindings of dataset columns to the data roles of the model
    template : ModelTemplate
        The model equations
    """

    def __init__(
        self,
        name: str,
        parameters: Parameters,
        data_bindings: tuple[DataBinding, ...],
        template: ModelTemplate,
    ):
        self._name = name
        self._parameters = parameters
        self._data_bindings = data_bindings
        self._template = template

    @classmethod
    def create(
        cls,
        name: str,
        parameters: Optional[Union[Parameters, Sequence[Parameter]]] = None,
        data_bindings: Any = None,
        template: Union[str, ModelTemplate] = 'schaefer',
    ):
        if not isinstance(name, str) or not name:
            raise ValueError('Name of model must be a non-empty string')
        return cls(
            name=name,
            parameters=Parameters.create(parameters),
            data_bindings=create_bindings(data_bindings),
            template=get_template(template),
        )

    def replace(self, **kwargs) -> ModelSpec:
        """Replace properties and create a new ModelSpec"""
        return ModelSpec.create(
            name=kwargs.get('name', self._name),
            parameters=kwargs.get('parameters', self._parameters),
            data_bindings=kwargs.get('data_bindings', self._data_bindings),
            template=kwargs.get('template', self._template),
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def parameters(self) -> Parameters:
        return self._parameters

    @property
    def data_bindings(self) -> tuple[DataBinding, ...]:
        return self._data_bindings

    @property
    def template(self) -> ModelTemplate:
        return self._template

    def binding(self, role: str) -> Optional[DataBinding]:
        """The data binding for a role or None if the role is not bound"""
        for binding in self._data_bindings:
            if binding.role == role:
                return binding
        return None

    def __eq__(self, other):
        return (
            isinstance(other, ModelSpec)
            and self._name == other._name
            and self._parameters == other._parameters
            and self._data_bindings == other._data_bindings
            and self._template == other._template
        )

    def __hash__(self):
        return hash((self._name, self._parameters, self._data_bindings, self._template))

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self._name,
            'template': self._template.name,
            'parameters': [p.to_dict() for p in self._parameters],
            'data_bindings': [b.to_dict() for b in self._data_bindings],
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ModelSpec:
        return cls.create(
            name=d['name'],
            parameters=[Parameter.from_dict(p) for p in d.get('parameters', [])],
            data_bindings=d.get('data_bindings'),
            template=d.get('template', 'schaefer'),
        )

    @classmethod
    def read(cls, path: Union[str, Path]) -> ModelSpec:
        """Read a model specification from a json file"""
        with open(path, 'r') as fh:
            d = json.load(fh)
        return cls.from_dict(d)

    def write(self, path: Union[str, Path]):
        with open(path, 'w') as fh:
            json.dump(self.to_dict(), fh, indent=2)

    def __repr__(self):
        return f'<ModelSpec {self._name} ({self._template.name}, {len(self._parameters)} parameters)>'
