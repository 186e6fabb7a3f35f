"""Rendering of model specifications into ADMB input

A :class:`~pyadmb.model.ModelSpec` together with its dataset is turned into the
three text files the ADMB toolchain needs:

* ``<name>.tpl``, the model template that the ``admb`` script compiles
* ``<name>.dat``, the data file read by the DATA_SECTION
* ``<name>.pin``, the initial values of the parameters in declaration order

Rendering is deterministic: the same specification and data always give the
same text.
"""

from __future__ import annotations

import keyword
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Union

from pyadmb.errors import SpecValidationError
from pyadmb.internals.code_generator import CodeGenerator
from pyadmb.model.data import TIME_ROLE, DataBinding, as_dataframe
from pyadmb.model.spec import ModelSpec

if TYPE_CHECKING:
    import pandas as pd
else:
    from pyadmb.deps import pandas as pd

TIME_VARIABLE = 'obs_time'
INDEX_ROLE = 'index'
REPORT_KINDS = ('time', 'trajectory', 'reference', 'variable')

_identifier = re.compile(r'^[A-Za-z][A-Za-z0-9_]*$')

# Names that would clash with the generated code or with ADMB and C++ library functions
RESERVED_NAMES = frozenset(
    {
        'f',
        'nobs',
        'report',
        'endl',
        'log',
        'exp',
        'mfexp',
        'sqrt',
        'square',
        'pow',
        'posfun',
        'value',
        'sum',
        'norm2',
        'PI',
        'M_PI',
        'double',
        'int',
        'dvariable',
        'dvar_vector',
        'dvector',
        'ivector',
        'number',
        'vector',
        'matrix',
        'auto',
        'case',
        'char',
        'const',
        'default',
        'delete',
        'do',
        'float',
        'goto',
        'long',
        'new',
        'operator',
        'register',
        'short',
        'signed',
        'sizeof',
        'static',
        'struct',
        'switch',
        'template',
        'this',
        'throw',
        'typedef',
        'union',
        'unsigned',
        'virtual',
        'void',
        'volatile',
    }
)


@dataclass(frozen=True)
class RenderedModel:
    """ADMB input text for one model"""

    name: str
    tpl: str
    dat: str
    pin: str

    @property
    def filenames(self) -> dict[str, str]:
        return {
            'tpl': f'{self.name}.tpl',
            'dat': f'{self.name}.dat',
            'pin': f'{self.name}.pin',
        }


def write_model(rendered: RenderedModel, path: Union[str, Path]) -> dict[str, Path]:
    """Write the rendered files into the directory *path*

    Returns
    -------
    dict
        Paths of the written files by suffix
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    written = {}
    for kind, filename in rendered.filenames.items():
        file_path = path / filename
        # newline='' keeps the content byte-identical on all platforms
        with open(file_path, 'w', newline='') as fh:
            fh.write(getattr(rendered, kind))
        written[kind] = file_path
    return written


def render_model(spec: ModelSpec, data: Any) -> RenderedModel:
    """Render a model specification and its data as ADMB input

    Parameters
    ----------
    spec : ModelSpec
        The model specification
    data : pd.DataFrame
        Dataset containing all columns referenced by the data bindings. Anything
        that can be converted to a DataFrame or a path to a csv file is also accepted.

    Returns
    -------
    RenderedModel
        Template, data and initial values text

    Raises
    ------
    SpecValidationError
        If the specification is inconsistent or does not fit the data
    """
    df = as_dataframe(data)
    validate_spec(spec, df)
    bindings = _ordered_bindings(spec)
    columns = _data_columns(spec, bindings, df)
    return RenderedModel(
        name=spec.name,
        tpl=_render_tpl(spec, bindings),
        dat=_render_dat(bindings, columns),
        pin=_render_pin(spec),
    )


def validate_spec(spec: ModelSpec, df: pd.DataFrame):
    """Check that a model specification can be rendered with the data in *df*"""
    template = spec.template
    if not _identifier.match(spec.name):
        raise SpecValidationError(
            f'Model name "{spec.name}" must start with a letter and contain only letters, '
            'digits and underscores',
            name=spec.name,
        )

    seen = set()
    for p in spec.parameters:
        if p.name in seen:
            raise SpecValidationError(
                f'Parameter names must be unique. Parameter "{p.name}" was given more than once',
                name=p.name,
            )
        seen.add(p.name)

    reserved = _reserved_names(spec)
    for p in spec.parameters:
        _check_identifier(p.name, 'Parameter', reserved)
        if p.lower >= p.upper:
            raise SpecValidationError(
                f'Lower bound {p.lower} of parameter {p.name} must be less than '
                f'upper bound {p.upper}',
                name=p.name,
            )
        if math.isfinite(p.lower) != math.isfinite(p.upper):
            raise SpecValidationError(
                f'Parameter {p.name} must have both a lower and an upper bound or none',
                name=p.name,
            )
        if not math.isfinite(p.init) or not p.lower <= p.init <= p.upper:
            raise SpecValidationError(
                f'Initial estimate {p.init} of parameter {p.name} lies outside its bounds '
                f'[{p.lower}, {p.upper}]',
                name=p.name,
            )
        if p.prior is not None and not p.prior.in_support(p.init):
            raise SpecValidationError(
                f'Initial estimate {p.init} of parameter {p.name} is outside the support '
                f'of its prior {p.prior!r}',
                name=p.name,
            )

    if template.parameters is not None:
        for name in template.parameters:
            if name not in seen:
                raise SpecValidationError(
                    f'Model template {template.name} needs parameter {name}', name=name
                )
        for p in spec.parameters:
            if p.name not in template.parameters:
                raise SpecValidationError(
                    f'Parameter {p.name} is not used by model template {template.name}',
                    name=p.name,
                )
    if len(spec.parameters.estimated) == 0:
        raise SpecValidationError('At least one parameter must be estimated')

    allowed_roles = (TIME_ROLE,) + template.roles + template.optional_roles
    roles = set()
    for binding in spec.data_bindings:
        if binding.role in roles:
            raise SpecValidationError(
                f'Data role {binding.role} is bound more than once', name=binding.role
            )
        roles.add(binding.role)
        if not _identifier.match(binding.role):
            raise SpecValidationError(
                f'Data role "{binding.role}" is not a valid identifier', name=binding.role
            )
        if binding.role not in allowed_roles:
            raise SpecValidationError(
                f'Data role {binding.role} is not used by model template {template.name}',
                name=binding.role,
            )
        if binding.column not in df.columns:
            raise SpecValidationError(
                f'Data binding for role {binding.role} references column "{binding.column}" '
                'which is not in the data',
                name=binding.column,
            )
    for role in template.roles:
        if role not in roles:
            raise SpecValidationError(
                f'Model template {template.name} needs data for role {role}', name=role
            )

    if len(df) == 0:
        raise SpecValidationError('The dataset has no rows')
    for binding in spec.data_bindings:
        _numeric_column(df, binding)


def _check_identifier(name: str, what: str, reserved):
    if not _identifier.match(name):
        raise SpecValidationError(
            f'{what} name "{name}" must start with a letter and contain only letters, '
            'digits and underscores',
            name=name,
        )
    if name in reserved or keyword.iskeyword(name) or name.startswith('obs_'):
        raise SpecValidationError(f'{what} name "{name}" is reserved', name=name)


def _reserved_names(spec: ModelSpec):
    return RESERVED_NAMES | set(spec.template.declared_names)


def _numeric_column(df: pd.DataFrame, binding: DataBinding) -> pd.Series:
    try:
        column = pd.to_numeric(df[binding.column], errors='raise').astype('float64')
    except (ValueError, TypeError):
        raise SpecValidationError(
            f'Column "{binding.column}" bound to role {binding.role} must be numeric',
            name=binding.column,
        ) from None
    values = column.to_numpy()
    missing = pd.isna(column).to_numpy()
    if binding.role != INDEX_ROLE and missing.any():
        raise SpecValidationError(
            f'Column "{binding.column}" bound to role {binding.role} has missing values',
            name=binding.column,
        )
    finite = [math.isfinite(v) for v, m in zip(values, missing) if not m]
    if not all(finite):
        raise SpecValidationError(
            f'Column "{binding.column}" bound to role {binding.role} has infinite values',
            name=binding.column,
        )
    if binding.role == INDEX_ROLE and missing.all():
        raise SpecValidationError(
            f'Column "{binding.column}" bound to role {binding.role} has no observations',
            name=binding.column,
        )
    return column


def _ordered_bindings(spec: ModelSpec) -> tuple[DataBinding, ...]:
    time = spec.binding(TIME_ROLE)
    rest = tuple(b for b in spec.data_bindings if b.role != TIME_ROLE)
    if time is None:
        return rest
    return (time,) + rest


def _data_columns(spec, bindings, df) -> dict[str, list[float]]:
    import pyadmb

    token = float(pyadmb.conf.missing_data_token)
    columns = {}
    if spec.binding(TIME_ROLE) is None:
        columns[TIME_VARIABLE] = [float(i) for i in range(1, len(df) + 1)]
    for binding in bindings:
        column = _numeric_column(df, binding)
        columns[binding.variable] = [token if math.isnan(v) else float(v) for v in column]
    return columns


def _time_label(spec: ModelSpec) -> str:
    binding = spec.binding(TIME_ROLE)
    return TIME_ROLE if binding is None else binding.column


def _format_number(x: float) -> str:
    return repr(float(x))


def _declaration(p) -> str:
    if math.isfinite(p.lower):
        return (
            f'init_bounded_number {p.name}({_format_number(p.lower)},'
            f'{_format_number(p.upper)},{p.phase})'
        )
    return f'init_number {p.name}({p.phase})'


def _cpp_string(s: str) -> str:
    return s.replace('\\', '\\\\').replace('"', '\\"')


def _render_tpl(spec: ModelSpec, bindings: tuple[DataBinding, ...]) -> str:
    import pyadmb

    template = spec.template
    cg = CodeGenerator()
    cg.add(f'// Generated by pyadmb {pyadmb.__version__}: model {spec.name} ({template.name})')
    cg.empty_line()

    with cg.section('DATA_SECTION'):
        cg.add('init_int nobs')
        if spec.binding(TIME_ROLE) is None:
            cg.add(f'init_vector {TIME_VARIABLE}(1,nobs)')
        for binding in bindings:
            cg.add(f'init_vector {binding.variable}(1,nobs)')

    with cg.section('PARAMETER_SECTION'):
        for p in spec.parameters:
            cg.add(_declaration(p))
        for name in template.variables:
            cg.add(f'number {name}')
        for name in template.trajectories:
            cg.add(f'vector {name}(1,nobs)')
        for name in template.reference_values:
            cg.add(f'sdreport_number {name}')
        cg.add('objective_function_value f')

    with cg.section('PROCEDURE_SECTION'):
        cg.add('f = 0.0;')
        cg.add_lines(template.procedure)
        priors = [(p.name, p.prior) for p in spec.parameters if p.prior is not None]
        for name, prior in priors:
            nld = prior.negative_log_density(name)
            if nld is not None:
                cg.add(f'f += {nld};')

    with cg.section('REPORT_SECTION'):
        _report(cg, 'time', _time_label(spec), TIME_VARIABLE)
        for name in template.trajectories:
            _report(cg, 'trajectory', name, name)
        for name in template.reference_values:
            _report(cg, 'reference', name, name)
        for name in template.variables:
            _report(cg, 'variable', name, name)

    return str(cg)


def _report(cg: CodeGenerator, kind: str, label: str, variable: str):
    cg.add(f'report << "# {kind}: {_cpp_string(label)}" << endl;')
    cg.add(f'report << {variable} << endl;')


def _render_dat(bindings, columns: dict[str, list[float]]) -> str:
    labels = {b.variable: b.column for b in bindings}
    nobs = len(next(iter(columns.values())))
    lines = ['# nobs', str(nobs)]
    for variable, values in columns.items():
        column = labels.get(variable)
        lines.append(f'# {variable}' if column is None else f'# {variable} ({column})')
        lines.append(' '.join(_format_number(v) for v in values))
    return '\n'.join(lines) + '\n'


def _render_pin(spec: ModelSpec) -> str:
    lines = []
    for p in spec.parameters:
        lines.append(f'# {p.name}')
        lines.append(_format_number(p.init))
    return '\n'.join(lines) + '\n'
