"""Readers for the report files of an ADMB run

* ``.par`` Final parameter values preceded by a header line with the number of
  parameters, the objective function value and the maximum gradient component
* ``.std`` Estimates and standard errors of parameters and sdreport variables
* ``.cor`` Correlation matrix of the same quantities as the ``.std`` file
* ``.rep`` The report written by the REPORT_SECTION of a generated template

Sections are found by their labels and not by line positions. All readers are
pure functions of the file content.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, Union

from pyadmb.deps import numpy as np
from pyadmb.deps import pandas as pd
from pyadmb.errors import ReportParseError

NUMBER_OF_PARAMETERS = re.compile(r'number\s+of\s+parameters\s*=\s*(\d+)', re.IGNORECASE)
OBJECTIVE_FUNCTION = re.compile(r'objective\s+function\s+value\s*=\s*(\S+)', re.IGNORECASE)
MAX_GRADIENT = re.compile(r'maximum\s+gradient\s+component\s*=\s*(\S+)', re.IGNORECASE)
HESSIAN_DETERMINANT = re.compile(r'determinant\s+of\s+the\s+hessian\s*=\s*(\S+)', re.IGNORECASE)
REP_LABEL = re.compile(r'^#\s*([A-Za-z_]+)\s*:\s*(.*?)\s*$')


@dataclass(frozen=True)
class Section:
    label: str
    tokens: tuple[str, ...]


def read_text(path: Union[str, Path]) -> str:
    content = Path(path).read_bytes()
    try:
        return content.decode('utf-8')
    except UnicodeDecodeError:
        return content.decode('latin-1', errors='ignore')


def labeled_sections(lines: Iterable[str]) -> list[Section]:
    """Split lines into sections starting with a ``#`` label line

    Lines before the first label are skipped.
    """
    sections = []
    label = None
    tokens: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped.startswith('#'):
            if label is not None:
                sections.append(Section(label, tuple(tokens)))
            label = stripped[1:].strip()
            tokens = []
        elif label is not None:
            tokens.extend(stripped.split())
    if label is not None:
        sections.append(Section(label, tuple(tokens)))
    return sections


def _to_float(token: str, section: str, path=None) -> float:
    try:
        return float(token)
    except ValueError:
        raise ReportParseError(
            f'Could not read value "{token}" in section {section}', section=section, path=path
        ) from None


def _header_float(pattern: re.Pattern, line: str) -> Optional[float]:
    m = pattern.search(line)
    if m is None:
        return None
    try:
        return float(m.group(1))
    except ValueError:
        return float('nan')


@dataclass(frozen=True)
class ParFile:
    """Contents of a ``.par`` file

    ``values`` maps each parameter name to its values. Scalars have one value,
    vector and matrix parameters all their elements in row order.
    """

    number_of_parameters: int
    ofv: float
    max_gradient: float
    values: dict[str, tuple[float, ...]] = field(default_factory=dict)

    @property
    def estimates(self) -> dict[str, float]:
        """Scalar value of each parameter. Elements of vectors as name[i]"""
        estimates = {}
        for name, values in self.values.items():
            if len(values) == 1:
                estimates[name] = values[0]
            else:
                for i, value in enumerate(values, start=1):
                    estimates[f'{name}[{i}]'] = value
        return estimates


def parse_par(content: str, path=None) -> ParFile:
    lines = content.splitlines()
    header = next((line for line in lines if line.strip()), None)
    m = NUMBER_OF_PARAMETERS.search(header) if header is not None else None
    if header is None or m is None:
        raise ReportParseError(
            'Parameter file is missing its header with the number of parameters',
            section='header',
            path=path,
        )
    n = int(m.group(1))
    ofv = _header_float(OBJECTIVE_FUNCTION, header)
    if ofv is None:
        raise ReportParseError(
            'Parameter file header has no objective function value',
            section='objective function value',
            path=path,
        )
    gradient = _header_float(MAX_GRADIENT, header)
    if gradient is None:
        raise ReportParseError(
            'Parameter file header has no maximum gradient component',
            section='maximum gradient component',
            path=path,
        )

    # The header counts the active parameters only. Parameters fixed by a
    # negative phase are listed too, so there can be more values than announced
    values: dict[str, tuple[float, ...]] = {}
    found = 0
    for section in labeled_sections(lines[lines.index(header) + 1 :]):
        name = section.label.rstrip(':').strip()
        numbers = []
        for token in section.tokens:
            try:
                numbers.append(float(token))
            except ValueError:
                # Anything that is not a number ends the section
                break
        if not numbers:
            if found >= n:
                # Trailing data after the last parameter
                break
            raise ReportParseError(
                f'No values for parameter {name} in parameter file', section=name, path=path
            )
        values[name] = tuple(numbers)
        found += len(numbers)
    if found < n:
        section = list(values)[-1] if values else 'parameters'
        raise ReportParseError(
            f'Parameter file has {found} values but the header announces {n}',
            section=section,
            path=path,
        )
    return ParFile(number_of_parameters=n, ofv=ofv, max_gradient=gradient, values=values)


@dataclass(frozen=True)
class StdFile:
    """Contents of a ``.std`` file

    ``rows`` holds (name, value, standard error) in file order. Names of vector
    quantities are repeated, one row per element. The standard error is None if
    the file has no std.dev column or the value is missing in a row.
    """

    rows: tuple[tuple[str, float, Optional[float]], ...]

    def grouped(self) -> dict[str, list[tuple[float, Optional[float]]]]:
        groups: dict[str, list[tuple[float, Optional[float]]]] = {}
        for name, value, se in self.rows:
            groups.setdefault(name, []).append((value, se))
        return groups

    def standard_errors(self) -> dict[str, Optional[float]]:
        """Standard error by name, elements of vectors as name[i]"""
        ses = {}
        for name, values in self.grouped().items():
            if len(values) == 1:
                ses[name] = values[0][1]
            else:
                for i, (_, se) in enumerate(values, start=1):
                    ses[f'{name}[{i}]'] = se
        return ses


def _column_positions(header: str) -> dict[str, int]:
    positions = {}
    for i, token in enumerate(header.lower().split()):
        key = token.replace('_', '.').rstrip(':')
        if key in ('std.dev', 'std.dev.', 'stddev', 'std', 'sd', 'se'):
            key = 'std.dev'
        positions.setdefault(key, i)
    return positions


def parse_std(content: str, path=None) -> StdFile:
    lines = content.splitlines()
    header_index = None
    for i, line in enumerate(lines):
        lower = line.lower()
        if 'name' in lower.split() and 'value' in lower.split():
            header_index = i
            break
    if header_index is None:
        raise ReportParseError(
            'Standard error file has no header with name and value columns',
            section='std header',
            path=path,
        )
    positions = _column_positions(lines[header_index])
    name_col = positions['name']
    value_col = positions['value']
    se_col = positions.get('std.dev')

    rows = []
    for line in lines[header_index + 1 :]:
        tokens = line.split()
        if not tokens:
            continue
        if len(tokens) <= value_col or not tokens[0].lstrip('-').isdigit():
            # End of table
            break
        name = tokens[name_col]
        value = _to_float(tokens[value_col], name, path)
        se = None
        if se_col is not None and len(tokens) > se_col:
            se = _to_float(tokens[se_col], name, path)
            if not math.isfinite(se):
                se = None
        rows.append((name, value, se))
    return StdFile(rows=tuple(rows))


@dataclass(frozen=True)
class CorFile:
    log_determinant_hessian: Optional[float]
    correlation_matrix: pd.DataFrame


def _unique_names(names: list[str]) -> list[str]:
    counts: dict[str, int] = {}
    for name in names:
        counts[name] = counts.get(name, 0) + 1
    seen: dict[str, int] = {}
    unique = []
    for name in names:
        if counts[name] == 1:
            unique.append(name)
        else:
            seen[name] = seen.get(name, 0) + 1
            unique.append(f'{name}[{seen[name]}]')
    return unique


def parse_cor(content: str, path=None) -> CorFile:
    lines = content.splitlines()
    log_det = None
    for line in lines:
        log_det = _header_float(HESSIAN_DETERMINANT, line)
        if log_det is not None:
            break

    header_index = None
    for i, line in enumerate(lines):
        tokens = line.lower().split()
        if 'name' in tokens and 'value' in tokens:
            header_index = i
            break
    if header_index is None:
        raise ReportParseError(
            'Correlation file has no header with name and value columns',
            section='cor header',
            path=path,
        )
    positions = _column_positions(lines[header_index])
    name_col = positions['name']
    # Correlations follow the std.dev column
    first_corr = positions.get('std.dev', positions['value']) + 1

    names = []
    rows = []
    for line in lines[header_index + 1 :]:
        tokens = line.split()
        if not tokens:
            continue
        if not tokens[0].isdigit() or len(tokens) <= first_corr:
            break
        name = tokens[name_col]
        correlations = [_to_float(t, name, path) for t in tokens[first_corr:]]
        names.append(name)
        rows.append(correlations)

    n = len(rows)
    matrix = np.full((n, n), np.nan)
    for i, correlations in enumerate(rows):
        for j, value in enumerate(correlations[: i + 1]):
            matrix[i, j] = value
            matrix[j, i] = value
    names = _unique_names(names)
    df = pd.DataFrame(matrix, index=names, columns=names)
    return CorFile(log_determinant_hessian=log_det, correlation_matrix=df)


@dataclass(frozen=True)
class RepFile:
    """Contents of the report written by a generated template"""

    time_label: Optional[str] = None
    time: tuple[float, ...] = ()
    trajectories: dict[str, tuple[float, ...]] = field(default_factory=dict)
    reference_values: dict[str, float] = field(default_factory=dict)
    variables: dict[str, float] = field(default_factory=dict)


def parse_rep(content: str, path=None) -> RepFile:
    time_label = None
    time: tuple[float, ...] = ()
    trajectories = {}
    reference_values = {}
    variables = {}
    for section in labeled_sections(content.splitlines()):
        m = REP_LABEL.match('#' + section.label)
        if m is None:
            continue
        kind, name = m.group(1).lower(), m.group(2)
        label = f'{kind}: {name}'
        if kind not in ('time', 'trajectory', 'reference', 'variable'):
            continue
        if not section.tokens:
            raise ReportParseError(f'Report section {label} has no values', section=label, path=path)
        values = tuple(_to_float(token, label, path) for token in section.tokens)
        if kind == 'time':
            time_label, time = name, values
        elif kind == 'trajectory':
            trajectories[name] = values
        elif kind == 'reference':
            reference_values[name] = values[0]
        else:
            variables[name] = values[0]

    if trajectories and time_label is None:
        raise ReportParseError('Report has trajectories but no time index', section='time', path=path)
    for name, values in trajectories.items():
        if len(values) < len(time):
            raise ReportParseError(
                f'Trajectory {name} has {len(values)} values but the time index has {len(time)}',
                section=f'trajectory: {name}',
                path=path,
            )
        # Values beyond the time index are ignored
        trajectories[name] = values[: len(time)]
    return RepFile(
        time_label=time_label,
        time=time,
        trajectories=trajectories,
        reference_values=reference_values,
        variables=variables,
    )


def read_par(path: Union[str, Path]) -> ParFile:
    return parse_par(read_text(path), path=path)


def read_std(path: Union[str, Path]) -> StdFile:
    return parse_std(read_text(path), path=path)


def read_cor(path: Union[str, Path]) -> CorFile:
    return parse_cor(read_text(path), path=path)


def read_rep(path: Union[str, Path]) -> RepFile:
    return parse_rep(read_text(path), path=path)
