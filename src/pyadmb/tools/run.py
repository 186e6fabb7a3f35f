from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Optional, Union

import pyadmb
from pyadmb.errors import ToolNotFoundError
from pyadmb.internals.fs.path import normalize_user_given_path
from pyadmb.model import ModelSpec
from pyadmb.model.data import as_dataframe
from pyadmb.model.external.admb import render_model
from pyadmb.workflows import ConvergenceStatus, FitResult, Log

from .external.admb import ADMBConfiguration, execute_model, parse_modelfit_results

logger = logging.getLogger(__name__)


def fit(
    spec: ModelSpec,
    data: Any,
    timeout: Optional[float] = None,
    path: Optional[Union[str, Path]] = None,
    config: Optional[ADMBConfiguration] = None,
) -> FitResult:
    """Fit a model with ADMB

    The model is rendered, compiled and run and the report files are read
    into a FitResult.

    Parameters
    ----------
    spec : ModelSpec
        The model to fit
    data : pd.DataFrame
        Dataset with the columns of the data bindings, or path to a csv file
    timeout : float
        Time budget in seconds for compiling and running. Default is the
        default_timeout of the configuration
    path : Path
        Directory in which to keep the generated input, the report files and
        results.json. If None nothing is kept
    config : ADMBConfiguration
        ADMB configuration. The module configuration is used if None

    Returns
    -------
    FitResult
        Results of the fit. The status tells if the estimation converged

    Raises
    ------
    SpecValidationError
        If the model cannot be rendered with the data
    ToolNotFoundError
        If ADMB cannot be found
    CompilationError
        If the generated template does not compile
    ExecutionTimeout
        If the fit did not finish within the time budget
    ReportParseError
        If the report files cannot be read

    Examples
    --------
    >>> from pyadmb import ModelSpec, Parameter, fit
    >>> spec = ModelSpec.create(
    ...     'hake',
    ...     parameters=[
    ...         Parameter.create('r', 0.5, lower=0.2, upper=0.8),
    ...         Parameter.create('K', 10000, lower=5000, upper=20000),
    ...     ],
    ...     data_bindings={'year': 'time', 'catch': 'catch', 'cpue': 'index'},
    ... )
    >>> res = fit(spec, 'hake.csv', timeout=60)     # doctest: +SKIP
    >>> res.status      # doctest: +SKIP
    <ConvergenceStatus.CONVERGED: 'Converged'>
    """
    if config is None:
        config = pyadmb.tools.external.admb.conf
    rendered = render_model(spec, data)

    path = normalize_user_given_path(path)
    if path is None:
        with TemporaryDirectory(prefix=f'pyadmb_{spec.name}-') as tmp:
            return _fit(spec, rendered, Path(tmp), config, timeout)
    res = _fit(spec, rendered, path, config, timeout)
    res.to_json(path / 'results.json')
    return res


def _fit(spec, rendered, path, config, timeout) -> FitResult:
    logger.info('Fitting %s', spec.name)
    bundle = execute_model(rendered, path, config=config, timeout=timeout)
    res = parse_modelfit_results(
        bundle,
        spec.parameters,
        gradient_tolerance=config.gradient_tolerance,
        boundary_tolerance=config.boundary_tolerance,
    )
    if res.status is ConvergenceStatus.CONVERGED:
        logger.info('%s converged with OFV %s', spec.name, res.ofv)
    else:
        logger.warning('%s did not converge: %s', spec.name, res.status)
    return res


def fit_many(
    specs: Sequence[ModelSpec],
    data: Any,
    timeout: Optional[float] = None,
    path: Optional[Union[str, Path]] = None,
    config: Optional[ADMBConfiguration] = None,
    ncores: Optional[int] = None,
) -> list[FitResult]:
    """Fit independent models

    The fits run in parallel using the dask threaded scheduler unless the
    dispatcher option of the configuration is ``serial``. Each fit has its own
    temporary directory and time budget.

    A fit for which ADMB cannot be found gives a FitResult with status
    ExternalToolMissing. Any other error is raised.

    Parameters
    ----------
    specs : list
        The models to fit. The names must be unique if *path* is given
    data : pd.DataFrame
        Dataset shared by all models, or path to a csv file
    timeout : float
        Time budget in seconds for each fit
    path : Path
        Directory in which each fit gets a subdirectory named after its model
    config : ADMBConfiguration
        ADMB configuration. The module configuration is used if None
    ncores : int
        Maximum number of fits running at the same time. Default is the number
        of cores

    Returns
    -------
    list
        One FitResult per model in the order of *specs*
    """
    specs = list(specs)
    path = normalize_user_given_path(path)
    if path is not None:
        names = [spec.name for spec in specs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f'Model names must be unique, got duplicates: {duplicates}')
    df = as_dataframe(data)

    def run_one(spec):
        subpath = None if path is None else path / spec.name
        try:
            return fit(spec, df, timeout=timeout, path=subpath, config=config)
        except ToolNotFoundError as e:
            logger.error('Could not fit %s: %s', spec.name, e)
            return FitResult(
                model_name=spec.name,
                status=ConvergenceStatus.EXTERNAL_TOOL_MISSING,
                diagnostics=str(e),
                log=Log().log_error(str(e)),
            )

    if pyadmb.conf.dispatcher == 'serial' or len(specs) <= 1:
        return [run_one(spec) for spec in specs]

    from dask.threaded import get

    dsk = {f'fit-{i}': (run_one, spec) for i, spec in enumerate(specs)}
    dsk['results'] = (list, [f'fit-{i}' for i in range(len(specs))])
    return get(dsk, 'results', num_workers=ncores)
