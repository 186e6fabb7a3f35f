from __future__ import annotations

import logging
import math
import re
from typing import Optional

from pyadmb.errors import ReportParseError
from pyadmb.internals.immutable import frozenmapping
from pyadmb.model import Parameters
from pyadmb.workflows import ConvergenceStatus, FitResult, Log, ParameterEstimate

from .results_file import CorFile, ParFile, RepFile, StdFile, read_cor, read_par, read_rep, read_std
from .run import ExecutionBundle

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGES = (
    re.compile(r'maximum\s+number\s+of\s+function\s+evaluations', re.IGNORECASE),
    re.compile(r'exceeded\s+(?:the\s+)?number\s+of\s+function\s+evaluations', re.IGNORECASE),
    re.compile(r'too\s+many\s+function\s+evaluations', re.IGNORECASE),
    re.compile(r'excessive\s+function\s+evaluations', re.IGNORECASE),
)

NUMERICAL_FAILURE_MESSAGES = (
    re.compile(r'hessian\s+does\s+not\s+appear\s+to\s+be\s+positive\s+definite', re.IGNORECASE),
    re.compile(r'function\s+minimizer\s+not\s+converging', re.IGNORECASE),
    re.compile(r'error\s+in\s+matrix\s+inverse', re.IGNORECASE),
    re.compile(r'hessian\s+matrix\s+is\s+singular', re.IGNORECASE),
    re.compile(r'\bnan\b.*(?:objective|gradient)', re.IGNORECASE),
)


def _matching_lines(text: str, patterns) -> list[str]:
    found = []
    for line in text.splitlines():
        if any(pattern.search(line) for pattern in patterns):
            found.append(line.strip())
    return found


def parse_modelfit_results(
    bundle: ExecutionBundle,
    parameters: Optional[Parameters] = None,
    gradient_tolerance: Optional[float] = None,
    boundary_tolerance: Optional[float] = None,
) -> FitResult:
    """Create a FitResult from the reports of a model run

    The convergence status is decided in this order:

    #. MaxIterations if the run output says that the function evaluation limit
       was reached
    #. NumericalFailure if there is no parameter file, the objective function
       value is not finite, the maximum gradient component is above
       *gradient_tolerance* or the run output reports a numerical problem
    #. Converged otherwise

    Parameters
    ----------
    bundle : ExecutionBundle
        Outcome of :func:`execute_model`
    parameters : Parameters
        Parameters of the model. Used for the order of the estimates and the
        bounds. If None all parameters of the parameter file are used, unbounded
    gradient_tolerance : float
        Largest maximum gradient component accepted for convergence
    boundary_tolerance : float
        Relative distance to a bound within which an estimate is at the bound

    Returns
    -------
    FitResult
        The results

    Raises
    ------
    ReportParseError
        If a report file is truncated or malformed, or if a converged run
        lacks an estimate for one of the parameters
    """
    from . import conf

    if gradient_tolerance is None:
        gradient_tolerance = conf.gradient_tolerance
    if boundary_tolerance is None:
        boundary_tolerance = conf.boundary_tolerance

    log = Log()
    output = bundle.stdout + '\n' + bundle.stderr
    paths = bundle.report_paths

    par = read_par(paths['.par']) if '.par' in paths else None
    std = read_std(paths['.std']) if '.std' in paths else None
    cor = read_cor(paths['.cor']) if '.cor' in paths else None
    rep = read_rep(paths['.rep']) if '.rep' in paths else None

    status, messages = _convergence_status(bundle, par, output, gradient_tolerance)
    for message in messages:
        log = log.log_error(message)

    estimates = ()
    if par is not None:
        estimates, log = _parameter_estimates(par, std, parameters, boundary_tolerance, status, log)

    result = FitResult(
        model_name=bundle.name,
        status=status,
        estimates=estimates,
        diagnostics=_diagnostics(bundle, messages),
        ofv=None if par is None else par.ofv,
        max_gradient=None if par is None else par.max_gradient,
        log=log,
        **_report_values(rep, std),
        **_correlation_values(cor),
    )
    logger.debug('Results of %s: %s', bundle.name, status)
    return result


def _convergence_status(bundle, par: Optional[ParFile], output: str, gradient_tolerance: float):
    max_iterations = _matching_lines(output, MAX_ITERATIONS_MESSAGES)
    if max_iterations:
        return ConvergenceStatus.MAX_ITERATIONS, max_iterations

    messages = _matching_lines(output, NUMERICAL_FAILURE_MESSAGES)
    if par is None:
        messages.append(f'No parameter file was written (exit code {bundle.returncode})')
    else:
        if not math.isfinite(par.ofv):
            messages.append(f'Objective function value is {par.ofv}')
        if not math.isfinite(par.max_gradient) or abs(par.max_gradient) > gradient_tolerance:
            messages.append(
                f'Maximum gradient component {par.max_gradient} is larger than '
                f'{gradient_tolerance}'
            )
    if messages:
        return ConvergenceStatus.NUMERICAL_FAILURE, messages
    return ConvergenceStatus.CONVERGED, []


def _parameter_estimates(
    par: ParFile,
    std: Optional[StdFile],
    parameters: Optional[Parameters],
    boundary_tolerance: float,
    status: ConvergenceStatus,
    log: Log,
):
    values = par.estimates
    ses = std.standard_errors() if std is not None else {}
    names = parameters.names if parameters is not None else list(values)

    estimates = []
    for name in names:
        if name not in values:
            if status is ConvergenceStatus.CONVERGED:
                raise ReportParseError(
                    f'Parameter file has no estimate for parameter {name}', section=name
                )
            continue
        estimate = values[name]
        se = ses.get(name)
        if se is None and (parameters is None or not parameters[name].fix):
            log = log.log_warning(f'No standard error available for parameter {name}')
        bound_active = False
        if parameters is not None:
            bound_active = _at_bound(parameters[name], estimate, boundary_tolerance)
            if bound_active:
                log = log.log_warning(
                    f'Estimate of parameter {name} ({estimate}) is at one of its bounds'
                )
        estimates.append(
            ParameterEstimate(
                name=name, estimate=estimate, standard_error=se, bound_active=bound_active
            )
        )
    return tuple(estimates), log


def _at_bound(parameter, estimate: float, boundary_tolerance: float) -> bool:
    if not (math.isfinite(parameter.lower) and math.isfinite(parameter.upper)):
        return False
    margin = boundary_tolerance * (parameter.upper - parameter.lower)
    return estimate - parameter.lower <= margin or parameter.upper - estimate <= margin


def _report_values(rep: Optional[RepFile], std: Optional[StdFile]):
    if rep is None:
        return {}
    ses = std.standard_errors() if std is not None else {}
    reference_ses = {
        name: ses[name] for name in rep.reference_values if ses.get(name) is not None
    }
    return {
        'time_label': rep.time_label,
        'time': rep.time,
        'trajectories': frozenmapping(rep.trajectories),
        'reference_values': frozenmapping(rep.reference_values),
        'reference_standard_errors': frozenmapping(reference_ses),
        'variables': frozenmapping(rep.variables),
    }


def _correlation_values(cor: Optional[CorFile]):
    if cor is None:
        return {}
    return {
        'log_determinant_hessian': cor.log_determinant_hessian,
        'correlation_matrix': cor.correlation_matrix,
    }


def _diagnostics(bundle: ExecutionBundle, messages: list[str]) -> str:
    lines = [f'{bundle.name} exited with code {bundle.returncode}']
    lines.extend(messages)
    stderr = bundle.stderr.strip()
    if stderr:
        lines.append(stderr[-2000:])
    return '\n'.join(lines)
