import shutil

import pytest

from pyadmb.errors import ReportParseError
from pyadmb.internals.immutable import frozenmapping
from pyadmb.model import Parameter, Parameters
from pyadmb.tools.external.admb import ExecutionBundle, parse_modelfit_results
from pyadmb.workflows import ConvergenceStatus


@pytest.fixture
def parameters():
    return Parameters.create(
        [
            Parameter.create('r', 0.5, lower=0.2, upper=0.8),
            Parameter.create('K', 10000, lower=5000, upper=20000),
        ]
    )


@pytest.fixture
def create_bundle(tmp_path, datadir):
    def _create(files=None, stdout='', stderr='', returncode=0):
        if files is None:
            files = {
                '.par': 'schaefer.par',
                '.std': 'schaefer.std',
                '.cor': 'schaefer.cor',
                '.rep': 'schaefer.rep',
            }
        report_paths = {}
        for suffix, filename in files.items():
            path = tmp_path / f'schaefer{suffix}'
            shutil.copy2(datadir / filename, path)
            report_paths[suffix] = path
        return ExecutionBundle(
            name='schaefer',
            path=tmp_path,
            returncode=returncode,
            stdout=stdout,
            stderr=stderr,
            report_paths=frozenmapping(report_paths),
            commands=(),
        )

    return _create


def test_converged(create_bundle, parameters):
    res = parse_modelfit_results(create_bundle(), parameters)
    assert res.status == ConvergenceStatus.CONVERGED
    assert res.converged
    assert res.model_name == 'schaefer'
    assert res.parameter_names == ['r', 'K']
    r = res.estimate('r')
    assert r.estimate == pytest.approx(0.482174963711)
    assert r.standard_error == pytest.approx(0.061234)
    assert not r.bound_active
    assert res.ofv == pytest.approx(-35.2718640931)
    assert res.max_gradient == pytest.approx(3.21456e-06)
    assert res.time_label == 'year'
    assert len(res.time) == 20
    assert res.trajectory_names == ['biomass', 'depletion']
    assert res.reference_values['MSY'] == 1317.23
    assert res.reference_standard_errors['MSY'] == pytest.approx(98.765)
    assert res.variables['sigma'] == 0.0452
    assert res.log_determinant_hessian == pytest.approx(3.456789)
    assert res.correlation_matrix.loc['r', 'K'] == pytest.approx(-0.8123)
    assert len(res.log) == 0
    assert res.diagnostics == 'schaefer exited with code 0'


def test_estimate_count_matches_parameter_file(create_bundle):
    res = parse_modelfit_results(create_bundle())
    assert len(res.estimates) == 2
    assert res.parameter_names == ['r', 'K']
    assert not any(e.bound_active for e in res.estimates)


def test_order_follows_parameters(create_bundle, parameters):
    res = parse_modelfit_results(create_bundle(), Parameters.create([parameters[1], parameters[0]]))
    assert res.parameter_names == ['K', 'r']


def test_missing_standard_errors(create_bundle, parameters):
    bundle = create_bundle(files={'.par': 'schaefer.par', '.std': 'no_se.std'})
    res = parse_modelfit_results(bundle, parameters)
    assert res.status == ConvergenceStatus.CONVERGED
    assert all(e.standard_error is None for e in res.estimates)
    assert len(res.log.warnings) == 2
    assert res.trajectories == frozenmapping()
    assert res.correlation_matrix is None


def test_large_gradient(create_bundle, parameters):
    bundle = create_bundle(files={'.par': 'not_converged.par'})
    res = parse_modelfit_results(bundle, parameters)
    assert res.status == ConvergenceStatus.NUMERICAL_FAILURE
    assert 'Maximum gradient component' in res.diagnostics
    assert len(res.estimates) == 2
    r = res.estimate('r')
    assert r.bound_active
    assert not res.estimate('K').bound_active
    assert len(res.log.errors) == 1


def test_gradient_tolerance(create_bundle, parameters):
    bundle = create_bundle(files={'.par': 'not_converged.par'})
    res = parse_modelfit_results(bundle, parameters, gradient_tolerance=0.1)
    assert res.status == ConvergenceStatus.CONVERGED


def test_max_iterations(create_bundle, parameters):
    stdout = 'Iteration 500\n  - Exceeded maximum number of function evaluations\n'
    res = parse_modelfit_results(create_bundle(stdout=stdout), parameters)
    assert res.status == ConvergenceStatus.MAX_ITERATIONS
    assert 'Exceeded maximum number of function evaluations' in res.diagnostics


def test_max_iterations_excessive_function_evaluations(create_bundle, parameters):
    stdout = 'Exiting without success due to excessive function evaluations (maxfn=500)\n'
    bundle = create_bundle(files={'.par': 'not_converged.par'}, stdout=stdout)
    res = parse_modelfit_results(bundle, parameters)
    assert res.status == ConvergenceStatus.MAX_ITERATIONS
    assert 'excessive function evaluations (maxfn=500)' in res.diagnostics


def test_hessian_not_positive_definite(create_bundle, parameters):
    stdout = 'Error -- Hessian does not appear to be positive definite\n'
    bundle = create_bundle(files={'.par': 'schaefer.par'}, stdout=stdout)
    res = parse_modelfit_results(bundle, parameters)
    assert res.status == ConvergenceStatus.NUMERICAL_FAILURE
    assert len(res.estimates) == 2


def test_no_parameter_file(create_bundle, parameters):
    bundle = create_bundle(files={}, returncode=1, stderr='Segmentation fault')
    res = parse_modelfit_results(bundle, parameters)
    assert res.status == ConvergenceStatus.NUMERICAL_FAILURE
    assert res.estimates == ()
    assert res.ofv is None
    assert 'exit code 1' in res.diagnostics
    assert 'Segmentation fault' in res.diagnostics


def test_converged_missing_parameter(create_bundle):
    parameters = Parameters.create(
        [
            Parameter.create('r', 0.5, lower=0.2, upper=0.8),
            Parameter.create('K', 10000, lower=5000, upper=20000),
            Parameter.create('M', 0.2, lower=0.0, upper=1.0),
        ]
    )
    with pytest.raises(ReportParseError) as excinfo:
        parse_modelfit_results(create_bundle(), parameters)
    assert excinfo.value.section == 'M'


def test_truncated_parameter_file(create_bundle, parameters):
    bundle = create_bundle(files={'.par': 'truncated.par'})
    with pytest.raises(ReportParseError) as excinfo:
        parse_modelfit_results(bundle, parameters)
    assert excinfo.value.section == 'K'
