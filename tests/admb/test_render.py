import pandas as pd
import pytest

from pyadmb.errors import SpecValidationError
from pyadmb.model import ModelSpec, Parameter
from pyadmb.model.external.admb import parse_parameter_names, render_model, write_model


def _spec(parameters=None, data_bindings=None, **kwargs):
    if parameters is None:
        parameters = [
            Parameter.create('r', 0.5, lower=0.2, upper=0.8),
            Parameter.create('K', 10000, lower=5000, upper=20000),
        ]
    if data_bindings is None:
        data_bindings = {'year': 'time', 'catch': 'catch', 'cpue': 'index'}
    return ModelSpec.create(
        kwargs.pop('name', 'hake'), parameters=parameters, data_bindings=data_bindings, **kwargs
    )


def test_render(catch_survey):
    rendered = render_model(_spec(), catch_survey)
    assert rendered.name == 'hake'
    assert rendered.filenames == {'tpl': 'hake.tpl', 'dat': 'hake.dat', 'pin': 'hake.pin'}

    tpl = rendered.tpl
    assert tpl.index('DATA_SECTION') < tpl.index('PARAMETER_SECTION')
    assert tpl.index('PARAMETER_SECTION') < tpl.index('PROCEDURE_SECTION')
    assert tpl.index('PROCEDURE_SECTION') < tpl.index('REPORT_SECTION')
    assert '  init_vector obs_catch(1,nobs)\n' in tpl
    assert '  init_vector obs_index(1,nobs)\n' in tpl
    assert '  init_bounded_number r(0.2,0.8,1)\n' in tpl
    assert '  init_bounded_number K(5000.0,20000.0,1)\n' in tpl
    assert '  sdreport_number MSY\n' in tpl
    assert '  objective_function_value f\n' in tpl
    assert 'report << "# time: year" << endl;' in tpl
    assert 'report << "# trajectory: biomass" << endl;' in tpl
    assert 'report << "# reference: Fmsy" << endl;' in tpl

    dat = rendered.dat.splitlines()
    assert dat[:2] == ['# nobs', '20']
    assert dat[2] == '# obs_time (year)'
    assert dat[3].split()[0] == '1990.0'
    assert dat[4] == '# obs_catch (catch)'
    assert len(dat[5].split()) == 20
    assert dat[6] == '# obs_index (cpue)'
    assert dat[7].split()[0] == '4.6858'

    assert rendered.pin == '# r\n0.5\n# K\n10000.0\n'


def test_render_deterministic(catch_survey, tmp_path):
    spec = _spec()
    first = render_model(spec, catch_survey)
    second = render_model(spec, catch_survey.copy())
    assert first == second

    paths1 = write_model(first, tmp_path / 'a')
    paths2 = write_model(second, tmp_path / 'b')
    for kind in ('tpl', 'dat', 'pin'):
        assert paths1[kind].read_bytes() == paths2[kind].read_bytes()


def test_write_model(catch_survey, tmp_path):
    rendered = render_model(_spec(), catch_survey)
    paths = write_model(rendered, tmp_path / 'run')
    assert set(paths) == {'tpl', 'dat', 'pin'}
    assert paths['tpl'] == tmp_path / 'run' / 'hake.tpl'
    assert paths['pin'].read_text() == rendered.pin


def test_render_from_csv_path(datadir, catch_survey):
    assert render_model(_spec(), datadir / 'catch_survey.csv') == render_model(
        _spec(), catch_survey
    )


def test_parameter_names_round_trip(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('K', 10000, lower=5000, upper=20000),
            Parameter.create('r', 0.5, lower=0.2, upper=0.8, prior='normal(0.5, 0.1)'),
        ]
    )
    rendered = render_model(spec, catch_survey)
    assert parse_parameter_names(rendered.tpl) == ['K', 'r']


def test_init_outside_bounds(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('r', 0.9, lower=0.2, upper=0.8),
            Parameter.create('K', 10000, lower=5000, upper=20000),
        ]
    )
    with pytest.raises(SpecValidationError, match='r') as excinfo:
        render_model(spec, catch_survey)
    assert excinfo.value.name == 'r'


def test_duplicate_names(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('r', 0.5, lower=0.2, upper=0.8),
            Parameter.create('r', 0.6, lower=0.2, upper=0.8),
        ]
    )
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(spec, catch_survey)
    assert excinfo.value.name == 'r'


def test_missing_column(catch_survey):
    spec = _spec(data_bindings={'year': 'time', 'landings': 'catch', 'cpue': 'index'})
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(spec, catch_survey)
    assert excinfo.value.name == 'landings'


@pytest.mark.parametrize(
    'parameters, name',
    [
        (
            [
                Parameter.create('r', 0.5, lower=0.8, upper=0.2),
                Parameter.create('K', 10000, lower=5000, upper=20000),
            ],
            'r',
        ),
        (
            [
                Parameter.create('r', 0.5, lower=0.2),
                Parameter.create('K', 10000, lower=5000, upper=20000),
            ],
            'r',
        ),
        ([Parameter.create('r', 0.5, lower=0.2, upper=0.8)], 'K'),
        (
            [
                Parameter.create('r', 0.5, lower=0.2, upper=0.8),
                Parameter.create('K', 10000, lower=5000, upper=20000),
                Parameter.create('M', 0.2, lower=0.0, upper=1.0),
            ],
            'M',
        ),
        (
            [
                Parameter.create('r', 0.5, lower=0.2, upper=0.8),
                Parameter.create('K', 10000, lower=5000, upper=20000, prior='beta(2, 2)'),
            ],
            'K',
        ),
        (
            [
                Parameter.create('log', 0.5, lower=0.2, upper=0.8),
                Parameter.create('K', 10000, lower=5000, upper=20000),
            ],
            'log',
        ),
        (
            [
                Parameter.create('biomass', 0.5, lower=0.2, upper=0.8),
                Parameter.create('K', 10000, lower=5000, upper=20000),
            ],
            'biomass',
        ),
        (
            [
                Parameter.create('2r', 0.5, lower=0.2, upper=0.8),
                Parameter.create('K', 10000, lower=5000, upper=20000),
            ],
            '2r',
        ),
    ],
)
def test_invalid_parameters(catch_survey, parameters, name):
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(_spec(parameters=parameters), catch_survey)
    assert excinfo.value.name == name


def test_all_fixed(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('r', 0.5, lower=0.2, upper=0.8, fix=True),
            Parameter.create('K', 10000, lower=5000, upper=20000, fix=True),
        ]
    )
    with pytest.raises(SpecValidationError, match='estimated'):
        render_model(spec, catch_survey)


def test_invalid_model_name(catch_survey):
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(_spec(name='my model'), catch_survey)
    assert excinfo.value.name == 'my model'


@pytest.mark.parametrize(
    'bindings, name',
    [
        ({'year': 'time', 'catch': 'catch'}, 'index'),
        ({'year': 'time', 'catch': 'catch', 'cpue': 'index', 'effort': 'effort'}, 'effort'),
        ([('year', 'time'), ('catch', 'catch'), ('cpue', 'index'), ('cpue', 'index')], 'index'),
    ],
)
def test_invalid_bindings(catch_survey, bindings, name):
    df = catch_survey.assign(effort=1.0)
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(_spec(data_bindings=bindings), df)
    assert excinfo.value.name == name


def test_non_numeric_data(catch_survey):
    df = catch_survey.assign(catch=['a'] * len(catch_survey))
    with pytest.raises(SpecValidationError) as excinfo:
        render_model(_spec(), df)
    assert excinfo.value.name == 'catch'


def test_missing_catch(catch_survey):
    df = catch_survey.astype({'catch': 'float64'})
    df.loc[3, 'catch'] = float('nan')
    with pytest.raises(SpecValidationError, match='missing') as excinfo:
        render_model(_spec(), df)
    assert excinfo.value.name == 'catch'


def test_infinite_data(catch_survey):
    df = catch_survey.copy()
    df.loc[3, 'cpue'] = float('inf')
    with pytest.raises(SpecValidationError, match='infinite'):
        render_model(_spec(), df)


def test_missing_index_values(catch_survey):
    df = catch_survey.copy()
    df.loc[[0, 1], 'cpue'] = float('nan')
    rendered = render_model(_spec(), df)
    index_line = rendered.dat.splitlines()[7].split()
    assert index_line[:2] == ['-99.0', '-99.0']
    assert index_line[2] == '4.2821'


def test_empty_dataset():
    df = pd.DataFrame({'year': [], 'catch': [], 'cpue': []})
    with pytest.raises(SpecValidationError, match='no rows'):
        render_model(_spec(), df)


def test_no_time_binding(catch_survey):
    rendered = render_model(_spec(data_bindings={'catch': 'catch', 'cpue': 'index'}), catch_survey)
    assert '  init_vector obs_time(1,nobs)\n' in rendered.tpl
    assert 'report << "# time: time" << endl;' in rendered.tpl
    dat = rendered.dat.splitlines()
    assert dat[2] == '# obs_time'
    assert dat[3].split()[:3] == ['1.0', '2.0', '3.0']


def test_priors_and_phases(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('r', 0.5, lower=0.2, upper=0.8, prior='normal(0.5, 0.1)'),
            Parameter.create('K', 10000, lower=5000, upper=20000, fix=True),
        ]
    )
    tpl = render_model(spec, catch_survey).tpl
    assert '  f += 0.5 * square((r - 0.5) / 0.1);\n' in tpl
    assert '  init_bounded_number K(5000.0,20000.0,-1)\n' in tpl


def test_fox(catch_survey):
    tpl = render_model(_spec(template='fox'), catch_survey).tpl
    assert 'model hake (fox)' in tpl
    assert 'log(K)' in tpl


def test_beta_prior_below_one(catch_survey):
    spec = _spec(
        parameters=[
            Parameter.create('r', 0.5, lower=0.2, upper=0.8, prior='beta(0.5, 0.5)'),
            Parameter.create('K', 10000, lower=5000, upper=20000),
        ]
    )
    tpl = render_model(spec, catch_survey).tpl
    assert '  f += (0.5) * log(r) + (0.5) * log(1.0 - r);\n' in tpl
    assert '--' not in tpl.split('PROCEDURE_SECTION')[1]
