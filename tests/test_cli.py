import sys

import pytest

import pyadmb
from pyadmb import cli
from pyadmb.config import ConfigurationContext
from pyadmb.errors import SpecValidationError
from pyadmb.tools.external.admb import conf as admb_conf


@pytest.fixture(autouse=True)
def restore_excepthook(monkeypatch):
    monkeypatch.setattr(sys, 'excepthook', sys.excepthook)


def test_info(capsys):
    cli.main(['info'])
    captured = capsys.readouterr()
    assert pyadmb.__version__ in captured.out
    assert 'admb' in captured.out
    assert 'templates' in captured.out
    assert 'fox' in captured.out and 'schaefer' in captured.out


def test_render(tmp_path, datadir, capsys):
    args = [
        'render',
        str(datadir / 'schaefer.json'),
        str(datadir / 'catch_survey.csv'),
        '-o',
        str(tmp_path / 'out'),
    ]
    cli.main(args)
    captured = capsys.readouterr()
    assert 'schaefer.tpl' in captured.out
    for suffix in ('tpl', 'dat', 'pin'):
        assert (tmp_path / 'out' / f'schaefer.{suffix}').is_file()


def test_render_invalid(tmp_path, datadir):
    (tmp_path / 'data.csv').write_text('year,catch\n1990,100\n')
    args = ['render', str(datadir / 'schaefer.json'), str(tmp_path / 'data.csv')]
    with pytest.raises(SpecValidationError):
        cli.main(args)


def test_missing_input(tmp_path, datadir):
    with pytest.raises(FileNotFoundError):
        cli.main(['render', str(tmp_path / 'nothing.json'), str(datadir / 'catch_survey.csv')])


def test_fit_and_print(tmp_path, datadir, fake_admb, capsys):
    path = tmp_path / 'fit'
    with ConfigurationContext(
        admb_conf, admb_path=fake_admb(), temporary_directory=tmp_path / 'tmp'
    ):
        cli.main(
            [
                'fit',
                str(datadir / 'schaefer.json'),
                str(datadir / 'catch_survey.csv'),
                '--timeout',
                '30',
                '--path',
                str(path),
            ]
        )
    captured = capsys.readouterr()
    assert 'Converged' in captured.out
    assert 'MSY' in captured.out

    cli.main(['results', 'print', str(path)])
    captured = capsys.readouterr()
    assert captured.out.startswith('FitResult')

    cli.main(['results', 'print', str(path / 'results.json'), '--table'])
    captured = capsys.readouterr()
    assert 'Estimate' in captured.out


def test_results_print_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        cli.main(['results', 'print', str(tmp_path / 'nothing')])


def test_no_command(capsys):
    cli.main([])
    captured = capsys.readouterr()
    assert captured.out.startswith('usage: pyadmb')
