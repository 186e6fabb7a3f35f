import os
import stat
from pathlib import Path
from textwrap import dedent

import pytest


@pytest.fixture(scope='session')
def testdata():
    """Test data (root) folder."""
    return Path(__file__).resolve().parent / 'testdata'


@pytest.fixture(scope='session')
def datadir(testdata):
    return testdata / 'admb'


@pytest.fixture(scope='session')
def schaefer_spec(datadir):
    from pyadmb.model import ModelSpec

    return ModelSpec.read(datadir / 'schaefer.json')


@pytest.fixture(scope='session')
def catch_survey(datadir):
    from pyadmb.model import read_dataset

    return read_dataset(datadir / 'catch_survey.csv')


def write_script(path: Path, content: str) -> Path:
    path.write_text('#!/bin/sh\n' + dedent(content))
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def fake_admb(tmp_path, datadir):
    """Installation directory with an admb script that builds a fake model executable

    The executable checks its arguments and copies the schaefer reports from the
    test data as its own report files.
    """
    if os.name == 'nt':
        pytest.skip('Fake ADMB scripts need a POSIX shell')

    def _create(run_body=None, compile_body=None):
        bindir = tmp_path / 'admb' / 'bin'
        bindir.mkdir(parents=True, exist_ok=True)
        if run_body is None:
            run_body = f"""\
                test "$1" = "-ind" || exit 3
                test -f "$2" || exit 3
                test "$3" = "-ainp" || exit 3
                test -f "$4" || exit 3
                name=$(basename "$0")
                for suffix in par std cor rep; do
                    cp "{datadir}/schaefer.$suffix" "$name.$suffix"
                done
                echo "Estimating row 1 out of 1 for hessian"
                """
        if compile_body is None:
            compile_body = """\
                for last; do :; done
                test -f "$last.tpl" || exit 2
                echo "*** Parse: $last.tpl"
                cat > "$last" <<'END_OF_MODEL'
                #!/bin/sh
                END_OF_MODEL
                cat run_body >> "$last"
                chmod +x "$last"
                """
            compile_body = compile_body.replace('run_body', str(tmp_path / 'admb' / 'run_body'))
            (tmp_path / 'admb' / 'run_body').write_text(dedent(run_body))
        write_script(bindir / 'admb', compile_body)
        return tmp_path / 'admb'

    return _create


@pytest.fixture
def admb_config(tmp_path):
    from pyadmb.tools.external.admb import ADMBConfiguration

    def _create(**kwargs):
        kwargs.setdefault('temporary_directory', tmp_path / 'tmp')
        return ADMBConfiguration(**kwargs)

    return _create


@pytest.fixture(autouse=True)
def no_config_file(monkeypatch):
    monkeypatch.setenv('PYADMBNOCONFIGFILE', '1')
