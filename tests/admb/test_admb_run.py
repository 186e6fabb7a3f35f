import json
from unittest import mock

import pytest

from pyadmb.errors import CompilationError, ExecutionTimeout, ToolNotFoundError
from pyadmb.model.external.admb import render_model
from pyadmb.tools.external.admb import admb_path, execute_model


@pytest.fixture
def rendered(schaefer_spec, catch_survey):
    return render_model(schaefer_spec, catch_survey)


def test_admb_path(tmp_path, fake_admb, admb_config):
    install = fake_admb()
    assert admb_path(admb_config(admb_path=install)) == install / 'bin' / 'admb'
    assert admb_path(admb_config(admb_path=install / 'bin' / 'admb')) == install / 'bin' / 'admb'


def test_admb_path_on_path(tmp_path, fake_admb, admb_config, monkeypatch):
    install = fake_admb()
    monkeypatch.setenv('PATH', str(install / 'bin'))
    assert admb_path(admb_config()) == install / 'bin' / 'admb'
    monkeypatch.setenv('PATH', str(tmp_path / 'empty'))
    with pytest.raises(ToolNotFoundError):
        admb_path(admb_config())


def test_tool_not_found_before_spawn(tmp_path, rendered, admb_config):
    config = admb_config(admb_path=tmp_path / 'no_admb_here')
    with mock.patch('subprocess.Popen') as popen:
        with pytest.raises(ToolNotFoundError) as excinfo:
            execute_model(rendered, tmp_path / 'run', config=config, timeout=10)
    popen.assert_not_called()
    assert excinfo.value.path == tmp_path / 'no_admb_here'
    assert not (tmp_path / 'tmp').exists() or not any((tmp_path / 'tmp').iterdir())


def test_execute_model(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(admb_path=fake_admb())
    path = tmp_path / 'run'
    bundle = execute_model(rendered, path, config=config, timeout=30)

    assert bundle.name == 'schaefer'
    assert bundle.returncode == 0
    assert 'Estimating row 1' in bundle.stdout
    assert set(bundle.report_paths) == {'.par', '.std', '.cor', '.rep'}
    assert bundle.report_paths['.par'] == path / 'schaefer.par'
    assert bundle.report_paths['.par'].is_file()
    for suffix in ('.tpl', '.dat', '.pin'):
        assert (path / f'schaefer{suffix}').read_text() == getattr(rendered, suffix[1:])
    assert 'Parse: schaefer.tpl' in (path / 'compile.stdout').read_text()

    assert len(bundle.commands) == 2
    compile_args = bundle.commands[0].args
    assert compile_args[1:] == ('-f', 'schaefer')
    run_args = bundle.commands[1].args
    assert run_args[1:] == ('-ind', 'schaefer.dat', '-ainp', 'schaefer.pin', '-nox')

    with open(path / 'admb.json') as fh:
        record = json.load(fh)
    assert record['plugin'] == 'admb'
    assert [c['returncode'] for c in record['commands']] == [0, 0]

    assert not any((tmp_path / 'tmp').iterdir())


def test_execute_model_nonzero_exit_passed_through(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(admb_path=fake_admb(run_body='echo "bad data" >&2\nexit 7\n'))
    bundle = execute_model(rendered, tmp_path / 'run', config=config, timeout=30)
    assert bundle.returncode == 7
    assert bundle.stderr.strip() == 'bad data'
    assert len(bundle.report_paths) == 0


def test_compilation_error(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(
        admb_path=fake_admb(compile_body='echo "error: syntax error at line 3" >&2\nexit 1\n')
    )
    with pytest.raises(CompilationError) as excinfo:
        execute_model(rendered, tmp_path / 'run', config=config, timeout=30)
    assert excinfo.value.returncode == 1
    assert 'syntax error' in excinfo.value.stderr
    assert 'syntax error' in str(excinfo.value)
    assert 'syntax error' in (tmp_path / 'run' / 'compile.stderr').read_text()
    assert not any((tmp_path / 'tmp').iterdir())


def test_no_executable(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(admb_path=fake_admb(compile_body='exit 0\n'))
    with pytest.raises(ToolNotFoundError):
        execute_model(rendered, tmp_path / 'run', config=config, timeout=30)
    assert not any((tmp_path / 'tmp').iterdir())


def test_admb_script_not_executable(tmp_path, rendered, fake_admb, admb_config):
    install = fake_admb()
    script = install / 'bin' / 'admb'
    script.chmod(0o644)
    with pytest.raises(ToolNotFoundError) as excinfo:
        admb_path(admb_config(admb_path=script))
    assert excinfo.value.path == script
    with pytest.raises(ToolNotFoundError):
        admb_path(admb_config(admb_path=install))
    with mock.patch('subprocess.Popen') as popen:
        with pytest.raises(ToolNotFoundError):
            config = admb_config(admb_path=script)
            execute_model(rendered, tmp_path / 'run', config=config, timeout=10)
    popen.assert_not_called()


def test_executable_cannot_be_started(tmp_path, rendered, fake_admb, admb_config):
    compile_body = 'for last; do :; done\necho "not a program" > "$last"\n'
    config = admb_config(admb_path=fake_admb(compile_body=compile_body))
    with pytest.raises(ToolNotFoundError) as excinfo:
        execute_model(rendered, tmp_path / 'run', config=config, timeout=30)
    assert excinfo.value.path.name == 'schaefer'
    assert not any((tmp_path / 'tmp').iterdir())


def test_compile_timeout(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(admb_path=fake_admb(compile_body='sleep 30\n'))
    with pytest.raises(ExecutionTimeout) as excinfo:
        execute_model(rendered, tmp_path / 'run', config=config, timeout=1)
    assert excinfo.value.stage == 'compile'
    assert excinfo.value.timeout == 1
    assert not any((tmp_path / 'tmp').iterdir())


def test_run_timeout(tmp_path, rendered, fake_admb, admb_config):
    config = admb_config(admb_path=fake_admb(run_body='sleep 30\n'))
    with pytest.raises(ExecutionTimeout) as excinfo:
        execute_model(rendered, tmp_path / 'run', config=config, timeout=2)
    assert excinfo.value.stage == 'run'
    assert not any((tmp_path / 'tmp').iterdir())


def test_stale_reports_removed(tmp_path, rendered, fake_admb, admb_config):
    path = tmp_path / 'run'
    path.mkdir()
    (path / 'schaefer.par').write_text('stale')
    config = admb_config(admb_path=fake_admb(run_body='exit 0\n'))
    bundle = execute_model(rendered, path, config=config, timeout=30)
    assert '.par' not in bundle.report_paths
    assert not (path / 'schaefer.par').exists()


def test_invalid_timeout(tmp_path, rendered, admb_config):
    with pytest.raises(ValueError):
        execute_model(rendered, tmp_path / 'run', config=admb_config(), timeout=0)
