"""Compiling and running ADMB models

The model is built and run in a fresh temporary directory that is always
removed afterwards, also when compilation fails, the run times out or the
caller is interrupted. Input files, report files, captured output and a
record of the commands are copied to the working directory of the caller.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Optional, Union

from pyadmb.errors import CompilationError, ExecutionTimeout, ToolNotFoundError
from pyadmb.internals.immutable import frozenmapping
from pyadmb.model.external.admb import RenderedModel, write_model

from .config import ADMBConfiguration

logger = logging.getLogger(__name__)

REPORT_SUFFIXES = ('.par', '.std', '.cor', '.rep', '.eva')


@dataclass(frozen=True)
class Command:
    """A finished subprocess"""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    runtime: float

    def to_dict(self):
        return {
            'args': list(self.args),
            'returncode': self.returncode,
            'runtime': self.runtime,
        }


@dataclass(frozen=True)
class ExecutionBundle:
    """Outcome of running a model

    Attributes
    ----------
    name : str
        Model name
    path : Path
        Directory holding the copied report files
    returncode : int
        Exit code of the model executable, passed through as is
    stdout : str
        Captured standard output of the model executable
    stderr : str
        Captured standard error of the model executable
    report_paths : frozenmapping
        Paths of the report files produced by the run, by suffix (e.g. ``'.par'``)
    commands : tuple
        The compiler and the model executable runs
    """

    name: str
    path: Path
    returncode: int
    stdout: str
    stderr: str
    report_paths: frozenmapping[str, Path]
    commands: tuple[Command, ...]


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def admb_path(config: ADMBConfiguration) -> Path:
    """Locate the admb compiler script

    Raises
    ------
    ToolNotFoundError
        If the configured path does not contain an executable script or, when no
        path is configured, the script is not on the PATH
    """
    script = 'admb.cmd' if os.name == 'nt' else 'admb'
    path = config.admb_path
    if path is None:
        found = shutil.which(script)
        if found is None:
            raise ToolNotFoundError(
                f'Cannot find the {script} script on the PATH. Set admb_path in the '
                'pyadmb.admb section of pyadmb.conf'
            )
        return Path(found)
    if path.is_file():
        if not _is_executable(path):
            raise ToolNotFoundError(f'The ADMB script {path} is not executable', path=path)
        return path
    for candidate in (path / 'bin' / script, path / script):
        if _is_executable(candidate):
            return candidate
    raise ToolNotFoundError(f'Cannot find {script} script for ADMB ({path})', path=path)


def executable_path(directory: Path, name: str) -> Path:
    if os.name == 'nt':
        return directory / f'{name}.exe'
    return directory / name


def execute_model(
    rendered: RenderedModel,
    path: Union[str, Path],
    config: Optional[ADMBConfiguration] = None,
    timeout: Optional[float] = None,
) -> ExecutionBundle:
    """Compile and run a rendered model

    Parameters
    ----------
    rendered : RenderedModel
        Template, data and initial values of the model
    path : Path
        Working directory to store inputs, reports and captured output in
    config : ADMBConfiguration
        Tool paths and options. The module configuration is used if None
    timeout : float
        Time budget in seconds shared by compilation and the run. Defaults to the
        default_timeout of the configuration

    Returns
    -------
    ExecutionBundle
        Exit code, captured output and the paths of the report files

    Raises
    ------
    ToolNotFoundError
        If the admb script or the compiled executable cannot be found
    CompilationError
        If the admb script exits with a non-zero code
    ExecutionTimeout
        If compilation and run do not finish within the time budget
    """
    if config is None:
        from . import conf as config
    if timeout is None:
        timeout = config.default_timeout
    if timeout <= 0:
        raise ValueError(f'Timeout must be positive, got {timeout}')

    compiler = admb_path(config)

    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    name = rendered.name
    for suffix in REPORT_SUFFIXES:
        (path / f'{name}{suffix}').unlink(missing_ok=True)

    tmp_root = config.temporary_directory
    if tmp_root is not None:
        tmp_root.mkdir(parents=True, exist_ok=True)

    deadline = time.monotonic() + timeout
    with TemporaryDirectory(prefix=f'admb_run_{name}-', dir=tmp_root) as tmp:
        rundir = Path(tmp)
        logger.debug('Running %s in %s', name, rundir)
        files = write_model(rendered, rundir)

        compile_args = (str(compiler), *config.compiler_flags, name)
        compilation = _run(compile_args, rundir, 'compile', deadline, timeout)
        if compilation.returncode != 0:
            _store(rundir, path, name, (compilation,))
            raise CompilationError(
                f'Compilation of {name} failed with exit code {compilation.returncode}',
                returncode=compilation.returncode,
                stdout=compilation.stdout,
                stderr=compilation.stderr,
            )

        executable = executable_path(rundir, name)
        if not executable.is_file():
            _store(rundir, path, name, (compilation,))
            raise ToolNotFoundError(
                f'Compilation of {name} did not produce the executable {executable.name}',
                path=executable,
            )

        run_args = (
            str(executable),
            '-ind',
            files['dat'].name,
            '-ainp',
            files['pin'].name,
            *config.run_options,
        )
        execution = _run(run_args, rundir, 'run', deadline, timeout)
        commands = (compilation, execution)
        report_paths = _store(rundir, path, name, commands)

    logger.info(
        'Model %s finished with exit code %d in %.1f s',
        name,
        execution.returncode,
        compilation.runtime + execution.runtime,
    )
    return ExecutionBundle(
        name=name,
        path=path,
        returncode=execution.returncode,
        stdout=execution.stdout,
        stderr=execution.stderr,
        report_paths=report_paths,
        commands=commands,
    )


def _run(args, cwd: Path, stage: str, deadline: float, timeout: float) -> Command:
    remaining = deadline - time.monotonic()
    if remaining <= 0:
        raise ExecutionTimeout(
            f'No time left to {stage} within the timeout of {timeout} s',
            stage=stage,
            timeout=timeout,
        )

    stdout_path = cwd / f'{stage}.stdout'
    stderr_path = cwd / f'{stage}.stderr'
    logger.debug('%s: %s', stage, ' '.join(args))
    start = time.monotonic()
    with open(stdout_path, 'wb') as out, open(stderr_path, 'wb') as err:
        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=err,
                cwd=str(cwd),
                # A new session lets us kill the whole process group, e.g. the C++
                # compiler started by the admb script
                start_new_session=os.name != 'nt',
            )
        except OSError as e:
            raise ToolNotFoundError(
                f'Could not start the {stage} step ({args[0]}): {e}', path=Path(args[0])
            ) from e
        try:
            returncode = proc.wait(timeout=remaining)
        except subprocess.TimeoutExpired:
            _kill(proc)
            logger.warning('%s step of %s killed after %s s', stage, cwd.name, timeout)
            raise ExecutionTimeout(
                f'The {stage} step did not finish within the timeout of {timeout} s',
                stage=stage,
                timeout=timeout,
            ) from None
        finally:
            if proc.poll() is None:
                _kill(proc)
    runtime = time.monotonic() - start

    return Command(
        args=tuple(args),
        returncode=returncode,
        stdout=_read_output(stdout_path),
        stderr=_read_output(stderr_path),
        runtime=runtime,
    )


def _kill(proc: subprocess.Popen):
    if os.name != 'nt':
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
    else:
        proc.kill()
    proc.wait()


def _read_output(path: Path) -> str:
    content = path.read_bytes()
    try:
        return content.decode('utf-8')
    except UnicodeDecodeError:
        return content.decode('latin-1', errors='ignore')


def _store(rundir: Path, path: Path, name: str, commands) -> frozenmapping[str, Path]:
    for suffix in ('.tpl', '.dat', '.pin'):
        shutil.copy2(rundir / f'{name}{suffix}', path / f'{name}{suffix}')
    for command_output in sorted(rundir.glob('*.stdout')) + sorted(rundir.glob('*.stderr')):
        shutil.copy2(command_output, path / command_output.name)

    report_paths = {}
    for suffix in REPORT_SUFFIXES:
        source = rundir / f'{name}{suffix}'
        if source.is_file():
            destination = path / source.name
            shutil.copy2(source, destination)
            report_paths[suffix] = destination

    record = {'plugin': 'admb', 'commands': [command.to_dict() for command in commands]}
    with open(path / 'admb.json', 'w') as fh:
        json.dump(record, fh, indent=2)

    return frozenmapping(report_paths)
