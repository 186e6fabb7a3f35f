"""
.. highlight:: console

===========================
The CLI interface of pyadmb
===========================

Examples
--------

Example argument lines (only preceded by ``pyadmb`` or ``python3 -m pyadmb``)::

    # write the ADMB template, data and initial values of a model to the directory hake
    pyadmb render hake.json hake.csv -o hake

    # fit a model and keep the report files in the directory hake
    pyadmb fit hake.json hake.csv --timeout 60 --path hake

On Logging
----------

As a CLI we are at the top, interacting with the user. Library modules only
create loggers, the handlers are configured here.

Definitions
===========
"""

import argparse
import logging
import sys
from collections import namedtuple
from pathlib import Path
from textwrap import dedent

import pyadmb
from pyadmb.deps.rich import box as rich_box
from pyadmb.deps.rich import console as rich_console
from pyadmb.deps.rich import table as rich_table
from pyadmb.internals.fs.path import path_absolute

formatter = argparse.ArgumentDefaultsHelpFormatter


def error(exception):
    """Raise the exception with no traceback printed

    Used for non-recoverables in CLI. Exceptions giving traceback are bugs!
    """

    def exc_only_hook(exception_type, exception, traceback):
        print(f'{exception_type.__name__}: {exception}')

    sys.excepthook = exc_only_hook
    raise exception


def format_keyval_pairs(data_dict, sort=True, right_just=False):
    """Formats lines from *data_dict*."""

    if not data_dict:
        return []

    key_width = max(len(field) for field in data_dict.keys())
    if sort:
        data_dict = dict(sorted(data_dict.items()))
    if right_just:
        line_format = '  %%%ds\t%%s' % key_width
    else:
        line_format = '%%-%ds\t%%s' % key_width

    lines = []
    for key, values in data_dict.items():
        if isinstance(values, str):
            values = values.splitlines()
        keys = [key] + [''] * (len(values) - 1)
        for k, v in zip(keys, values):
            lines += [line_format % (k, v)]

    return lines


def _format_value(value):
    if value is None:
        return ''
    return f'{value:.6g}'


def print_estimates(res):
    """Print the estimates of a FitResult as a table"""
    table = rich_table.Table(title=f'{res.model_name}: {res.status}', box=rich_box.SQUARE)
    table.add_column('Parameter')
    table.add_column('Estimate', justify='right')
    table.add_column('SE', justify='right')
    table.add_column('RSE', justify='right')
    table.add_column('At bound')

    for e in res.estimates:
        table.add_row(
            e.name,
            _format_value(e.estimate),
            _format_value(e.standard_error),
            _format_value(e.relative_standard_error),
            '[bold yellow]yes' if e.bound_active else '',
        )
    for name, value in res.reference_values.items():
        se = res.reference_standard_errors.get(name)
        table.add_row(f'[italic]{name}', _format_value(value), _format_value(se), '', '')

    console = rich_console.Console()
    console.print(table)
    if res.ofv is not None:
        console.print(f'OFV: {res.ofv:.6f}  Maximum gradient: {res.max_gradient:.3g}')
    if not res.converged:
        console.print(f'[bold red]{res.diagnostics}')


def run_render(args):
    """Subcommand to write the ADMB input files of a model"""
    from pyadmb.model.external.admb import render_model, write_model

    spec, df = args.spec, args.data
    try:
        rendered = render_model(spec, df)
    except pyadmb.SpecValidationError as e:
        error(e)
    output = args.output_dir if args.output_dir is not None else Path('.')
    paths = write_model(rendered, output)
    for path in paths.values():
        print(f'Wrote {path}')


def run_fit(args):
    """Subcommand to fit a model with ADMB"""
    from pyadmb.tools import fit

    try:
        res = fit(args.spec, args.data, timeout=args.timeout, path=args.path)
    except pyadmb.AdmbError as e:
        error(e)
    print_estimates(res)


def info(args):
    """Subcommand to print pyadmb info"""

    from pyadmb.model.templates import template_names
    from pyadmb.tools.external.admb import admb_path, conf

    try:
        admb = str(admb_path(conf))
    except pyadmb.ToolNotFoundError as e:
        admb = f'not found ({e})'

    Install = namedtuple('VersionInfo', ['version', 'directory', 'admb', 'templates'])
    inst = Install(
        pyadmb.__version__,
        str(Path(pyadmb.__file__).resolve().parent),
        admb,
        ', '.join(template_names()),
    )

    lines = format_keyval_pairs(inst._asdict(), right_just=True)
    print('\n'.join(lines))


def results_print(args):
    """Subcommand to print results"""
    if args.dir.is_dir():
        path = args.dir / 'results.json'
    elif args.dir.is_file():
        path = args.dir
    else:
        error(FileNotFoundError(str(args.dir)))
    from pyadmb.workflows.results import read_results

    res = read_results(path)
    if args.table:
        print_estimates(res)
    else:
        print(res)


def check_input_path(path):
    """Resolves path to input file and checks existence.

    Raises if not found or is dir, without tracebacks (see :func:`error`).
    """
    path = path_absolute(Path(path))

    if not path.exists():
        exc = FileNotFoundError('No such input file: %r' % str(path))
        error(exc)
    elif path.is_dir():
        exc = IsADirectoryError('Is a directory (not an input file): %r' % str(path))
        error(exc)
    else:
        return path


# ------ Type functions --------------------


def input_spec(path):
    """Returns :class:`~pyadmb.model.ModelSpec` from a json file at *path*."""
    path = check_input_path(path)
    from pyadmb.model import ModelSpec

    try:
        return ModelSpec.read(path)
    except (KeyError, ValueError) as e:
        error(ValueError(f'Could not read model specification {path}: {e}'))


def input_dataset(path):
    """Returns the dataset read from the csv file at *path*."""
    path = check_input_path(path)
    from pyadmb.model import read_dataset

    return read_dataset(path)


args_spec_input = argparse.ArgumentParser(add_help=False)
group_spec_input = args_spec_input.add_argument_group(title='inputs')
group_spec_input.add_argument(
    'spec', metavar='SPEC', type=input_spec, help='Model specification (json file)'
)
group_spec_input.add_argument('data', metavar='DATA', type=input_dataset, help='Dataset (csv file)')

parser_definition = [
    {
        'render': {
            'help': 'Write the ADMB input files of a model',
            'description': 'Write the template, data and initial values files of a model.',
            'func': run_render,
            'parents': [args_spec_input],
            'args': [
                {
                    'name': '-o',
                    'dest': 'output_dir',
                    'metavar': 'DIR',
                    'type': Path,
                    'default': None,
                    'help': 'Directory to write the files to (current directory if not given)',
                },
            ],
        }
    },
    {
        'fit': {
            'help': 'Fit a model with ADMB',
            'description': 'Compile and run a model with ADMB and print the estimates.',
            'func': run_fit,
            'parents': [args_spec_input],
            'args': [
                {
                    'name': '--timeout',
                    'type': float,
                    'default': None,
                    'help': 'Time budget in seconds for compiling and running the model',
                },
                {
                    'name': '--path',
                    'type': Path,
                    'default': None,
                    'help': 'Directory to keep the input, report files and results.json in',
                },
            ],
        }
    },
    {'info': {'help': 'Show pyadmb information', 'title': 'pyadmb information', 'func': info}},
    {
        'results': {
            'subs': [
                {
                    'print': {
                        'help': 'Print results',
                        'description': 'Print results from a results.json file or a fit directory',
                        'func': results_print,
                        'args': [
                            {
                                'name': 'dir',
                                'metavar': 'file or directory',
                                'type': Path,
                                'help': 'Path to results.json or a directory containing it',
                            },
                            {
                                'name': '--table',
                                'action': 'store_true',
                                'help': 'Print the estimates as a table',
                            },
                        ],
                    }
                },
            ],
            'help': 'Result extraction',
            'title': 'pyadmb result commands',
            'metavar': 'ACTION',
        }
    },
]


def generate_parsers(parsers):
    for command in parser_definition:
        ((cmd_name, cmd_dict),) = command.items()
        if 'subs' in cmd_dict:
            cmd_parser = parsers.add_parser(
                cmd_name, allow_abbrev=True, help=cmd_dict['help'], formatter_class=formatter
            )
            subs = cmd_parser.add_subparsers(title=cmd_dict['title'], metavar=cmd_dict['metavar'])
            for sub_command in cmd_dict['subs']:
                ((sub_name, sub_dict),) = sub_command.items()
                _add_command(subs, sub_name, dict(sub_dict))
        else:
            cmd_dict = dict(cmd_dict)
            cmd_dict.pop('title', None)
            _add_command(parsers, cmd_name, cmd_dict)


def _add_command(parsers, name, definition):
    args = definition.pop('args', [])
    func = definition.pop('func')
    sub_parser = parsers.add_parser(name, **definition, formatter_class=formatter)
    for arg in args:
        arg = dict(arg)
        arg_name = arg.pop('name')
        sub_parser.add_argument(arg_name, **arg)
    sub_parser.set_defaults(func=func)


parser = argparse.ArgumentParser(
    prog='pyadmb',
    description=dedent(
        """
    Welcome to the command line interface of pyadmb!

    Functionality is split into various subcommands
        - try --help after a COMMAND
        - all keyword arguments can be abbreviated if unique


    """
    ).strip(),
    epilog=dedent(
        """
        Examples:
            # Fit a model with a time budget of one minute
            pyadmb fit hake.json hake.csv --timeout 60

            # print the results of a fit
            pyadmb results print hake

            # version/install information
            pyadmb info
    """
    ).strip(),
    formatter_class=formatter,
    allow_abbrev=True,
)
parser.add_argument('--version', action='version', version=pyadmb.__version__)
parser.add_argument(
    '-v', '--verbose', action='store_true', help='Show informational messages of the fits'
)

# subcommand parsers
subparsers = parser.add_subparsers(title='pyadmb commands', metavar='COMMAND')
generate_parsers(subparsers)


# -- entry point of CLI (pyadmb) ---------------------------------------------------------


def main(args):
    """Entry point of ``pyadmb`` CLI util and ``python3 -m pyadmb`` (via ``__main__.py``)."""
    # parse
    args = parser.parse_args(args)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(levelname)s: %(message)s',
    )
    # dispatch subcommand
    if 'func' in args:
        args.func(args)
    else:
        parser.print_usage()
