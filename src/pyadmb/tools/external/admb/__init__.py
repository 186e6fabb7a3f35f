"""Running models with AD Model Builder

Configuration
=============

Options are read from the ``[pyadmb.admb]`` section of ``pyadmb.conf``.

+-------------------------+---------+------------------------------------------------+
| Setting                 | Default | Description                                    |
+=========================+=========+================================================+
| ``admb_path``           | None    | ADMB installation directory or admb script.    |
|                         |         | Looked up on the PATH if not set               |
+-------------------------+---------+------------------------------------------------+
| ``default_timeout``     | 600     | Time budget in seconds for compile and run     |
+-------------------------+---------+------------------------------------------------+
| ``compiler_flags``      | -f      | Options to the admb script                     |
+-------------------------+---------+------------------------------------------------+
| ``run_options``         | -nox    | Options to the model executable                |
+-------------------------+---------+------------------------------------------------+
| ``temporary_directory`` | None    | Where temporary run directories are created    |
+-------------------------+---------+------------------------------------------------+
| ``gradient_tolerance``  | 1e-4    | Largest accepted maximum gradient component    |
+-------------------------+---------+------------------------------------------------+
| ``boundary_tolerance``  | 1e-3    | Fraction of the bound interval within which an |
|                         |         | estimate is at its bound                       |
+-------------------------+---------+------------------------------------------------+
"""

from .config import ADMBConfiguration, conf
from .results import parse_modelfit_results
from .run import Command, ExecutionBundle, admb_path, execute_model

__all__ = (
    'ADMBConfiguration',
    'Command',
    'ExecutionBundle',
    'admb_path',
    'conf',
    'execute_model',
    'parse_modelfit_results',
)
