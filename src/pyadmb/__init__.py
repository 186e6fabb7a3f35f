r"""
======
pyadmb
======

pyadmb fits models with AD Model Builder (ADMB) from Python. A model is
described by its parameters, their bounds and priors and the binding of dataset
columns to the data of the model. pyadmb renders it into an ADMB template, data
and initial values file, compiles and runs it and reads the report files into a
:class:`~pyadmb.workflows.FitResult`.

Configuration
=============

.. list-table:: pyadmb core configuration options
   :widths: 25 25 50 150
   :header-rows: 1

   * - Option name
     - Default value
     - Type
     - Description
   * - ``missing_data_token``
     - ``'-99'``
     - str
     - Data token to be converted to or from NA when reading or writing data
   * - ``dispatcher``
     - ``threaded``
     - str
     - How :func:`~pyadmb.tools.fit_many` runs fits, ``threaded`` or ``serial``


Definitions
===========
"""

__version__ = '0.1.0'

import pyadmb.config as config


class PyadmbConfiguration(config.Configuration):
    module = 'pyadmb'
    missing_data_token = config.ConfigItem(
        '-99', 'Data token to be converted to or from NA when reading or writing data'
    )
    dispatcher = config.ConfigItem(
        'threaded',
        'How fit_many runs fits. threaded (dask threaded scheduler) or serial',
    )


conf = PyadmbConfiguration()

from .errors import (  # noqa: E402
    AdmbError,
    CompilationError,
    ExecutionTimeout,
    ReportParseError,
    SpecValidationError,
    ToolNotFoundError,
)
from .model import (  # noqa: E402
    DataBinding,
    ModelSpec,
    ModelTemplate,
    Parameter,
    Parameters,
    parse_prior,
    read_dataset,
)
from .tools import fit, fit_many  # noqa: E402
from .workflows import (  # noqa: E402
    ConvergenceStatus,
    FitResult,
    ParameterEstimate,
    read_results,
)

__all__ = (
    'AdmbError',
    'CompilationError',
    'ConvergenceStatus',
    'DataBinding',
    'ExecutionTimeout',
    'FitResult',
    'ModelSpec',
    'ModelTemplate',
    'Parameter',
    'ParameterEstimate',
    'Parameters',
    'ReportParseError',
    'SpecValidationError',
    'ToolNotFoundError',
    'fit',
    'fit_many',
    'parse_prior',
    'read_dataset',
    'read_results',
)
