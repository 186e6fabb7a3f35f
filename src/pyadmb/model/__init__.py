"""Description of estimation problems

Definitions
===========
"""

from .data import DataBinding, read_dataset
from .parameters import Parameter, Parameters
from .priors import (
    BetaPrior,
    GammaPrior,
    LogNormalPrior,
    NormalPrior,
    Prior,
    UniformPrior,
    parse_prior,
)
from .spec import ModelSpec
from .templates import FOX, SCHAEFER, ModelTemplate, get_template, register_template

__all__ = (
    'BetaPrior',
    'DataBinding',
    'FOX',
    'GammaPrior',
    'LogNormalPrior',
    'ModelSpec',
    'ModelTemplate',
    'NormalPrior',
    'Parameter',
    'Parameters',
    'Prior',
    'SCHAEFER',
    'UniformPrior',
    'get_template',
    'parse_prior',
    'read_dataset',
    'register_template',
)
