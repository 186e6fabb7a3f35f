from .parsing import parse_parameter_names, split_sections
from .render import RenderedModel, render_model, validate_spec, write_model

__all__ = (
    'RenderedModel',
    'parse_parameter_names',
    'render_model',
    'split_sections',
    'validate_spec',
    'write_model',
)
