"""Fitting models

Definitions
===========
"""

from .run import fit, fit_many

__all__ = ('fit', 'fit_many')
