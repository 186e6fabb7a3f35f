from typing import TYPE_CHECKING

from pyadmb.internals.module.lazy import LazyImport

if TYPE_CHECKING:
    import numpy
    import pandas
else:
    numpy = LazyImport('numpy', globals(), 'numpy')
    pandas = LazyImport('pandas', globals(), 'pandas')

__all__ = (
    'numpy',
    'pandas',
)
