from importlib import import_module
from types import ModuleType


class LazyImport(ModuleType):
    """Module stand-in that imports the real module on first attribute access

    Keeps ``import pyadmb`` and the CLI startup fast since pandas and friends
    are only needed once a fit is parsed or printed.
    """

    def __init__(self, local_name, parent_module_globals, name, attr=None):
        self._local_name = local_name
        self._parent_module_globals = parent_module_globals
        self._attr = attr

        super().__init__(name)

    def _load(self):
        module = import_module(self.__name__)
        if self.__name__ == 'pandas':
            # NOTE: Opt in to the future behaviour to avoid silent downcasting warnings
            version = tuple(int(i) for i in module.__version__.split('.')[:2])
            if (2, 2) <= version < (3, 0):
                module.set_option('future.no_silent_downcasting', True)
        resolved = module if self._attr is None else getattr(module, self._attr)
        # Replace the stand-in in the importing module so later lookups are direct
        self._parent_module_globals[self._local_name] = resolved
        self.__dict__.update(resolved.__dict__)
        return resolved

    def __getattr__(self, item):
        module = self._load()
        return getattr(module, item)

    def __dir__(self):
        module = self._load()
        return dir(module)
