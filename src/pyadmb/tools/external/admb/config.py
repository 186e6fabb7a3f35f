from pyadmb.config import ConfigItem, Configuration
from pyadmb.internals.fs.path import normalize_user_given_path


class ADMBConfiguration(Configuration):
    module = 'pyadmb.admb'
    admb_path = ConfigItem(
        None,
        'Path to the ADMB installation directory or to the admb script. If not set the '
        'admb script is looked up on the PATH',
        cls=normalize_user_given_path,
    )
    default_timeout = ConfigItem(
        600.0, 'Default time budget in seconds for compiling and running a model', float
    )
    compiler_flags = ConfigItem(
        ['-f'], 'Options to the admb script. -f builds an optimized executable', list
    )
    run_options = ConfigItem(
        ['-nox'], 'Options to the model executable. -nox suppresses the iteration output', list
    )
    temporary_directory = ConfigItem(
        None,
        'Directory in which temporary run directories are created. Default is the system '
        'temporary directory',
        cls=normalize_user_given_path,
    )
    gradient_tolerance = ConfigItem(
        1e-4, 'Largest maximum gradient component accepted for convergence', float
    )
    boundary_tolerance = ConfigItem(
        1e-3,
        'Relative distance to a bound (as a fraction of the bound interval) within which '
        'an estimate is considered to be at the bound',
        float,
    )


conf = ADMBConfiguration()

__all__ = ('ADMBConfiguration', 'conf')
