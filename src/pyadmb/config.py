"""pyadmb configuration

Options are read once at import from ``pyadmb.conf``. The file is looked up in
the directory given by the ``PYADMBCONFIGPATH`` environment variable, then in
the user and finally the site configuration directory. Each
:class:`Configuration` subclass reads its own section of the file, e.g.

.. code-block:: ini

    [pyadmb.admb]
    admb_path = /opt/admb
    default_timeout = 300
"""

import configparser
import os
from abc import ABC
from pathlib import Path

import appdirs

appname = 'pyadmb'
configuration_filename = 'pyadmb.conf'


def user_config_file_enabled():
    return not int(os.getenv('PYADMBNOCONFIGFILE', 0))


def user_config_path():
    return Path(appdirs.user_config_dir(appname)) / configuration_filename


def site_config_path():
    return Path(appdirs.site_config_dir(appname)) / configuration_filename


def env_config_path():
    env_path = os.getenv('PYADMBCONFIGPATH')
    if env_path is not None:
        env_path = Path(env_path) / configuration_filename
        if not env_path.is_file():
            raise ValueError(
                'Environment variable PYADMBCONFIGPATH is set but directory does '
                'not contain a configuration file'
            )
    return env_path


def config_path():
    env_path = env_config_path()
    if env_path is not None:
        return env_path
    user_path = user_config_path()
    if user_path.is_file():
        return user_path
    site_path = site_config_path()
    if site_path.is_file():
        return site_path
    return None


def read_configuration():
    config = configparser.ConfigParser()
    path = config_path()
    if path is not None:
        config.read(path)
    return config


config_file = read_configuration()


class ConfigItem:
    """A typed configuration option with a default value

    Values set from strings (as read from the configuration file) are converted
    with *cls*, which defaults to the type of the default value. Comma separated
    strings become lists when the default is a list.
    """

    def __init__(self, default, description, cls=None):
        self.default = default
        self.__doc__ = description
        if cls is None:
            self.cls = type(self.default)
        else:
            self.cls = cls

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return instance.__dict__.get(self.name, self.default)

    def __set__(self, instance, value):
        try:
            if isinstance(self.default, list) and isinstance(value, str):
                value = [v.strip() for v in value.split(',') if v.strip()]
            if isinstance(self.default, bool) and isinstance(value, str):
                value = value.strip().lower() == 'true'
            instance.__dict__[self.name] = self.cls(value)
        except ValueError as exc:
            raise TypeError(
                f'Trying to set configuration item {self.name} using object of wrong '
                f'type: {type(value)} is not {self.cls}'
            ) from exc


class Configuration(ABC):
    module: str

    def __init__(self, **kwargs):
        if user_config_file_enabled() and self.module in config_file.keys():
            for key, value in config_file[self.module].items():
                setattr(self, key, value)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def replace(self, **kwargs):
        """Create a copy of this configuration with some options changed"""
        new = object.__new__(self.__class__)
        new.__dict__.update(self.__dict__)
        for key, value in kwargs.items():
            if not isinstance(getattr(type(self), key, None), ConfigItem):
                raise AttributeError(f'Unknown configuration option {key}')
            setattr(new, key, value)
        return new

    def __str__(self):
        settings = ''
        for key, value in vars(self).items():
            settings += f"{key}:\t{value}\n"
        return settings


class ConfigurationContext:
    """Context to temporarily set configuration options"""

    def __init__(self, config, **kwargs):
        self.config = config
        self.options = kwargs

    def __enter__(self):
        old = {}
        for key in self.options.keys():
            old[key] = getattr(self.config, key)
        for key, val in self.options.items():
            setattr(self.config, key, val)
        self.old = old
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for key, val in self.old.items():
            setattr(self.config, key, val)
