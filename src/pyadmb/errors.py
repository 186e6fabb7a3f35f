"""Exceptions raised by pyadmb

All exceptions derive from :class:`AdmbError` so that callers can catch every
failure of a fit in one place.
"""

from typing import Optional


class AdmbError(Exception):
    """Base class for all pyadmb errors"""


class SpecValidationError(AdmbError, ValueError):
    """The model specification or its data cannot be rendered

    The name of the offending parameter, column or role is available as
    :attr:`name`.
    """

    def __init__(self, message: str, name: Optional[str] = None):
        super().__init__(message)
        self.name = name


class ToolNotFoundError(AdmbError, FileNotFoundError):
    """The ADMB compiler or the compiled model executable could not be found"""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path


class CompilationError(AdmbError):
    """The ADMB compiler rejected the generated template"""

    def __init__(self, message: str, returncode: int, stdout: str = '', stderr: str = ''):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr

    def __str__(self):
        s = super().__str__()
        diagnostic = (self.stderr.strip() or self.stdout.strip())[-2000:]
        if diagnostic:
            s += f'\n{diagnostic}'
        return s


class ExecutionTimeout(AdmbError, TimeoutError):
    """A subprocess did not finish within the time budget

    :attr:`stage` is either ``'compile'`` or ``'run'``.
    """

    def __init__(self, message: str, stage: str, timeout: float):
        super().__init__(message)
        self.stage = stage
        self.timeout = timeout


class ReportParseError(AdmbError, ValueError):
    """A report file could not be interpreted

    :attr:`section` names the missing or malformed section.
    """

    def __init__(self, message: str, section: str, path=None):
        super().__init__(message)
        self.section = section
        self.path = path
