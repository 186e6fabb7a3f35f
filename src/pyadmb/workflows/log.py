import datetime

from pyadmb.deps import pandas as pd
from pyadmb.internals.immutable import Immutable

CATEGORIES = ('ERROR', 'WARNING', 'INFORMATION')


class LogEntry(Immutable):
    def __init__(self, category: str, message: str, time: datetime.datetime):
        self._category = category
        self._message = message
        self._time = time

    @classmethod
    def create(cls, category: str, message: str):
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category {category}")
        return cls(category=category, message=message, time=datetime.datetime.now())

    @property
    def category(self):
        """Category of message. One of ERROR, WARNING and INFORMATION"""
        return self._category

    @property
    def message(self):
        return self._message

    @property
    def time(self):
        """Time stamp of log entry"""
        return self._time

    def to_dict(self):
        return {
            'category': self._category,
            'message': self._message,
            'time': self._time.isoformat(),
        }

    @classmethod
    def from_dict(cls, d):
        d = dict(d)
        d['time'] = datetime.datetime.fromisoformat(d['time'])
        return cls(**d)

    def __eq__(self, other):
        return isinstance(other, LogEntry) and self.to_dict() == other.to_dict()

    def __hash__(self):
        return hash((self._category, self._message, self._time))


class Log(Immutable):
    """Timestamped error, warning and information log of a fit

    Logging returns a new log, the original is never changed.
    """

    def __init__(self, entries: tuple[LogEntry, ...] = ()):
        self._entries = entries

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    def __eq__(self, other):
        return isinstance(other, Log) and self._entries == other._entries

    def __hash__(self):
        return hash(self._entries)

    def to_dict(self):
        return {str(i): entry.to_dict() for i, entry in enumerate(self._entries)}

    @classmethod
    def from_dict(cls, d):
        return cls(tuple(LogEntry.from_dict(entry) for entry in d.values()))

    @property
    def errors(self):
        return Log(tuple(e for e in self._entries if e.category == 'ERROR'))

    @property
    def warnings(self):
        return Log(tuple(e for e in self._entries if e.category == 'WARNING'))

    def _log(self, category, message):
        entry = LogEntry.create(category=category, message=message)
        return Log(self._entries + (entry,))

    def log_error(self, message):
        """Log an error

        Parameters
        ----------
        message : str
            Error message
        """
        return self._log('ERROR', message)

    def log_warning(self, message):
        """Log a warning

        Parameters
        ----------
        message : str
            Warning message
        """
        return self._log('WARNING', message)

    def log_info(self, message):
        return self._log('INFORMATION', message)

    def to_dataframe(self):
        """Create an overview dataframe from log

        Returns
        -------
        pd.DataFrame
            Dataframe with overview of log entries
        """
        return pd.DataFrame(
            {
                'category': [entry.category for entry in self._entries],
                'time': [entry.time for entry in self._entries],
                'message': [entry.message for entry in self._entries],
            }
        )

    def __repr__(self):
        s = ''
        for entry in self._entries:
            s += f'{entry.category:<8} {entry.time.strftime("%Y-%m-%d %H:%M:%S")}\n'
            for line in entry.message.split('\n'):
                s += f'    {line}\n'
        return s
