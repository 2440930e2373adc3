# errors.py
class SqlJobsError(Exception):
    """Base class for everything raised by sqljobs."""


class ConfigurationError(SqlJobsError, ValueError):
    """Invalid table name, option value or registration."""


class UnknownJobError(SqlJobsError, LookupError):
    def __init__(self, name):
        super().__init__(f"Job {name!r} does not exist")
        self.name = name


class ParseError(SqlJobsError, ValueError):
    def __init__(self, text, reason=None):
        message = f"Could not parse {text!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.text = text


class InvalidDateError(ParseError):
    pass


class InvalidCronError(ParseError):
    pass


class StorageError(SqlJobsError):
    """A statement failed at the database. Safe to retry on the next tick."""


class HandlerError(SqlJobsError):
    """Wraps an exception raised by a job handler.

    The original exception is available as ``__cause__``; ``job`` is the
    claimed row the handler was running for.
    """

    def __init__(self, job, error):
        super().__init__(f"Job {job.id} ({job.name}) failed: {error}")
        self.job = job
        self.error = error
