# registry.py
import logging

from sqljobs.errors import ConfigurationError
from sqljobs.models import JobDefinition, JobOptions

logger = logging.getLogger(__name__)


class JobRegistry:
    """Maps job names to handlers for one scheduler instance.

    Registering a name twice replaces the earlier definition. The registry is
    frozen while the dispatcher runs.
    """

    def __init__(self):
        self._jobs = {}
        self._frozen = False

    def register(self, name, options, handler, on_failure=None):
        if self._frozen:
            raise ConfigurationError(f"Cannot register {name!r} while the scheduler is running")
        if not isinstance(name, str) or not name.strip():
            raise ConfigurationError(f"Job name must be a non-empty string, got {name!r}")
        if not callable(handler):
            raise ConfigurationError(f"Handler for {name!r} is not callable")
        if on_failure is not None and not callable(on_failure):
            raise ConfigurationError(f"on_failure for {name!r} is not callable")

        definition = JobDefinition(
            name=name,
            handler=handler,
            options=_coerce_options(name, options),
            on_failure=on_failure,
        )
        if name in self._jobs:
            logger.debug("Job %s re-registered, replacing previous handler", name)
        self._jobs[name] = definition
        return definition

    def lookup(self, name):
        return self._jobs.get(name)

    def names(self):
        return sorted(self._jobs)

    def freeze(self):
        self._frozen = True

    def unfreeze(self):
        self._frozen = False

    @property
    def frozen(self):
        return self._frozen

    def __contains__(self, name):
        return name in self._jobs

    def __len__(self):
        return len(self._jobs)


def _coerce_options(name, options):
    if options is None:
        options = JobOptions()
    elif isinstance(options, dict):
        unknown = set(options) - {"priority"}
        if unknown:
            raise ConfigurationError(f"Unknown options for {name!r}: {', '.join(sorted(unknown))}")
        options = JobOptions(**options)
    elif not isinstance(options, JobOptions):
        raise ConfigurationError(f"Options for {name!r} must be a JobOptions or dict")

    priority = options.priority
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise ConfigurationError(f"Priority for {name!r} must be an integer, got {priority!r}")
    return options
