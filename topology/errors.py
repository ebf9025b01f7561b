"""
Exceptions raised while validating and composing topologies.

Configuration-shape problems raise ConfigurationError before anything is
declared, so the failure points at the configuration. Failures while
declaring a node raise CompositionError, which names the composition, the
logical step and the resource, and chains the underlying cause.
"""


class TopologyError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(TopologyError, ValueError):
    """The configuration is malformed; nothing has been declared."""

    def __init__(self, composition: str, message: str):
        self.composition = composition
        super().__init__(f"{composition}: {message}")


class CompositionError(TopologyError, RuntimeError):
    """Declaring a node of the composition failed."""

    def __init__(self, composition: str, step: str, resource: str, message: str = ""):
        self.composition = composition
        self.step = step
        self.resource = resource
        detail = f": {message}" if message else ""
        super().__init__(f"{composition}: failed to create {step} '{resource}'{detail}")
