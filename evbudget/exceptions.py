"""Exceptions shared across the controller."""


class ConfigurationError(Exception):
    """Missing or invalid configuration. Fatal at startup."""
    pass


class ControllerBusyError(Exception):
    """A check-and-throttle cycle holds the controller lock."""
    pass
