"""
Error taxonomy shared by the store, the connection handler and the web layer.
"""


class RemoteCmdError(Exception):
    """Base class for every error raised by remotecmd."""


class NotFoundError(RemoteCmdError):
    """A tag or job does not exist."""


class ValidationError(RemoteCmdError):
    """Malformed input, e.g. an empty command or an already-bound tag."""


class AuthError(RemoteCmdError):
    """Shared-secret token mismatch."""


class StoreError(RemoteCmdError):
    """The backing database failed."""


class TransportError(RemoteCmdError):
    """Reading from or writing to an agent connection failed."""


class ConfigError(RemoteCmdError):
    """A mandatory setting is missing."""
