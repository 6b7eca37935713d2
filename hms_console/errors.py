"""
Error taxonomy shared by the session store, the backend and the surfaces.

Route denial is not an exception: it is a guard outcome (see guard.py).
"""


class ConsoleError(Exception):
    """Base class for recoverable console failures."""


class AuthError(ConsoleError):
    """Bad credentials, an existing identity, or any failed auth call."""


class ProfileError(ConsoleError):
    """The user profile row is missing or could not be written."""


class QueryError(ConsoleError):
    """A read or write against the backend failed."""
