"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a failure category and is referenced by the
corresponding :class:`~syncauth.exceptions.SyncauthError` subclass, so
wrapper scripts can tell *why* an authorization did not complete without
parsing stderr.

Example::

    $ syncauth auth login
    $ echo $?
    4   # EXIT_PORT_IN_USE -- another process holds the loopback port
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_AUTH_FAILURE = 3
"""The provider refused the authorization or returned an unusable token response."""

EXIT_PORT_IN_USE = 4
"""The loopback redirect port is already bound by another process."""

EXIT_CONNECTION_ERROR = 5
"""A network-level error occurred while talking to the token endpoint."""

EXIT_TIMEOUT = 6
"""No callback arrived before the authorization window closed."""

EXIT_CANCELLED = 130
"""The authorization was cancelled (Ctrl-C or host shutdown)."""
