"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~tokenflow.exceptions.TokenflowError` subclass.
Shell wrappers that call ``tokenflow token`` can inspect the exit code to
tell a rejected client apart from an unreachable identity provider.

Example::

    $ tokenflow token my-service
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the provider rejected the request
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or an invalid configuration."""

EXIT_AUTH_FAILURE = 3
"""The identity provider rejected the request or no token could be obtained."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORE_ERROR = 8
"""The token store could not be read or written."""

EXIT_CANCELLED = 130
"""The operation was cancelled by the user (Ctrl-C or an explicit cancel)."""
