"""Built-in CLI sub-commands for syncauth.

* :mod:`~syncauth.commands.auth` -- obtain, inspect, verify and remove the
  refresh token.
* :mod:`~syncauth.commands.config` -- view and modify global settings.

Each module exports a :class:`typer.Typer` sub-application that
:mod:`syncauth.app` mounts on the root app.
"""
