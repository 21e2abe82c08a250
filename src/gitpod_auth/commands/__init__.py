"""Built-in CLI sub-commands for gitpod-auth.

* :mod:`~gitpod_auth.commands.auth` -- ``login``, ``logout``, ``status``,
  ``sessions``, ``scopes`` and ``whoami``, registered directly on the root app.
* :mod:`~gitpod_auth.commands.config` -- the ``config`` group for viewing and
  modifying the provider configuration.
"""
