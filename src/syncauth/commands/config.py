"""Config commands -- view and modify global configuration.

Provides the ``syncauth config`` sub-command group over
:class:`~syncauth.models.GlobalConfig`: the OAuth client registration, the
loopback port, the provider endpoints and timeouts, and the default output
format. Keys use dot notation (``provider.port``, ``output.format``).
"""

from __future__ import annotations

from typing import Any

import typer

from syncauth.exceptions import InvalidUsageError
from syncauth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


def _locate(data: dict[str, Any], key: str) -> tuple[dict[str, Any], str]:
    """Return the section holding *key* and the field name inside it.

    Only leaf fields are addressable; whole sections are not.

    Raises:
        InvalidUsageError: If the path does not name an existing field.
    """
    *sections, field = key.split(".")
    section = data
    for name in sections:
        child = section.get(name)
        if not isinstance(child, dict):
            raise InvalidUsageError(f"Invalid config key: {key}")
        section = child
    if field not in section or isinstance(section[field], dict):
        raise InvalidUsageError(f"Unknown config key: {key}")
    return section, field


def _coerce(current: Any, value: str, key: str) -> Any:
    """Convert the CLI string *value* to the type of the field's current value.

    ``bool`` is checked before ``int`` because it is a subclass. Unset
    (``None``) and string fields take the value as given.
    """
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    for kind, label in ((int, "integer"), (float, "number")):
        if isinstance(current, kind):
            try:
                return kind(value)
            except ValueError:
                raise InvalidUsageError(f"Expected {label} for {key}, got: {value}") from None
    return value


@config_app.command("show")
def config_show() -> None:
    """Show the config directory and the effective configuration.

    Example::

        syncauth config show
        syncauth --json config show
    """
    from syncauth.config import get_config_dir, load_global_config

    info(f"Config directory: {get_config_dir()}")
    format_response(load_global_config().model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key in dot notation, e.g. 'provider.client_id' or 'output.format'."
    ),
    value: str = typer.Argument(help="Value to set."),
) -> None:
    """Set one configuration value.

    The value is converted to the field's current type and the whole config
    is re-validated before it is written, so an out-of-range port or an
    unknown output format never reaches disk.

    Raises:
        typer.Exit: With code 2 for an unknown key, an unconvertible value
            or a validation failure.

    Example::

        syncauth config set provider.client_id 1234.apps.googleusercontent.com
        syncauth config set provider.client_secret_source file:~/.gdrive-secret
        syncauth config set provider.port 39588
        syncauth config set output.format json
    """
    from pydantic import ValidationError

    from syncauth.config import load_global_config, save_global_config
    from syncauth.models import GlobalConfig

    data = load_global_config().model_dump(mode="json")
    try:
        section, field = _locate(data, key)
        section[field] = _coerce(section[field], value, key)
    except InvalidUsageError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    try:
        updated = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=InvalidUsageError.exit_code) from None

    save_global_config(updated)
    success(f"Set {key} = {section[field]}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active; with ``--no-input``
    and no ``--force`` the config is left alone. The stored refresh token
    is not touched.

    Example::

        syncauth --force config reset
    """
    from syncauth.config import save_global_config
    from syncauth.models import GlobalConfig

    obj = ctx.obj or {}
    if not obj.get("force", False):
        no_input = obj.get("no_input", False)
        if no_input or not typer.confirm("Reset all config to defaults?"):
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
