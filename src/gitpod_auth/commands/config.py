"""Config commands -- view and modify the provider configuration.

Provides the ``gitpod-auth config`` sub-command group for reading, updating
and resetting the :class:`~gitpod_auth.models.ProviderConfig` stored in the
config directory. Environment variables and ``--base-url`` still take
precedence over the stored values at run time.
"""

from __future__ import annotations

from typing import Any

import typer

from gitpod_auth.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False, "--effective", help="Apply environment and --base-url overrides."
    ),
) -> None:
    """Show the current configuration.

    Example::

        gitpod-auth config show
        gitpod-auth --json config show --effective
    """
    from gitpod_auth.config import get_config_dir, load_config, resolve_config

    if effective:
        base_url = ctx.obj.get("base_url") if ctx.obj else None
        config = resolve_config(cli_base_url=base_url)
    else:
        config = load_config()
    info(f"Config directory: {get_config_dir()}")
    format_response(config.model_dump(mode="json"))


def _coerce(key: str, current: Any, value: str) -> Any:
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        try:
            return int(value)
        except ValueError:
            error(f"Expected integer for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, float):
        try:
            return float(value)
        except ValueError:
            error(f"Expected number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    if isinstance(current, list):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


@config_app.command("set")
def config_set(
    key: str = typer.Argument(
        help="Config key (dot notation, e.g., 'rpc.max_retries')."
    ),
    value: str = typer.Argument(help="Value to set. Lists are comma-separated."),
) -> None:
    """Set a configuration value.

    Uses dot notation for nested keys. The value is coerced to match the
    existing field's type (bool, int, float, comma-separated list, or str)
    and the result is validated before saving.

    Example::

        gitpod-auth config set base_url https://gitpod.example.com
        gitpod-auth config set login_timeout 120
        gitpod-auth config set scopes function:getGitpodTokenScopes,resource:default
    """
    from pydantic import ValidationError

    from gitpod_auth.config import load_config, save_config
    from gitpod_auth.models import ProviderConfig

    config = load_config()
    data = config.model_dump(mode="json")

    keys = key.split(".")
    target = data
    for k in keys[:-1]:
        if k not in target or not isinstance(target[k], dict):
            error(f"Invalid config key: {key}")
            raise typer.Exit(code=2)
        target = target[k]

    final_key = keys[-1]
    if final_key not in target or isinstance(target[final_key], dict):
        error(f"Unknown config key: {key}")
        raise typer.Exit(code=2)

    coerced = _coerce(key, target[final_key], value)
    target[final_key] = coerced

    try:
        new_config = ProviderConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(
    ctx: typer.Context,
) -> None:
    """Reset configuration to defaults.

    Asks for confirmation unless ``--force`` is active.

    Example::

        gitpod-auth config reset
        gitpod-auth --force config reset
    """
    from gitpod_auth.config import save_config
    from gitpod_auth.models import ProviderConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Reset all config to defaults?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    save_config(ProviderConfig())
    success("Configuration reset to defaults.")
