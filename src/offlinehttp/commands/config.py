"""Config commands -- view and modify global configuration.

Provides the ``offlinehttp config`` sub-command group for reading, updating
and resetting the user's :class:`~offlinehttp.models.GlobalConfig` file.
"""

from __future__ import annotations

import typer

from offlinehttp.output import error, get_output, info, success

config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    effective: bool = typer.Option(
        False,
        "--effective",
        help="Show the resolved config (CLI flags, env, project file, user file).",
    ),
) -> None:
    """Show the user configuration, or the effective one with ``--effective``.

    Example::

        offlinehttp config show
        offlinehttp --json config show --effective
    """
    from offlinehttp.config import get_config_dir, load_global_config, resolve_config

    if effective:
        obj = ctx.obj or {}
        config = resolve_config(obj.get("instance"), obj.get("key_prefix"))
    else:
        config = load_global_config()
    info(f"Config directory: {get_config_dir()}")
    get_output().print_payload(config.model_dump(mode="json"))


@config_app.command("set")
def config_set(
    key: str = typer.Argument(help="Config key (dot notation, e.g., 'cache.key_prefix')."),
    value: str = typer.Argument(help="Value to set. Lists are comma-separated."),
) -> None:
    """Set a configuration value.

    The value is coerced to the type of the existing field (bool, number,
    list or string); ``none`` clears an optional field. The updated config
    is validated before it is saved.

    Raises:
        typer.Exit: With code 2 if the key is unknown or the value invalid.

    Example::

        offlinehttp config set cache.instance_name tiles
        offlinehttp config set request.timeout 2.5
        offlinehttp config set request.cacheable_methods GET,HEAD
    """
    from pydantic import ValidationError

    from offlinehttp.config import load_global_config, save_global_config
    from offlinehttp.models import GlobalConfig

    config = load_global_config()
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

    current = target[final_key]
    if isinstance(current, bool):
        coerced = value.lower() in ("true", "1", "yes")
    elif isinstance(current, (int, float)):
        try:
            coerced = float(value) if "." in value or isinstance(current, float) else int(value)
        except ValueError:
            error(f"Expected a number for {key}, got: {value}")
            raise typer.Exit(code=2) from None
    elif isinstance(current, list):
        coerced = [item.strip() for item in value.split(",") if item.strip()]
    elif value.lower() == "none":
        coerced = None
    else:
        coerced = value

    target[final_key] = coerced

    try:
        new_config = GlobalConfig.model_validate(data)
    except ValidationError as exc:
        error(f"Validation error: {exc}")
        raise typer.Exit(code=2) from None

    save_global_config(new_config)
    success(f"Set {key} = {coerced}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Reset configuration to defaults. Asks for confirmation unless ``--force``.

    Example::

        offlinehttp --force config reset
    """
    from offlinehttp.config import save_global_config
    from offlinehttp.models import GlobalConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        if not typer.confirm("Reset all config to defaults?"):
            info("Cancelled.")
            raise typer.Exit()

    save_global_config(GlobalConfig())
    success("Configuration reset to defaults.")
