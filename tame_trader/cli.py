"""CLI entry point for the trading client."""

import typer

from tame_trader.cli_commands.orders import orders_app

app = typer.Typer(
    name="tame-trader",
    help="Order lifecycle tools on top of a unified venue gateway - sandbox by default",
)

app.add_typer(orders_app, name="orders")


def _register_root_aliases(source_app: typer.Typer) -> None:
    """Register commands from source_app at the root level."""

    for cmd in source_app.registered_commands:
        callback = cmd.callback
        if callback is None:
            continue
        command_name = cmd.name or callback.__name__.replace("_", "-")
        decorator = app.command(  # type: ignore[misc]
            name=command_name,
            help=cmd.help,
            short_help=cmd.short_help,
            add_help_option=cmd.add_help_option,
            hidden=cmd.hidden,
            deprecated=cmd.deprecated,
            rich_help_panel=cmd.rich_help_panel,
            no_args_is_help=cmd.no_args_is_help,
            context_settings=cmd.context_settings,
        )
        decorator(callback)


_register_root_aliases(orders_app)


if __name__ == "__main__":
    app()
