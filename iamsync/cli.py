"""CLI entrypoint for iamsync."""

import logging
import sys
from pathlib import Path

import click

from . import __version__
from .config import load_config
from .errors import ConfigError
from .state import DEFAULT_STATE_PATH

DEFAULT_CONFIG_PATH = Path(".iamsync") / "config.toml"


@click.group()
@click.version_option(__version__, prog_name="iamsync")
@click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_STATE_PATH,
    show_default=True,
    help="Path to the state file holding tracked policies",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Path to the TOML config file (defaults apply if missing)",
)
@click.option("--verbose", is_flag=True, help="Log driver polling and decisions")
@click.pass_context
def cli(ctx: click.Context, state_path: Path, config_path: Path, verbose: bool) -> None:
    """iamsync - reconcile OCI identity policies against a TOML manifest."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    try:
        settings = load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    ctx.obj["settings"] = settings
    ctx.obj["state_path"] = state_path


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output the plan as JSON")
@click.option("--no-prune", is_flag=True, help="Do not plan deletion of policies missing from the manifest")
@click.pass_context
def plan(ctx: click.Context, manifest: Path, output_json: bool, no_prune: bool) -> None:
    """Show what apply would change (refreshes, never writes)."""
    from .commands.reconcile_cmd import run_plan

    sys.exit(
        run_plan(
            manifest,
            settings=ctx.obj["settings"],
            state_path=ctx.obj["state_path"],
            output_json=output_json,
            prune=not no_prune,
        )
    )


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--parallel",
    type=click.IntRange(min=1),
    default=1,
    show_default=True,
    help="Reconcile up to N independent policies concurrently",
)
@click.option("--no-prune", is_flag=True, help="Keep tracked policies missing from the manifest")
@click.pass_context
def apply(ctx: click.Context, manifest: Path, parallel: int, no_prune: bool) -> None:
    """Reconcile remote policies with the manifest.

    \b
    Examples:
        iamsync apply policies.toml
        iamsync --config prod.toml apply policies.toml --parallel 4
    """
    from .commands.reconcile_cmd import run_apply

    sys.exit(
        run_apply(
            manifest,
            settings=ctx.obj["settings"],
            state_path=ctx.obj["state_path"],
            parallel=parallel,
            prune=not no_prune,
        )
    )


@cli.command()
@click.pass_context
def refresh(ctx: click.Context) -> None:
    """Re-read every tracked policy from the remote."""
    from .commands.state_cmd import run_refresh

    sys.exit(run_refresh(settings=ctx.obj["settings"], state_path=ctx.obj["state_path"]))


@cli.command()
@click.argument("name")
@click.pass_context
def show(ctx: click.Context, name: str) -> None:
    """Print a tracked policy record as JSON."""
    from .commands.state_cmd import run_show

    sys.exit(run_show(name, state_path=ctx.obj["state_path"]))


@cli.command("import")
@click.argument("policy_id")
@click.option("--name", type=str, default=None, help="Track under this name (defaults to the remote name)")
@click.pass_context
def import_(ctx: click.Context, policy_id: str, name: str | None) -> None:
    """Adopt an existing policy by OCID."""
    from .commands.state_cmd import run_import

    sys.exit(
        run_import(
            policy_id,
            name=name,
            settings=ctx.obj["settings"],
            state_path=ctx.obj["state_path"],
        )
    )


@cli.command()
@click.argument("name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def destroy(ctx: click.Context, name: str, yes: bool) -> None:
    """Delete a tracked policy remotely and discard its record."""
    from .commands.reconcile_cmd import run_destroy

    if not yes:
        click.confirm(f"Delete policy {name!r}?", abort=True)
    sys.exit(run_destroy(name, settings=ctx.obj["settings"], state_path=ctx.obj["state_path"]))


@cli.command()
@click.option("--last", "last_n", type=int, default=None, help="Only show the last N operations")
@click.option("--name", type=str, default=None, help="Only show operations on this policy")
@click.pass_context
def history(ctx: click.Context, last_n: int | None, name: str | None) -> None:
    """Show write operations recorded in the audit log."""
    from .commands.state_cmd import run_history

    sys.exit(run_history(state_path=ctx.obj["state_path"], last_n=last_n, name=name))


def main() -> None:
    """Main entrypoint."""
    cli(obj={})


if __name__ == "__main__":
    main()
