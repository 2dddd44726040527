from __future__ import annotations

import os
import sys

import click
import typer
from dotenv import load_dotenv

from grantkit import GrantKitError
from grantkit.logs import configure_logging

from . import __version__
from .cli_shared import (
    DEFAULT_APP_REF,
    GRANTKIT_APP,
    GRANTKIT_LOG_LEVEL,
    GlobalOpts,
    OpError,
    UsageError,
    _env_or_none,
    _load_app,
    _policy_stacks,
    _print_json,
    _rich_error,
)

app = typer.Typer(
    name="grantkit",
    help="Inspect grants and the resource policies they synthesize.",
    no_args_is_help=True,
    add_completion=False,
)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"grantkit {__version__}")
        raise typer.Exit(code=0)


def _ctx_global(ctx: typer.Context) -> GlobalOpts:
    if isinstance(ctx.obj, dict) and isinstance(ctx.obj.get("g"), GlobalOpts):
        return ctx.obj["g"]
    return GlobalOpts(
        app_ref=_env_or_none(GRANTKIT_APP) or DEFAULT_APP_REF,
        pretty=True,
        quiet=False,
    )


@app.callback()
def app_callback(
    ctx: typer.Context,
    app_ref: str | None = typer.Option(
        None,
        "--app",
        help=f"CDK app factory as module:callable (env override: {GRANTKIT_APP})",
    ),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    version: bool = typer.Option(False, "--version", callback=_version_callback, is_eager=True),
) -> None:
    del version
    g = GlobalOpts(
        app_ref=app_ref or _env_or_none(GRANTKIT_APP) or DEFAULT_APP_REF,
        pretty=not plain_json,
        quiet=quiet,
        log_level=_env_or_none(GRANTKIT_LOG_LEVEL) or "WARNING",
    )
    try:
        configure_logging(g.log_level, quiet=g.quiet)
    except ValueError as e:
        raise UsageError(f"invalid {GRANTKIT_LOG_LEVEL}: {e}") from e
    ctx.obj = {"g": g}


@app.command("policies")
def policies(ctx: typer.Context) -> None:
    """Print every resolved policy document, keyed by stack and policy path."""
    g = _ctx_global(ctx)
    out = {
        stack.stack_name: stack.policy_documents()
        for stack in _policy_stacks(_load_app(g.app_ref))
    }
    _print_json(out, pretty=g.pretty)


@app.command("template")
def template(
    ctx: typer.Context,
    stack: str | None = typer.Option(None, "--stack", help="Only this stack's template"),
) -> None:
    """Print the synthesized CloudFormation template(s)."""
    g = _ctx_global(ctx)
    cdk_app = _load_app(g.app_ref)
    names = [s.stack_name for s in _policy_stacks(cdk_app)]
    assembly = cdk_app.synth()
    if stack:
        if stack not in {s.stack_name for s in assembly.stacks}:
            raise UsageError(f"unknown stack {stack!r} (known: {', '.join(sorted(names)) or 'none'})")
        _print_json(assembly.get_stack_by_name(stack).template, pretty=g.pretty)
        return
    _print_json({s.stack_name: s.template for s in assembly.stacks}, pretty=g.pretty)


@app.command("grants")
def grants(ctx: typer.Context) -> None:
    """Print the grant log: who was granted what, and which policy objects carry it."""
    g = _ctx_global(ctx)
    out = {
        stack.stack_name: [record.to_dict() for record in stack.grant_log]
        for stack in _policy_stacks(_load_app(g.app_ref))
    }
    _print_json(out, pretty=g.pretty)


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    # Discover and load .env without overriding already-exported values.
    load_dotenv()
    # Factories such as stacks.grants_demo_stack live next to the working directory.
    if os.getcwd() not in sys.path:
        sys.path.insert(0, os.getcwd())
    try:
        result = app(args=argv, prog_name="grantkit", standalone_mode=False)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except click.ClickException as e:
        _rich_error(e.format_message())
        return int(e.exit_code)
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except (OpError, GrantKitError) as e:
        _rich_error(str(e))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
