from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass
from typing import Any

import aws_cdk as cdk
from rich.console import Console

from grantkit import PolicyStack


class GrantKitCliError(Exception):
    pass


class UsageError(GrantKitCliError):
    pass


class OpError(GrantKitCliError):
    pass


GRANTKIT_APP = "GRANTKIT_APP"
GRANTKIT_LOG_LEVEL = "GRANTKIT_LOG_LEVEL"
DEFAULT_APP_REF = "stacks.grants_demo_stack:build_app"

_ERROR_CONSOLE = Console(stderr=True)


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {msg}")


@dataclass(frozen=True)
class GlobalOpts:
    app_ref: str
    pretty: bool
    quiet: bool
    log_level: str = "WARNING"


def _env_or_none(*names: str) -> str | None:
    for n in names:
        v = (os.environ.get(n) or "").strip()
        if v:
            return v
    return None


def _print_json(obj: Any, *, pretty: bool) -> None:
    if pretty:
        sys.stdout.write(json.dumps(obj, indent=2, sort_keys=True) + "\n")
    else:
        sys.stdout.write(json.dumps(obj, separators=(",", ":"), sort_keys=True) + "\n")


def _load_app(app_ref: str) -> cdk.App:
    module_name, sep, attr = (app_ref or "").strip().partition(":")
    if not sep or not module_name or not attr:
        raise UsageError(f"invalid app reference {app_ref!r} (expected module:factory)")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise OpError(f"cannot import {module_name!r}: {e}") from e
    factory = getattr(module, attr, None)
    if not callable(factory):
        raise UsageError(f"{app_ref!r} does not name a callable")
    app = factory()
    if not isinstance(app, cdk.App):
        raise OpError(f"{app_ref!r} returned {type(app).__name__}, expected aws_cdk.App")
    return app


def _policy_stacks(app: cdk.App) -> list[PolicyStack]:
    stacks = [c for c in app.node.find_all() if isinstance(c, PolicyStack)]
    for stack in stacks:
        if not stack.resolution.resolved:
            stack.resolve_policies()
    return stacks
