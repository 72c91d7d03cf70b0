"""Command-line interface for HTTP-RPC services.

Provides a ``call`` command that invokes an operation through
``WebServiceProxy`` and prints the decoded result.

Usage::

    httprpc --url http://localhost:8080/api/ call GET sum values=1 values=2
    httprpc --url http://localhost:8080/api/ call POST notes message=hello
    httprpc --url http://localhost:8080/api/ call POST upload --attach file=./photo.jpg

Repeated ``name=value`` arguments with the same name are sent as a list.
"""

from __future__ import annotations

import base64
import json
import logging
import sys
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any

import typer

from httprpc.arguments import FileReference
from httprpc.auth import Authentication, BasicAuthentication, BearerAuthentication
from httprpc.errors import HTTPStatusError, HttpRpcError
from httprpc.proxy import ProxyConfig, WebServiceProxy
from httprpc.transport import Transport

# ---------------------------------------------------------------------------
# Output format enum
# ---------------------------------------------------------------------------


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    auto = "auto"
    json = "json"
    table = "table"


# ---------------------------------------------------------------------------
# CLI config
# ---------------------------------------------------------------------------


@dataclass
class _CliConfig:
    """Holds resolved CLI options."""

    url: str | None = None
    user: str | None = None
    password: str | None = None
    token: str | None = None
    timeout: float = 30.0
    format: OutputFormat = OutputFormat.auto
    verbose: bool = False


app = typer.Typer(
    name="httprpc",
    help="CLI client for HTTP-RPC services.",
    add_completion=False,
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def _main(
    ctx: typer.Context,
    url: Annotated[str | None, typer.Option("--url", "-u", envvar="HTTPRPC_URL", help="Server base URL")] = None,
    user: Annotated[str | None, typer.Option("--user", envvar="HTTPRPC_USER", help="Basic auth user")] = None,
    password: Annotated[
        str | None, typer.Option("--password", envvar="HTTPRPC_PASSWORD", help="Basic auth password")
    ] = None,
    token: Annotated[str | None, typer.Option("--token", envvar="HTTPRPC_TOKEN", help="Bearer token")] = None,
    timeout: Annotated[float, typer.Option("--timeout", "-t", help="Request timeout in seconds")] = 30.0,
    fmt: Annotated[OutputFormat, typer.Option("--format", "-f", help="Output format")] = OutputFormat.auto,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log wire traffic on stderr")] = False,
) -> None:
    """Configure the server, credentials and output options."""
    if token and (user or password):
        raise typer.BadParameter("--token and --user/--password are mutually exclusive")
    if password is not None and user is None:
        raise typer.BadParameter("--password requires --user")
    ctx.obj = _CliConfig(
        url=url,
        user=user,
        password=password,
        token=token,
        timeout=timeout,
        format=fmt,
        verbose=verbose,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _enable_wire_logging() -> None:
    """Send ``httprpc`` DEBUG records to stderr."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    logger = logging.getLogger("httprpc")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


def _parse_key_value_args(args: list[str]) -> dict[str, Any]:
    """Parse ``name=value`` arguments; repeated names accumulate into a list."""
    result: dict[str, Any] = {}
    for arg in args:
        name, sep, value = arg.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected name=value, got {arg!r}")
        if name not in result:
            result[name] = value
        elif isinstance(result[name], list):
            result[name].append(value)
        else:
            result[name] = [result[name], value]
    return result


def _parse_attachments(items: list[str]) -> dict[str, FileReference]:
    """Parse ``name=path`` attachment options."""
    attachments: dict[str, FileReference] = {}
    for item in items:
        name, sep, path = item.partition("=")
        if not sep or not name or not path:
            raise typer.BadParameter(f"Expected name=path, got {item!r}")
        if name in attachments:
            raise typer.BadParameter(f"Duplicate attachment name {name!r}")
        attachments[name] = FileReference(path)
    return attachments


def _authentication(config: _CliConfig) -> Authentication | None:
    if config.token:
        return BearerAuthentication(config.token)
    if config.user is not None:
        return BasicAuthentication(config.user, config.password or "")
    return None


def _make_transport(config: _CliConfig) -> Transport | None:
    """Return a custom transport, or ``None`` for the default httpx transport."""
    return None


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    return str(value)


def _format_table(rows: list[dict[str, object]]) -> str:
    """Format rows as a simple column-aligned text table.

    Args:
        rows: List of dicts; columns are taken from the first row.

    Returns:
        A formatted table string.

    """
    if not rows:
        return "(empty)"
    columns = list(rows[0].keys())
    widths = {col: len(col) for col in columns}
    str_rows: list[dict[str, str]] = []
    for row in rows:
        sr = {col: str(row.get(col, "")) for col in columns}
        for col in columns:
            widths[col] = max(widths[col], len(sr[col]))
        str_rows.append(sr)

    lines = ["  ".join(col.ljust(widths[col]) for col in columns)]
    lines.append("  ".join("-" * widths[col] for col in columns))
    lines.extend("  ".join(sr[col].ljust(widths[col]) for col in columns) for sr in str_rows)
    return "\n".join(lines)


def _is_rows(value: object) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(row, dict) for row in value)


def _print_result(result: object, fmt: OutputFormat) -> None:
    if fmt is OutputFormat.table or (fmt is OutputFormat.auto and _is_rows(result)):
        if not _is_rows(result):
            raise typer.BadParameter("--format table requires a list of objects")
        assert isinstance(result, list)
        typer.echo(_format_table(result))
    elif isinstance(result, str) and fmt is OutputFormat.auto:
        typer.echo(result)
    else:
        typer.echo(json.dumps(result, indent=2, default=_json_default))


def _emit_error(error: HttpRpcError) -> None:
    """Write an invocation error to stderr as JSON."""
    err: dict[str, object] = {"kind": error.kind.value, "message": error.message}
    if isinstance(error, HTTPStatusError):
        err["status"] = error.status_code
        if error.result is not None:
            err["body"] = error.result
    typer.echo(json.dumps({"error": err}, default=_json_default), err=True)


# ---------------------------------------------------------------------------
# call command
# ---------------------------------------------------------------------------


@app.command()
def call(
    ctx: typer.Context,
    verb: Annotated[str, typer.Argument(help="HTTP verb, e.g. GET or POST")],
    path: Annotated[str, typer.Argument(help="Operation path, relative to --url")],
    args: Annotated[list[str] | None, typer.Argument(help="name=value arguments")] = None,
    attach: Annotated[
        list[str] | None, typer.Option("--attach", "-a", help="name=path file attachment (repeatable)")
    ] = None,
) -> None:
    """Invoke an operation and print its decoded result."""
    config: _CliConfig = ctx.obj
    if config.verbose:
        _enable_wire_logging()

    arguments = _parse_key_value_args(args or [])
    attachments = _parse_attachments(attach or [])

    proxy = WebServiceProxy(
        ProxyConfig(base_url=config.url, timeout=config.timeout),
        authentication=_authentication(config),
        transport=_make_transport(config),
    )
    try:
        handle = proxy.invoke(verb, path, arguments, attachments)
        result = handle.result(timeout=config.timeout + 5.0)
    except HttpRpcError as e:
        _emit_error(e)
        raise typer.Exit(1) from None
    except TimeoutError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    finally:
        proxy.close()

    _print_result(result, config.format)


def main() -> None:
    """Console-script entry point."""
    app()
