"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO); the caller
extracts the text via ``get_output(console)``. Renderers are dispatched
by ``result.op`` in :func:`render_result`; unknown ops fall through to a
generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from io import StringIO
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text
from ruamel.yaml import YAML

from sxn.output.console import create_console, get_output, style_for_state

if TYPE_CHECKING:
    from rich.console import Console

    from sxn.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich."""
    console = create_console()
    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)
    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op}: {msg}"
    if result.op == "apply_rules":
        return "\n".join(result.data.get("applied_rules", []))
    if result.op == "validate_rules":
        return "\n".join(result.data.get("rules", []))
    if result.op == "rule_types":
        return "\n".join(item["type"] for item in result.data.get("items", []))
    if result.op == "suggest_rules":
        return dump_yaml(result.data.get("rules", {})).rstrip("\n")
    return f"OK: {result.op}"


def dump_yaml(data: Any) -> str:
    """Serialize *data* as block-style YAML, keeping key order.

    A fresh round-trip instance per call; ruamel's YAML object is stateful.
    """
    yaml = YAML()
    yaml.default_flow_style = False
    buffer = StringIO()
    yaml.dump(data, buffer)
    return buffer.getvalue()


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    console.print(Text("OK", style="sxn.ok"), Text(f"  {result.op}", style="sxn.op"), sep="")


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="sxn.key")
    style = "sxn.path" if key in ("path", "session", "project") else ""
    if isinstance(value, dict | list):
        value = _json.dumps(value, separators=(",", ":"))
    console.print(k, Text(str(value), style=style), sep="")


def _render_meta(console: Console, result: ServiceResult) -> None:
    if not result.meta:
        return
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        console.print(f"    {k}: {v}")


def _render_warnings(console: Console, warnings: list[str]) -> None:
    for warning in warnings:
        console.print(Text("  warning: ", style="sxn.warning"), Text(warning), sep="")


def _rules_table(rules: list[dict[str, Any]], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Rule", style="sxn.rule", no_wrap=True)
    table.add_column("Type")
    table.add_column("State")
    table.add_column("Artifacts", justify="right")
    if verbose:
        table.add_column("Duration", justify="right", style="dim")
    table.add_column("Error")
    for rule in rules:
        state = str(rule.get("state", ""))
        row: list[Any] = [
            str(rule.get("name", "")),
            str(rule.get("type", "")),
            Text(state, style=style_for_state(state)),
            str(rule.get("artifacts", 0)),
        ]
        if verbose:
            row.append(f"{float(rule.get('duration', 0.0)):.3f}s")
        row.append(Text(rule.get("error") or ""))
        table.add_row(*row)
    return table


def _summary_line(console: Console, data: dict[str, Any]) -> None:
    console.print(
        f"  applied {len(data.get('applied_rules', []))}, "
        f"failed {len(data.get('failed_rules', []))}, "
        f"skipped {len(data.get('skipped_rules', []))} "
        f"in {float(data.get('total_duration', 0.0)):.2f}s"
    )


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(
        Text("ERROR", style="sxn.error"),
        Text(f"  {result.op}", style="sxn.op"),
        Text(f": {msg}"),
        sep="",
    )
    if err is None:
        return

    errors = err.detail.get("errors", [])
    for entry in errors:
        if isinstance(entry, dict):
            console.print(f"  - {entry.get('rule')}: {entry.get('message')}", markup=False)
        else:
            console.print(f"  - {entry}", markup=False)
    if "rolled_back" in err.detail:
        state = "complete" if err.detail["rolled_back"] else "incomplete"
        console.print(f"  rollback: {state}")
    if result.data.get("rules"):
        console.print(_rules_table(result.data["rules"], verbose=verbose))
        _summary_line(console, result.data)
    if verbose:
        for k, v in err.detail.items():
            if k not in ("errors", "rolled_back"):
                console.print(f"  {k}: {v}")


# ── Op renderers ──────────────────────────────────────────────────────


def _render_validate(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    rules = result.data.get("rules", [])
    _field(console, "rules", len(rules))
    for number, wave in enumerate(result.data.get("waves", []), start=1):
        console.print(Text(f"  wave {number}: ", style="sxn.key"), ", ".join(wave), sep="")
    if verbose:
        _render_meta(console, result)


def _render_apply(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    console.print(_rules_table(result.data.get("rules", []), verbose=verbose))
    _summary_line(console, result.data)
    _render_warnings(console, result.warnings)
    if verbose:
        _render_meta(console, result)


def _render_types(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Type", style="sxn.rule", no_wrap=True)
    table.add_column("Description")
    for item in result.data.get("items", []):
        table.add_row(item["type"], item["description"])
    console.print(table)
    if verbose:
        for item in result.data.get("items", []):
            console.print(Text(f"\n  {item['type']} example:", style="sxn.key"))
            console.print(dump_yaml({"config": item["example"]}), markup=False)


def _render_suggest(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    project = result.data.get("project", {})
    for key in ("path", "type", "package_manager"):
        if key in project:
            _field(console, key, project[key])
    sensitive = project.get("sensitive_files", [])
    if sensitive:
        _field(console, "sensitive_files", ", ".join(sensitive))
    console.print()
    console.print(dump_yaml({"rules": result.data.get("rules", {})}), markup=False, end="")


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "validate_rules": _render_validate,
    "apply_rules": _render_apply,
    "rule_types": _render_types,
    "suggest_rules": _render_suggest,
}
