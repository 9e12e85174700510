"""AppContext: shared Click context for all commands.

Created once by the root CLI group and passed to subcommands via
``@click.pass_obj``. Configures logging and routes results to
stdout/stderr with the right exit code.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import click

from sxn.config.logging import configure_logging
from sxn.output.formatters import OutputSettings, format_result

if TYPE_CHECKING:
    from sxn.config.settings import SxnSettings
    from sxn.services.result import ServiceResult


class AppContext:
    """Settings plus result emission for one CLI invocation."""

    def __init__(self, settings: SxnSettings) -> None:
        self.settings = settings
        configure_logging(verbose=settings.verbose, log_json=settings.log_json)

    def emit(self, result: ServiceResult) -> None:
        """Print *result*.

        * Success: stdout; warnings go to stderr outside JSON mode.
        * Failure: stderr, then exit with code 1.
        """
        settings = OutputSettings(
            json_output=self.settings.json_output,
            quiet=self.settings.quiet,
            verbose=self.settings.verbose,
        )
        output = format_result(result, settings=settings)
        if result.ok:
            click.echo(output)
            if settings.quiet and not settings.json_output:
                for warning in result.warnings:
                    click.echo(f"WARNING: {warning}", err=True)
        else:
            click.echo(output, err=True)
            raise SystemExit(1)
