"""
CLI helpers shared by built-in and plugin commands.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable
from contextlib import contextmanager

import typer
from shop_dal import ShopDALError, WriteValidationError
from shop_demodata import DemodataError, DemodataRequest, ShopStyle

from .kernel import Kernel

logger = logging.getLogger(__name__)


def get_kernel(ctx: typer.Context) -> Kernel:
    kernel = ctx.obj
    if not isinstance(kernel, Kernel):
        msg = "The shop kernel is not booted"
        raise RuntimeError(msg)
    return kernel


@contextmanager
def exit_on_error(style: ShopStyle) -> Generator[None, None, None]:
    """Report data layer and demo data errors and exit with status 1."""
    try:
        yield
    except WriteValidationError as exc:
        style.error(f"Invalid {exc.entity_name} payload")
        style.table(["Path", "Message"], [[v.path, v.message] for v in exc.violations])
        raise typer.Exit(code=1) from exc
    except (ShopDALError, DemodataError) as exc:
        logger.debug("Command failed", exc_info=True)
        style.error(str(exc))
        raise typer.Exit(code=1) from exc


def parse_entity_counts(values: Iterable[str]) -> DemodataRequest:
    """
    Build a demo data request from ``NAME=COUNT`` strings.

    Raises:
        typer.BadParameter: For malformed values.
    """
    request = DemodataRequest()
    for value in values:
        name, separator, raw_count = value.partition("=")
        name = name.strip()
        if not separator or not name:
            msg = f"expected NAME=COUNT, got {value!r}"
            raise typer.BadParameter(msg, param_hint="--entity")
        try:
            request.add(name, int(raw_count))
        except ValueError as exc:
            raise typer.BadParameter(str(exc), param_hint="--entity") from exc
    return request
