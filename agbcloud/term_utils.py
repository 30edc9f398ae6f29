import os
import sys
from typing import Optional

from rich.console import Console

from .constants import CODE_DISPLAY_LENGTH

# Secrets are displayed with only this many leading characters visible.
SECRET_VISIBLE_CHARS = 4

_console = Console(highlight = False, soft_wrap = True)
_err_console = Console(stderr = True, highlight = False, soft_wrap = True)


def useColors():
    """
    Return true if we should use ANSI colors in the output.
    :return: True if ANSI colors should be used, False otherwise.
    """
    if not sys.stdout.isatty():
        return False

    if "NO_COLOR" in os.environ:
        return False

    term = os.environ.get("TERM", "")
    if term == "dumb":
        return False

    return True


def _emit(console: Console, message: str, style: Optional[str] = None) -> None:
    # Markup is disabled so URLs and provider messages are printed verbatim.
    console.print(message, style = style if useColors() else None, markup = False)


def print_info(message: str) -> None:
    _emit(_console, message)


def print_success(message: str) -> None:
    _emit(_console, message, "bold green")


def print_warning(message: str) -> None:
    _emit(_console, "Warning: %s" % (message,), "yellow")


def print_error(message: str) -> None:
    _emit(_err_console, message, "bold red")


def truncate_for_display(value: str, length: int = CODE_DISPLAY_LENGTH) -> str:
    """
    Return a prefix of value safe to show in the terminal.

    Values shorter than length are returned whole, longer ones are cut
    and suffixed with "...".
    """
    if not value:
        return ""
    prefix = value[:min(len(value), length)]
    if len(value) > length:
        prefix += "..."
    return prefix


def mask_secret(value: str, visible: int = SECRET_VISIBLE_CHARS) -> str:
    """
    Mask a secret for display, e.g. "abcd********".

    Secrets too short to reveal anything are fully masked.
    """
    if not value:
        return "(empty)"
    if len(value) <= visible * 2:
        return "*" * len(value)
    return value[:visible] + "*" * (len(value) - visible)
