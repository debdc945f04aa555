"""Cross-platform terminal styling.

Provides simple text styling that works on all platforms.
Falls back to plain text markers when ANSI colors aren't supported.
"""

import os
import sys


def _supports_color() -> bool:
    """Check if the terminal supports ANSI colors."""
    if os.environ.get("FORCE_COLOR"):
        return True

    if os.environ.get("NO_COLOR"):
        return False

    if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
        return False

    if os.name == "nt":
        # Terminals known to handle ANSI on Windows
        if os.environ.get("WT_SESSION"):
            return True
        if os.environ.get("TERM_PROGRAM") == "vscode":
            return True
        if os.environ.get("ANSICON") or os.environ.get("TERM"):
            return True

        # Try to enable VT100 mode on Windows 10+
        try:
            import ctypes
            kernel32 = ctypes.windll.kernel32
            handle = kernel32.GetStdHandle(-11)  # STD_OUTPUT_HANDLE
            mode = ctypes.c_ulong()
            kernel32.GetConsoleMode(handle, ctypes.byref(mode))
            kernel32.SetConsoleMode(handle, mode.value | 0x0004)
            return True
        except (AttributeError, OSError):
            return False

    return True


# Check once at import time
USE_COLOR = _supports_color()


def dim(text: str) -> str:
    """Dim/gray text."""
    if USE_COLOR:
        return f"\033[90m{text}\033[0m"
    return text


def bold(text: str) -> str:
    if USE_COLOR:
        return f"\033[1m{text}\033[0m"
    return text


def green(text: str) -> str:
    """Green text (success)."""
    if USE_COLOR:
        return f"\033[32m{text}\033[0m"
    return f"+ {text}"


def red(text: str) -> str:
    """Red text (error)."""
    if USE_COLOR:
        return f"\033[31m{text}\033[0m"
    return f"! {text}"


def yellow(text: str) -> str:
    """Yellow text (warning)."""
    if USE_COLOR:
        return f"\033[33m{text}\033[0m"
    return f"* {text}"


def cyan(text: str) -> str:
    """Cyan text (info)."""
    if USE_COLOR:
        return f"\033[36m{text}\033[0m"
    return text


def _marker(label: str, color: str, width: int = 60) -> str:
    title = f" {label} "
    left = (width - len(title)) // 2
    right = width - len(title) - left
    if USE_COLOR:
        return (
            f"\033[{color}m{'─' * left}\033[0m"
            f"\033[1;{color}m{title}\033[0m"
            f"\033[{color}m{'─' * right}\033[0m"
        )
    return f"{'-' * left}{title}{'-' * right}"


def ai_response_start() -> str:
    """Visual marker for start of a model response."""
    return "\n" + _marker("LINK", "36")


def ai_response_end() -> str:
    """Visual marker for end of a model response."""
    if USE_COLOR:
        return f"\033[90m{'─' * 60}\033[0m\n"
    return f"{'-' * 60}\n"


def user_prompt_marker() -> str:
    """Visual marker before user prompt."""
    return "\n" + _marker("YOU", "32")


def section_header(title: str, style: str = "info") -> str:
    """Create a styled section header.

    Args:
        title: The section title
        style: One of "info", "success", "warning", "error"
    """
    colors = {
        "info": "36",
        "success": "32",
        "warning": "33",
        "error": "31",
    }
    return _marker(title, colors.get(style, colors["info"]))
