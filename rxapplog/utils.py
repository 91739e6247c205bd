"""Utility helpers used across ``rxapplog`` modules."""

import platform
import random
import string
import time
import traceback


def get_short_error_info(e: BaseException) -> str:
    """
    Get a short error information from an exception.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: A short error information.
    """
    return f"{type(e).__name__}: {str(e)}"


# the function to get the full error information from an exception.
def get_full_error_info(e: BaseException) -> str:
    """
    Get the full error information from an exception.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: The full error information.
    """
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id() -> str:
    """Return ``<epoch-ms>-<7 base36 chars>``, e.g. ``1760880000000-k3j9x0a``."""
    suffix = "".join(random.choices(_BASE36, k=7))
    return f"{time.time_ns() // 1_000_000}-{suffix}"


_session_id: str | None = None


def process_session_id() -> str:
    """Session id shared by every entry logged from this process."""
    global _session_id

    if _session_id is None:
        _session_id = generate_session_id()
    return _session_id


def default_user_agent() -> str:
    """Client identifier sent with every row when none is configured."""
    from . import __version__

    return (
        f"rxapplog/{__version__} "
        f"{platform.python_implementation()}/{platform.python_version()} "
        f"({platform.system()} {platform.machine()})"
    )
