"""Client-side validation of request options."""
import re
from typing import Optional

from config.settings import MAX_SAFE_INTEGER

from .errors import InvalidCenterCropError, InvalidResolutionError, InvalidTimeoutError

CENTER_CROP_PATTERN = re.compile(r"^-?\d+\.?\d*:-?\d+\.?\d*$", re.ASCII)
RESOLUTION_PATTERN = re.compile(r"^[1-9][0-9]*x$")


def validate_timeout(value: Optional[int], name: str = "timeout") -> Optional[int]:
    """Check that a timeout in milliseconds is a non-negative safe integer.

    Args:
        value: Timeout in milliseconds, or None when not set
        name: Option name used in the error message

    Returns:
        The value unchanged

    Raises:
        InvalidTimeoutError: If the value is not an int in [0, 2**53 - 1]
    """
    if value is None:
        return None

    # bool is an int subclass but never a meaningful timeout
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTimeoutError(f"{name} must be an integer, got {value!r}")

    if value < 0 or value > MAX_SAFE_INTEGER:
        raise InvalidTimeoutError(f"{name} must be between 0 and {MAX_SAFE_INTEGER}, got {value}")

    return value


def validate_center_crop(value: Optional[str]) -> Optional[str]:
    """Check that a center crop looks like ``<number>:<number>``, e.g. ``16:9``."""
    if value is None:
        return None

    if not isinstance(value, str) or not CENTER_CROP_PATTERN.fullmatch(value):
        raise InvalidCenterCropError(f"center_crop must look like '<number>:<number>', got {value!r}")

    return value


def validate_resolution(value: Optional[str]) -> Optional[str]:
    """Check that a resolution is ``original`` or ``<positive integer>x``."""
    if value is None:
        return None

    if not isinstance(value, str) or (value != "original" and not RESOLUTION_PATTERN.fullmatch(value)):
        raise InvalidResolutionError(f"resolution must be 'original' or '<n>x', got {value!r}")

    return value
