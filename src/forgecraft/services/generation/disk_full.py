"""Disk-full error classification.

The errno check is authoritative. Message matching is a best-effort fallback
for backends that only report text, and it only knows English messages.
"""

import errno
from typing import Callable

DiskFullClassifier = Callable[[object], bool]

DISK_FULL_MESSAGE = "Disk full"

_DISK_FULL_PHRASES = ("disk full", "no space left on device")


def _has_enospc_code(error: BaseException) -> bool:
    code = getattr(error, "errno", None)
    if code == errno.ENOSPC:
        return True
    # Errors relayed from other runtimes carry the symbolic code as a string
    return getattr(error, "code", None) in (errno.ENOSPC, "ENOSPC")


def _mentions_disk_full(text: str) -> bool:
    lowered = text.lower()
    return any(phrase in lowered for phrase in _DISK_FULL_PHRASES)


def is_disk_full_error(error: object) -> bool:
    """Return True if a raised exception or an error message means the disk is full.

    Args:
        error: An exception raised by a backend, or the error text of a
            failed result

    Returns:
        True for ENOSPC codes or a known "no space" message
    """
    if isinstance(error, BaseException):
        if _has_enospc_code(error):
            return True
        return _mentions_disk_full(str(error))

    if isinstance(error, str):
        return _mentions_disk_full(error)

    return False
