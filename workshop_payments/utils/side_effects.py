from __future__ import annotations

import logging
from typing import Any, Callable, TypeVar

from workshop_payments.domain.errors import SideEffectError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def best_effort(action: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T | None:
    """Run a non-critical side effect.

    Failures are logged as ``SideEffectError`` and ``None`` is returned; the
    caller's primary effect is never failed because of them.
    """
    try:
        return func(*args, **kwargs)
    except Exception as exc:  # noqa: BLE001
        err = SideEffectError(action, exc)
        logger.info(str(err), extra={"event": action, "error": str(exc)})
        return None
