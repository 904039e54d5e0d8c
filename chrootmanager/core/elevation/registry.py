"""
Process-wide gateway — one operator, one sudo session, one gateway.

The CLI builds its gateway from configuration and installs it here
once at startup.  Call sites that were not handed a gateway explicitly
fall back to ``get_shared_gateway()`` and so share the same cached
session instead of prompting on their own.

    - CLI:    main.py  → registry.set_shared_gateway(gateway)
    - Tests:  fixture  → registry.reset_shared_gateway()
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from chrootmanager.core.elevation.gateway import ElevationGateway

logger = logging.getLogger(__name__)

_shared: Optional[ElevationGateway] = None
_guard = threading.Lock()


def get_shared_gateway() -> ElevationGateway:
    """Return the process gateway, creating it with defaults on first use."""
    global _shared
    gateway = _shared
    if gateway is not None:
        return gateway

    with _guard:
        if _shared is None:
            _shared = ElevationGateway()
            logger.debug("Created shared elevation gateway")
        return _shared


def set_shared_gateway(gateway: ElevationGateway) -> None:
    """Install the gateway built by the entry point."""
    global _shared
    with _guard:
        previous, _shared = _shared, gateway
    if previous is not None and previous is not gateway:
        previous.invalidate()


def reset_shared_gateway() -> None:
    """Invalidate and drop the shared gateway."""
    global _shared
    with _guard:
        previous, _shared = _shared, None
    if previous is not None:
        previous.invalidate()
