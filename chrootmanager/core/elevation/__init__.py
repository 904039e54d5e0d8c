"""
Privilege elevation — package re-exports.

    from chrootmanager.core.elevation import ElevationGateway, get_shared_gateway

Layers, leaves first: cache → keeper → gateway → registry.  ``runner``
is the only module that spawns sudo, ``diagnostics`` the only one that
reads its messages.
"""

from chrootmanager.core.elevation.cache import CredentialCache  # noqa: F401
from chrootmanager.core.elevation.diagnostics import (  # noqa: F401
    SessionSignal,
    classify_sudo_stderr,
)
from chrootmanager.core.elevation.errors import (  # noqa: F401
    AccessDenied,
    AuthenticationRequired,
    ElevationError,
    ElevationIOError,
    FailedToAcquireLock,
    PermissionDenied,
    SessionExpired,
    SudoNotAvailable,
)
from chrootmanager.core.elevation.gateway import ElevationGateway  # noqa: F401
from chrootmanager.core.elevation.keeper import SessionKeeper  # noqa: F401
from chrootmanager.core.elevation.models import (  # noqa: F401
    CommandMode,
    CommandOutput,
    CommandRequest,
)
from chrootmanager.core.elevation.registry import (  # noqa: F401
    get_shared_gateway,
    reset_shared_gateway,
    set_shared_gateway,
)
