import logging
from typing import Sequence, Union

from .errors import NoServersAvailable, ServerNotFound
from .models import Endpoint

CLOSEST = "closest"

log = logging.getLogger(__name__)

def select_server(
    candidates: Sequence[Endpoint],
    preference: Union[str, int] = CLOSEST,
    allow_fallback: bool = False,
) -> Endpoint:
    """
    Pick the endpoint to measure against.

    `candidates` is expected closest-first, as the directory returns it; the
    first element wins for CLOSEST and for fallback. A specific preference is
    matched against `Endpoint.id` as a string.

    Raises NoServersAvailable for an empty list and ServerNotFound when the
    preferred id is missing and fallback is disabled.
    """
    if not candidates:
        raise NoServersAvailable()

    if preference == CLOSEST:
        server = candidates[0]
        _log_choice("closest", server)
        return server

    wanted = str(preference)
    for server in candidates:
        if server.id == wanted:
            _log_choice("configured", server)
            return server

    if not allow_fallback:
        raise ServerNotFound(wanted)

    server = candidates[0]
    log.debug(
        "configured server not found, falling back to closest",
        extra={"event": "select.fallback", "extra_fields": {"requested_server_id": wanted}},
    )
    _log_choice("fallback", server)
    return server

def _log_choice(reason: str, server: Endpoint) -> None:
    log.debug(
        "selected server",
        extra={
            "event": "select.server",
            "extra_fields": {
                "reason": reason,
                "server_id": server.id,
                "server_name": server.name,
                "server_country": server.country,
                "distance": server.distance_km,
            },
        },
    )
