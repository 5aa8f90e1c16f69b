class SpeedtestExporterError(Exception):
    pass

class ConfigError(SpeedtestExporterError):
    """Invalid configuration. Fatal at startup."""

class RefreshError(SpeedtestExporterError):
    """A refresh cycle failed. The cycle still commits a failure snapshot."""

class FetchError(RefreshError):
    """Requester info or endpoint directory lookup failed."""

class SelectionError(RefreshError):
    pass

class NoServersAvailable(SelectionError):
    def __init__(self):
        super().__init__("no servers available")

class ServerNotFound(SelectionError):
    def __init__(self, requested_id: str):
        self.requested_id = requested_id
        super().__init__(
            f"could not find chosen server ID {requested_id} in the list of "
            "available servers, server_fallback is not set"
        )

class MeasurementError(RefreshError):
    """The speed test itself failed."""
