"""Exceptions raised by the builder client."""


class BuilderClientError(Exception):
    """Base class for all builder client errors."""

    pass


class ConfigError(BuilderClientError):
    """Raised when the configuration file cannot be read or is malformed."""

    pass


class SnapshotError(BuilderClientError):
    """Raised when an inbound world snapshot cannot be decoded."""

    pass


class ProtocolError(BuilderClientError):
    """Raised when a STOMP frame cannot be parsed or is invalid."""

    pass


class ClientConnectionError(BuilderClientError):
    """Raised when the connection to the world server fails."""

    pass


class DuplicateMaterialError(BuilderClientError):
    """Raised when a duplicate material is armed for building."""

    def __init__(self, name: str):
        super().__init__(f"Material '{name}' duplicates another catalog entry")
        self.name = name
