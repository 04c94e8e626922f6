"""Exception types shared by the extractor, registry and synchronizer."""

from __future__ import annotations


class MCPSyncError(RuntimeError):
    """Base class for errors raised by mcpsync."""


class ConfigError(MCPSyncError):
    """Raised when the dotenv file holds a value that cannot be normalized."""


class InvalidPortError(ConfigError):
    """Raised when DB_PORT is not a usable TCP port number."""

    def __init__(self, value: str) -> None:
        super().__init__(f"DB_PORT must be an integer between 1 and 65535, got {value!r}")
        self.value = value


class RegistryError(MCPSyncError):
    """Raised when a registry command fails."""


class RegistryUnreachableError(RegistryError):
    """Raised when the registry cannot be queried at all."""


class RegistrationFailedError(RegistryError):
    """Raised when adding or removing a single entry fails."""


class CredentialUpdateError(MCPSyncError):
    """Raised when a stored credential cannot be patched."""


class CredentialStoreMissingError(CredentialUpdateError):
    """Raised when there is no document or no patcher to update credentials with."""


class ProjectIdentifierError(MCPSyncError):
    """Raised when the project identifier cannot be assembled."""


class ExecutableUnavailableError(MCPSyncError):
    """Raised when a server binary or launcher is missing or not executable."""


__all__ = [
    "ConfigError",
    "CredentialStoreMissingError",
    "CredentialUpdateError",
    "ExecutableUnavailableError",
    "InvalidPortError",
    "MCPSyncError",
    "ProjectIdentifierError",
    "RegistrationFailedError",
    "RegistryError",
    "RegistryUnreachableError",
]
