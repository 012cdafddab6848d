"""Error taxonomy for the sync pipeline."""

from typing import Optional


class SyncError(Exception):
    """Base class for all sync pipeline errors."""


class ConfigurationError(SyncError):
    """A required configuration value is missing or invalid."""


class MappingNotFoundError(ConfigurationError):
    """No field mapping exists for the requested mapping type."""


class UnknownPipelineError(ConfigurationError):
    """No pipeline is registered under the requested task name."""


class AuthenticationError(SyncError):
    """Token acquisition against the source or the portal failed."""


class TransportError(SyncError):
    """Non-2xx response or network fault from a remote system."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CheckpointError(SyncError):
    """Checkpoint document could not be read or written."""


class CheckpointNotFoundError(CheckpointError):
    """No checkpoint resolves for the given identifier."""


class CheckpointExistsError(CheckpointError):
    """A checkpoint already resolves for the given module or integration name."""
