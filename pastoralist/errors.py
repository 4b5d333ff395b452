"""Exception types raised by Pastoralist."""


class PastoralistError(Exception):
    """Base class for errors that abort a run."""


class ConfigError(PastoralistError):
    """Configuration failed schema validation."""


class WorkspaceError(PastoralistError):
    """Workspace globs are missing or matched nothing."""


class ManifestError(PastoralistError):
    """The manifest could not be read."""


class ManifestWriteError(ManifestError):
    """The manifest could not be written."""


class ProviderError(PastoralistError):
    """A vulnerability provider could not be queried."""
