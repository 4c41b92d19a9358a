"""Error types shared across the package."""


class VoyagerScopeError(RuntimeError):
    """Base error for setup-time failures."""


class HookInstallError(VoyagerScopeError):
    """Raised when a hook point cannot be bound on its owner."""


class TablesError(ValueError):
    """Raised when a classifier tables file is invalid."""
