"""Dymium Provider - Keeps OpenCode authenticated against the Dymium LLM gateway."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("dymium-provider")
except PackageNotFoundError:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "AuthMode",
    # Lifecycle
    "TokenManager",
    "ProviderService",
    "CommandResult",
    "RefreshScheduler",
    # Consumer sync
    "OpenCodeSync",
    "EndpointVerifier",
    "DymiumError",
]

# Lazy imports to avoid circular dependencies
def __getattr__(name: str) -> object:
    """Lazy import module components."""
    if name in ("AppConfig", "AuthMode"):
        from .config import AppConfig, AuthMode
        return {"AppConfig": AppConfig, "AuthMode": AuthMode}[name]
    elif name == "TokenManager":
        from .manager import TokenManager
        return TokenManager
    elif name in ("ProviderService", "CommandResult"):
        from .service import CommandResult, ProviderService
        return {"ProviderService": ProviderService, "CommandResult": CommandResult}[name]
    elif name == "RefreshScheduler":
        from .scheduler import RefreshScheduler
        return RefreshScheduler
    elif name == "OpenCodeSync":
        from .opencode import OpenCodeSync
        return OpenCodeSync
    elif name == "EndpointVerifier":
        from .verifier import EndpointVerifier
        return EndpointVerifier
    elif name == "DymiumError":
        from .errors import DymiumError
        return DymiumError
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
