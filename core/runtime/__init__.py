"""Agent runtime: explicit lifecycle context and agent factory.

Import `core.runtime.context` / `core.runtime.agent` directly; this package
only re-exports the error type so config can depend on it without cycles.
"""

from core.runtime.errors import ConfigurationError

__all__ = ["ConfigurationError"]
