"""Runtime error types."""


class ConfigurationError(Exception):
    """Model or provider configuration cannot satisfy a run (e.g. missing API key)."""
