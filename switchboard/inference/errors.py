"""Errors raised while obtaining a content generator."""


class GeneratorError(Exception):
    """Base class for failures to build or reach a content generator."""


class ConfigurationError(GeneratorError):
    """A required setting (credential, base URL, model pair) is missing or invalid."""


class ConnectivityError(GeneratorError):
    """A local inference server did not answer its liveness probe."""

    def __init__(self, message: str, base_url: str | None = None):
        super().__init__(message)
        self.base_url = base_url
