class LlmError(Exception):
    """Base class for text generation failures."""


class LlmConfigError(LlmError):
    """Provider selected but not usable: missing key, project or location."""


class LlmProviderError(LlmError):
    """The provider answered with an error, exited non-zero or could not be started."""


class LlmTimeoutError(LlmProviderError):
    """The provider did not finish within its wall-clock budget."""
