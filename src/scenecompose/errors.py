"""Error taxonomy for scenecompose.

ConfigError is raised synchronously by the call that introduced a bad
parameter. Everything that happens once a render has started (missing
assets, encoder failures) reaches the caller only through the run's
`error` event.
"""


class SceneComposeError(Exception):
    """Base class for all scenecompose errors."""


class ConfigError(SceneComposeError, ValueError):
    """Invalid scene, element, effect, or composition parameter."""


class ResourceNotFoundError(SceneComposeError, FileNotFoundError):
    """A referenced source asset is missing or unreadable."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path


class ExternalProcessError(SceneComposeError, RuntimeError):
    """The encoding engine failed.

    `retryable` marks causes worth another attempt (the process was killed
    by a signal, or stderr names a transient condition). Everything else is
    terminal.
    """

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        retryable: bool = False,
        stderr_tail: str = "",
    ):
        super().__init__(message)
        self.returncode = returncode
        self.retryable = retryable
        self.stderr_tail = stderr_tail


class RenderCancelled(SceneComposeError):
    """The run was torn down by destroy() while jobs were in flight."""
