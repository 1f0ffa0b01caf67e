"""Exceptions raised by the DeepGuard pipeline."""


class DeepGuardError(Exception):
    """Base class for asset-level pipeline failures."""


class UnsupportedTypeError(DeepGuardError):
    """The declared media type is neither image/* nor video/*."""

    def __init__(self, mime_type):
        self.mime_type = mime_type
        super().__init__(f"Unsupported file type: {mime_type or 'unknown'}")


class DecodeError(DeepGuardError):
    """Asset bytes could not be turned into pixel buffers."""


class ModelsNotReadyError(DeepGuardError):
    """The engine was used before warm_up() completed."""


class UnknownPolicyError(KeyError):
    """No scoring policy is registered under the requested name."""
