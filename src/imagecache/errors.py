from __future__ import annotations


class ImageCacheError(Exception):
    """Base class for failures raised by the image cache."""


class ConfigurationError(ImageCacheError):
    pass


class LockTimeoutError(ImageCacheError):
    """The refresh lock could not be acquired within the wait ceiling."""

    def __init__(self, path, waited: float) -> None:
        super().__init__(f"Lock timeout after {waited:.1f}s: another download seems stuck ({path})")
        self.path = path
        self.waited = waited


class DownloadError(ImageCacheError):
    """Fetching the remote image failed; nothing was published."""


class InvalidArtifactError(DownloadError):
    """The remote answered, but the body does not look like an image."""
