from __future__ import annotations


class BundleCoverError(Exception):
    pass


class DecodeError(BundleCoverError):
    """Asset bytes could not be turned into a bitmap."""

    def __init__(self, name: str, reason: str = "") -> None:
        self.name = name
        msg = f"failed to decode image: {name}"
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)


class SurfaceError(BundleCoverError):
    """A drawing surface could not be allocated."""


class EncodeError(BundleCoverError):
    """A surface could not be serialized to bytes."""


class OptionalLayerError(BundleCoverError):
    """Background, center image or font failed; the layer is omitted."""


class ExportError(BundleCoverError):
    pass


class ExportInProgressError(ExportError):
    pass
