from __future__ import annotations


class ScanKitError(Exception):
    """Base class for scan_kit failures."""


class ModelUnavailable(ScanKitError):
    """No loadable model was found in the search roots."""


class ModelLoadError(ScanKitError):
    """A model candidate exists but could not be loaded."""


class TensorShapeUnrecognized(ScanKitError):
    """The model outputs do not contain a usable coordinate tensor."""


class ImageConversionFailure(ScanKitError):
    """The input could not be turned into a model-ready image."""


class ConfigError(ScanKitError, ValueError):
    pass
