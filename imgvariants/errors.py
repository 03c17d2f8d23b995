"""Exceptions raised while planning or rendering image variants."""


class ImageBuildError(Exception):
    pass


class ConfigError(ImageBuildError, ValueError):
    """Bad configuration, or a plan that would clobber files."""


class MissingSourceError(ImageBuildError, FileNotFoundError):
    pass


class UnsupportedFormatError(ImageBuildError, ValueError):
    pass


class RenderError(ImageBuildError):
    """An encoder or external tool failed."""
