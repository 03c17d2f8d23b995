"""Responsive image variants for the blog: resize, crop and re-encode source images."""
from .build import BuildReport, build, clean, status
from .config import Asset, BuildConfig, Variant, discover_config, load_config, parse_config
from .errors import (ConfigError, ImageBuildError, MissingSourceError, RenderError,
                     UnsupportedFormatError)
from .plan import Output, plan

__version__ = "0.1.0"
