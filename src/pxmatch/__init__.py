"""pxmatch package
Exporting main classes for external use.

Example:
    from pxmatch import compare_images, MatchConfig
"""
from .core import (
    MatchConfig,
    MatchResult,
    PixelMatchError,
    DimensionMismatch,
    PixelFormatError,
    ConfigError,
    ImageLoadError,
    ImageSaveError,
    color_delta,
    is_antialiased,
    has_many_siblings,
    match_pixels,
    VERSION
)
from .cli import compare_images, compare_files, PixelMatchCLI

__all__ = [
    'MatchConfig',
    'MatchResult',
    'PixelMatchError',
    'DimensionMismatch',
    'PixelFormatError',
    'ConfigError',
    'ImageLoadError',
    'ImageSaveError',
    'color_delta',
    'is_antialiased',
    'has_many_siblings',
    'match_pixels',
    'compare_images',
    'compare_files',
    'PixelMatchCLI',
    'VERSION'
]
