"""General utilities for the feature maps."""

from .errors import RandomFeatureMapsError, InvalidArgument, ShapeError, DimensionMismatch
from .debug import assert_finite_embedding, debug_enabled, nonfinite_entries

__all__ = [
    'RandomFeatureMapsError',
    'InvalidArgument',
    'ShapeError',
    'DimensionMismatch',
    'assert_finite_embedding',
    'nonfinite_entries',
    'debug_enabled',
]
