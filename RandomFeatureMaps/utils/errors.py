"""Exception types raised by the feature maps and their collaborators."""


class RandomFeatureMapsError(Exception):
    """Base class for all errors raised by RandomFeatureMaps."""


class InvalidArgument(RandomFeatureMapsError, ValueError):
    """A constructor or call argument is out of its valid range."""


class ShapeError(RandomFeatureMapsError, ValueError):
    """Tensor shapes are malformed or their batch shapes do not broadcast."""


class DimensionMismatch(ShapeError):
    """A graph's node count does not match the batch length of its node tables."""
