"""Fixed random feature embeddings for real vectors and rigid transformations."""

from .geometry import RigidTransform, Rotation, Translation, as_rigid, compose, get_rigid, rand_rigid
from .graph import Graph
from .models import RandomOrientationFeatures, RandomFourierFeatures, RandomTriangleFeatures, RadialBasisFeatures
from .utils.errors import RandomFeatureMapsError, InvalidArgument, ShapeError, DimensionMismatch

__all__ = [
    'RandomOrientationFeatures',
    'RandomFourierFeatures',
    'RandomTriangleFeatures',
    'RadialBasisFeatures',
    'RigidTransform',
    'Rotation',
    'Translation',
    'Graph',
    'as_rigid',
    'compose',
    'get_rigid',
    'rand_rigid',
    'RandomFeatureMapsError',
    'InvalidArgument',
    'ShapeError',
    'DimensionMismatch',
]
