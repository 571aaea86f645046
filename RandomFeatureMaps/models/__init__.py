"""
Models package exports for the random feature maps.
"""

from .orientation import RandomOrientationFeatures
from .fourier import RandomFourierFeatures
from .triangle import RandomTriangleFeatures
from .rbf import RadialBasisFeatures

__all__ = [
    "RandomOrientationFeatures",
    "RandomFourierFeatures",
    "RandomTriangleFeatures",
    "RadialBasisFeatures",
]
