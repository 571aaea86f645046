"""Triangle-wave counterparts of cos and sin, and the feature map built on them.

The waves are 2*pi periodic and piecewise linear, with the extrema and zero
crossings of cos and sin. They are written with plain tensor arithmetic so
autograd differentiates them directly; the closed-form slopes are available as
separate functions.
"""

import logging
import math
from typing import Optional

import torch
import torch.nn as nn

from RandomFeatureMaps.models.fourier import project, sample_projection

logger = logging.getLogger(__name__)

SLOPE = 2.0 / math.pi


def _phase(x: torch.Tensor) -> torch.Tensor:
    """Fraction of the period, in [0, 1)."""
    return torch.remainder(x / (2 * math.pi), 1.0)


def triangle_cos(x: torch.Tensor) -> torch.Tensor:
    """1 at 0, -1 at pi, linear in between."""
    return torch.abs(4 * _phase(x) - 2) - 1


def triangle_sin(x: torch.Tensor) -> torch.Tensor:
    """triangle_cos shifted by a quarter period: 0 at 0, 1 at pi/2."""
    return triangle_cos(x - math.pi / 2)


def triangle_cos_derivative(x: torch.Tensor) -> torch.Tensor:
    """
    Slope table of triangle_cos over one period:

        phase in [0, 1/2)  ->  -2/pi
        phase in [1/2, 1)  ->  +2/pi
    """
    u = _phase(x)
    return torch.where(u < 0.5, torch.full_like(u, -SLOPE), torch.full_like(u, SLOPE))


def triangle_sin_derivative(x: torch.Tensor) -> torch.Tensor:
    return triangle_cos_derivative(x - math.pi / 2)


class RandomTriangleFeatures(nn.Module):
    """
    Random features with triangle waves in place of cos/sin.

    Same construction and validation as RandomFourierFeatures: W is
    (in_dim, out_dim // 2) with entries ~ N(0, (2*pi*sigma)^2), out_dim must be even.
    Maps (in_dim, *batch) to (out_dim, *batch) as [triangle_cos(W^T X); triangle_sin(W^T X)].
    """

    def __init__(self, in_dim: int, out_dim: int, sigma: float, dtype: Optional[torch.dtype] = None,
                 generator: Optional[torch.Generator] = None):
        super(RandomTriangleFeatures, self).__init__()
        W = sample_projection(in_dim, out_dim, sigma, dtype=dtype, generator=generator)
        self.in_dim = in_dim
        self.out_dim = out_dim
        self.sigma = float(sigma)
        self.register_buffer('W', W)
        logger.debug(f"RandomTriangleFeatures({in_dim} => {out_dim}, sigma={self.sigma})")

    def extra_repr(self) -> str:
        return f"{self.in_dim} => {self.out_dim}, sigma={self.sigma}"

    def forward(self, X: torch.Tensor) -> torch.Tensor:
        Y = project(self.W, X)
        return torch.cat([triangle_cos(Y), triangle_sin(Y)], dim=0)
