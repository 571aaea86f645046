import logging
import math
from typing import Optional

import torch
import torch.nn as nn

from RandomFeatureMaps.utils.checks import check_dim, check_scale
from RandomFeatureMaps.utils.errors import InvalidArgument, ShapeError

logger = logging.getLogger(__name__)


def sample_projection(in_dim: int, out_dim: int, sigma: float, dtype: Optional[torch.dtype] = None,
                      generator: Optional[torch.Generator] = None) -> torch.Tensor:
    """Validate (in_dim => out_dim, sigma) and draw W ~ N(0, (2*pi*sigma)^2) of shape (in_dim, out_dim // 2)."""
    check_dim(in_dim, "in_dim")
    check_dim(out_dim, "out_dim")
    if out_dim % 2 != 0:
        raise InvalidArgument(f"out_dim must be even, got {out_dim}")
    sigma = check_scale(sigma)
    if dtype is None:
        dtype = torch.get_default_dtype()
    return torch.randn(in_dim, out_dim // 2, generator=generator, dtype=dtype) * (sigma * 2 * math.pi)


def project(W: torch.Tensor, X: torch.Tensor) -> torch.Tensor:
    """Compute W^T X for X of shape (in_dim, *batch), returning (out_dim // 2, *batch)."""
    if X.dim() == 0 or X.shape[0] != W.shape[0]:
        raise ShapeError(f"Expected input with leading dimension {W.shape[0]}, got shape {tuple(X.shape)}")
    X2 = X.reshape(X.shape[0], -1).to(W.dtype)
    Y = W.T @ X2
    return Y.reshape((W.shape[1],) + tuple(X.shape[1:]))


class RandomFourierFeatures(nn.Module):
    """
    Random Fourier features for flat real vectors.

    Maps each column x in R^in_dim into R^out_dim by:
    1. Sampling a fixed matrix W in R^{in_dim x out_dim/2} with entries W_ij ~ N(0, (2*pi*sigma)^2)
    2. Projecting: y = W^T x
    3. Encoding: gamma(x) = [cos(y); sin(y)]

    The input is (in_dim, *batch); extra batch axes are flattened and restored.
    This module has no trainable parameters.
    """

    def __init__(self, in_dim: int, out_dim: int, sigma: float, dtype: Optional[torch.dtype] = None,
                 generator: Optional[torch.Generator] = None):
        super(RandomFourierFeatures, self).__init__()
        W = sample_projection(in_dim, out_dim, sigma, dtype=dtype, generator=generator)
        self.in_dim = in_dim
        self.out_dim = out_dim
        self.sigma = float(sigma)
        self.register_buffer('W', W)  # Fixed, not trainable
        logger.debug(f"RandomFourierFeatures({in_dim} => {out_dim}, sigma={self.sigma})")

    def extra_repr(self) -> str:
        return f"{self.in_dim} => {self.out_dim}, sigma={self.sigma}"

    def forward(self, X: torch.Tensor) -> torch.Tensor:
        """
        Args:
            X: (in_dim, *batch) tensor

        Returns:
            (out_dim, *batch) tensor, cosines first then sines along axis 0
        """
        Y = project(self.W, X)
        return torch.cat([torch.cos(Y), torch.sin(Y)], dim=0)
