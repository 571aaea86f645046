import torch
import torch.nn as nn

from RandomFeatureMaps.utils.checks import check_dim
from RandomFeatureMaps.utils.errors import InvalidArgument


class RadialBasisFeatures(nn.Module):
    """
    Gaussian radial basis expansion of scalar inputs.

    Centers start evenly spaced on [low, high] with a shared initial width equal
    to the center spacing. Maps x of shape (*batch) to (num_centers, *batch):

        phi_k(x) = exp(-((x - mu_k) / w_k)^2)

    Widths are stored as log-widths so they stay positive. With trainable=False
    centers and widths are buffers and the module has no parameters.
    """

    def __init__(self, num_centers: int, low: float = 0.0, high: float = 1.0, trainable: bool = True):
        super(RadialBasisFeatures, self).__init__()
        self.num_centers = check_dim(num_centers, "num_centers")
        if not float(high) > float(low):
            raise InvalidArgument(f"high must exceed low, got low={low}, high={high}")

        centers = torch.linspace(float(low), float(high), self.num_centers)
        spacing = (float(high) - float(low)) / max(self.num_centers - 1, 1)
        log_widths = torch.full((self.num_centers,), spacing).log()

        if trainable:
            self.centers = nn.Parameter(centers)
            self.log_widths = nn.Parameter(log_widths)
        else:
            self.register_buffer('centers', centers)
            self.register_buffer('log_widths', log_widths)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        shape = (self.num_centers,) + (1,) * x.dim()
        mu = self.centers.reshape(shape)
        w = self.log_widths.exp().reshape(shape)
        z = (x.unsqueeze(0) - mu) / w
        return torch.exp(-z.pow(2))
