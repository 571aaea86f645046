import math

from RandomFeatureMaps.utils.errors import InvalidArgument


def check_scale(sigma) -> float:
    try:
        sigma = float(sigma)
    except (TypeError, ValueError) as e:
        raise InvalidArgument(f"scale must be a real number, got {sigma!r}") from e
    if not (math.isfinite(sigma) and sigma > 0):
        raise InvalidArgument(f"scale must be finite and positive, got {sigma}")
    return sigma


def check_dim(dim, name: str = "dim") -> int:
    if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
        raise InvalidArgument(f"{name} must be a positive integer, got {dim!r}")
    return dim
