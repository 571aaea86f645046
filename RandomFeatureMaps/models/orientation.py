import logging
from typing import Optional, Tuple, Union

import torch
import torch.nn as nn

from RandomFeatureMaps.geometry.rigid import RigidTransform, as_rigid, pad_batch
from RandomFeatureMaps.graph import Graph
from RandomFeatureMaps.utils.checks import check_dim, check_scale
from RandomFeatureMaps.utils.debug import assert_finite_embedding, debug_enabled
from RandomFeatureMaps.utils.errors import DimensionMismatch, InvalidArgument, ShapeError

logger = logging.getLogger(__name__)

RigidLike = Union[RigidTransform, Tuple[torch.Tensor, torch.Tensor]]


def coordinate_norms(diffs: torch.Tensor) -> torch.Tensor:
    """Euclidean norm over the leading 3-axis, (3, ...) -> (...).

    Summed elementwise in a fixed order so equal inputs give bit-identical
    outputs regardless of the surrounding tensor shape.
    """
    sq = diffs * diffs
    return torch.sqrt(sq[0] + sq[1] + sq[2])


class RandomOrientationFeatures(nn.Module):
    """
    Random distance embeddings of rigid transformations.

    Holds two fixed random point sets FA, FB of shape (3, dim) with entries drawn
    from N(0, sigma^2). A pair of rigid transformations (T1, T2) is embedded as
    the per-point distances ||T1(FA) - T2(FB)||, giving a (dim, *batch) tensor.
    FA and FB are drawn independently, so embed(T1, T2) and embed(T2, T1) differ
    in general and embed(T, T) is not zero.

    Three modes:
    - embed(T1, T2): aligned over broadcast batch axes.
    - embed_pairwise(T1, T2, axis): all pairs between batch axis `axis` of T1
      and of T2, giving (dim, ..., n1, n2, ...).
    - embed_graph(T1, T2, graph=g): only the pairs (i -> j) that are edges of g,
      giving (dim, num_edges). Equal to embed_pairwise gathered at the edges.

    The random matrices are buffers: there are no trainable parameters.
    """

    def __init__(self, dim: int, sigma: float, dtype: Optional[torch.dtype] = None,
                 generator: Optional[torch.Generator] = None):
        super(RandomOrientationFeatures, self).__init__()
        self.dim = check_dim(dim)
        self.sigma = check_scale(sigma)
        if dtype is None:
            dtype = torch.get_default_dtype()

        FA = torch.randn(3, self.dim, generator=generator, dtype=dtype) * self.sigma
        FB = torch.randn(3, self.dim, generator=generator, dtype=dtype) * self.sigma
        self.register_buffer('FA', FA)  # Fixed, not trainable
        self.register_buffer('FB', FB)
        logger.debug(f"RandomOrientationFeatures(dim={self.dim}, sigma={self.sigma}, dtype={dtype})")

    def extra_repr(self) -> str:
        return f"dim={self.dim}, sigma={self.sigma}"

    def _on_device(self, T: RigidLike) -> RigidTransform:
        T = as_rigid(T)
        if T.device != self.FA.device:
            T = T.to(self.FA.device)
        return T

    def _transformed(self, T1: RigidLike, T2: Optional[RigidLike]):
        T1 = self._on_device(T1)
        T2 = T1 if T2 is None else self._on_device(T2)
        return T1, T2, T1.apply(self.FA), T2.apply(self.FB)

    def _finish(self, out: torch.Tensor, mode: str) -> torch.Tensor:
        if debug_enabled():
            assert_finite_embedding(out, mode)
        return out

    def embed(self, T1: RigidLike, T2: Optional[RigidLike] = None) -> torch.Tensor:
        """
        Aligned embedding of corresponding transformations.

        Args:
            T1, T2: rigid transformations with broadcastable batch shapes. T2
                defaults to T1.

        Returns:
            (dim, *batch) tensor of non-negative distances.
        """
        T1, T2, p1, p2 = self._transformed(T1, T2)
        nb = max(len(T1.batch_shape), len(T2.batch_shape))
        try:
            diffs = pad_batch(p1, nb) - pad_batch(p2, nb)  # (3, dim, *batch)
        except RuntimeError as e:
            raise ShapeError(
                f"Batch shapes {tuple(T1.batch_shape)} and {tuple(T2.batch_shape)} are not broadcastable"
            ) from e
        return self._finish(coordinate_norms(diffs), "aligned")

    def embed_pairwise(self, T1: RigidLike, T2: Optional[RigidLike] = None, axis: int = 1) -> torch.Tensor:
        """
        All-pairs embedding along one batch axis.

        `axis` counts output axes, the feature axis being 0, so axis=1 is the first
        batch axis. A singleton axis is inserted after `axis` in T1's points and at
        `axis` in T2's points before broadcasting, so for batch shapes
        (..., n1, ...) and (..., n2, ...) the result is (dim, ..., n1, n2, ...).
        The batch shapes then broadcast left-aligned, so T1 of batch (4, 2) and
        T2 of batch (3,) give (dim, 4, 3, 2) for axis=1.
        """
        T1, T2, p1, p2 = self._transformed(T1, T2)
        nb1, nb2 = len(T1.batch_shape), len(T2.batch_shape)
        if isinstance(axis, bool) or not isinstance(axis, int) or not 1 <= axis <= min(nb1, nb2 + 1):
            raise InvalidArgument(
                f"axis must be in [1, {min(nb1, nb2 + 1)}] for batch shapes {tuple(T1.batch_shape)} "
                f"and {tuple(T2.batch_shape)}, got {axis!r}"
            )

        # Points are (3, dim, *batch): output axis `axis` sits at points axis `axis + 1`
        nb = max(nb1, nb2) + 1
        p1 = pad_batch(p1.unsqueeze(axis + 2), nb)
        p2 = pad_batch(p2.unsqueeze(axis + 1), nb)
        try:
            diffs = p1 - p2
        except RuntimeError as e:
            raise ShapeError(
                f"Batch shapes {tuple(T1.batch_shape)} and {tuple(T2.batch_shape)} do not broadcast "
                f"outside pairwise axis {axis}"
            ) from e
        return self._finish(coordinate_norms(diffs), "pairwise")

    def embed_graph(self, T1: RigidLike, T2: Optional[RigidLike] = None, *, graph: Graph) -> torch.Tensor:
        """
        Embedding restricted to the edges of `graph`.

        T1 and T2 hold one transformation per node (batch shape (n,)). For an
        edge i -> j the source uses T1 with FA and the destination uses T2 with
        FB, the same roles as embed_pairwise(T1, T2, axis=1)[:, i, j].

        Returns:
            (dim, num_edges) tensor, edges in the graph's enumeration order.
        """
        T1, T2, p1, p2 = self._transformed(T1, T2)
        for T in (T1, T2):
            if len(T.batch_shape) != 1:
                raise ShapeError(f"Graph embedding needs a single batch axis, got batch shape {tuple(T.batch_shape)}")
            if T.batch_shape[0] != graph.num_nodes:
                raise DimensionMismatch(
                    f"Graph has {graph.num_nodes} nodes but transformations have batch length {T.batch_shape[0]}"
                )
        src, dst = graph.gather(p1, p2)  # (3, dim, E)
        return self._finish(coordinate_norms(src - dst), "graph")

    def forward(self, T1: RigidLike, T2: Optional[RigidLike] = None,
                graph: Optional[Graph] = None, axis: Optional[int] = None) -> torch.Tensor:
        if graph is not None:
            if axis is not None:
                raise InvalidArgument("axis and graph cannot be combined")
            return self.embed_graph(T1, T2, graph=graph)
        if axis is not None:
            return self.embed_pairwise(T1, T2, axis=axis)
        return self.embed(T1, T2)
