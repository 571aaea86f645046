"""Minimal directed graph with an edge-gather primitive.

Edges are stored PyTorch-Geometric style as a (2, E) long tensor whose rows are
(source, destination). The edge order is fixed at construction and is the order
of the trailing axis of anything computed per edge.
"""

from __future__ import annotations

from typing import Tuple

import torch

from RandomFeatureMaps.utils.errors import DimensionMismatch, InvalidArgument, ShapeError


class Graph:
    def __init__(self, edge_index: torch.Tensor, num_nodes: int):
        edge_index = torch.as_tensor(edge_index, dtype=torch.long)
        if edge_index.dim() != 2 or edge_index.shape[0] != 2:
            raise ShapeError(f"edge_index must have shape (2, E), got {tuple(edge_index.shape)}")
        num_nodes = int(num_nodes)
        if num_nodes < 0:
            raise InvalidArgument(f"num_nodes must be non-negative, got {num_nodes}")
        if edge_index.numel() > 0 and (edge_index.min() < 0 or edge_index.max() >= num_nodes):
            raise InvalidArgument(f"edge_index refers to nodes outside [0, {num_nodes})")
        self._edge_index = edge_index
        self._num_nodes = num_nodes

    @classmethod
    def from_adjacency(cls, adj: torch.Tensor) -> "Graph":
        """Build from a dense (n, n) adjacency where adj[i, j] marks the edge i -> j.

        Edges are enumerated row-major: by source, then by destination.
        """
        adj = torch.as_tensor(adj)
        if adj.dim() != 2 or adj.shape[0] != adj.shape[1]:
            raise ShapeError(f"Adjacency must be square, got {tuple(adj.shape)}")
        src, dst = torch.nonzero(adj.to(torch.bool), as_tuple=True)
        return cls(torch.stack([src, dst]), adj.shape[0])

    @classmethod
    def complete(cls, n: int) -> "Graph":
        """All n*n ordered pairs, self loops included."""
        return cls.from_adjacency(torch.ones(n, n, dtype=torch.bool))

    @property
    def edge_index(self) -> torch.Tensor:
        return self._edge_index

    @property
    def num_nodes(self) -> int:
        return self._num_nodes

    @property
    def num_edges(self) -> int:
        return int(self._edge_index.shape[1])

    def adjacency(self) -> torch.Tensor:
        adj = torch.zeros(self._num_nodes, self._num_nodes, dtype=torch.bool)
        adj[self._edge_index[0], self._edge_index[1]] = True
        return adj

    def gather(self, x_src: torch.Tensor, x_dst: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        """Per-edge (source, destination) values from two per-node tables.

        Both tables carry the node axis last: (..., num_nodes) -> (..., num_edges).
        """
        for name, x in (("source", x_src), ("destination", x_dst)):
            if x.dim() == 0 or x.shape[-1] != self._num_nodes:
                raise DimensionMismatch(
                    f"{name} table has node axis of length {x.shape[-1] if x.dim() else 0}, "
                    f"graph has {self._num_nodes} nodes"
                )
        src, dst = self._edge_index.to(x_src.device)
        return x_src[..., src], x_dst[..., dst]

    def __repr__(self):
        return f"Graph(num_nodes={self._num_nodes}, num_edges={self.num_edges})"
