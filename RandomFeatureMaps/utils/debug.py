"""Opt-in checks on embeddings, enabled with RFM_DEBUG_NAN=1."""

import os
from typing import List, Tuple

import torch

MAX_REPORTED = 8


def debug_enabled() -> bool:
    return os.environ.get('RFM_DEBUG_NAN', '0') == '1'


def nonfinite_entries(emb: torch.Tensor) -> Tuple[List[int], List[Tuple[int, ...]]]:
    """Feature rows and batch positions holding NaN/Inf in a (dim, *batch) embedding.

    Batch positions are index tuples over the trailing axes, one per distinct
    position; in graph mode they are edge indices.
    """
    bad = ~torch.isfinite(emb.detach())
    if emb.dim() < 2:
        return torch.nonzero(bad.reshape(-1)).flatten().tolist(), []
    rows = torch.nonzero(bad.flatten(1).any(dim=1)).flatten().tolist()
    positions = [tuple(p) for p in torch.nonzero(bad.any(dim=0)).tolist()]
    return rows, positions


def assert_finite_embedding(emb: torch.Tensor, mode: str) -> None:
    rows, positions = nonfinite_entries(emb)
    if not rows:
        return
    where = 'edges' if mode == 'graph' else 'batch positions'
    shown = positions[:MAX_REPORTED]
    more = f" (+{len(positions) - len(shown)} more)" if len(positions) > len(shown) else ""
    raise RuntimeError(
        f"Non-finite {mode} embedding of shape {tuple(emb.shape)}: "
        f"feature rows {rows[:MAX_REPORTED]}, {where} {shown}{more}"
    )
