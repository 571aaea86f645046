"""Sample random rigid transformations, embed them and write the result to HDF5.

Example:
    python -m RandomFeatureMaps.scripts.embed_rigids --mode graph --num-transforms 32 --out rof.h5
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import h5py
import numpy as np
import torch
import yaml
from tqdm import tqdm

from RandomFeatureMaps.config import build_orientation_features, load_config, resolve_dtype, save_config
from RandomFeatureMaps.geometry.rigid import get_rigid, random_rotation
from RandomFeatureMaps.graph import Graph
from RandomFeatureMaps.utils.errors import InvalidArgument
from RandomFeatureMaps.utils.log_utils import build_logger

logger = logging.getLogger('RandomFeatureMaps.embed_rigids')

MODES = ('aligned', 'pairwise', 'graph')


def to_numpy(x: torch.Tensor) -> np.ndarray:
    # numpy has no bfloat16
    x = x.detach().cpu()
    if x.dtype == torch.bfloat16:
        x = x.to(torch.float32)
    return x.numpy()


def sample_raw_rigids(n: int, dtype: torch.dtype, generator: Optional[torch.Generator] = None):
    R = random_rotation((n,), dtype=dtype, generator=generator)
    t = torch.randn(3, n, generator=generator, dtype=dtype)
    return R, t


def embed_aligned_chunked(rof, R1, t1, R2, t2, chunk_size: int) -> torch.Tensor:
    n = R1.shape[-1]
    out = []
    for start in tqdm(range(0, n, chunk_size), desc='Embed aligned'):
        stop = min(start + chunk_size, n)
        T1 = get_rigid(R1[..., start:stop], t1[..., start:stop])
        T2 = get_rigid(R2[..., start:stop], t2[..., start:stop])
        out.append(rof.embed(T1, T2))
    return torch.cat(out, dim=-1)


def run(cfg: Dict[str, Any], out_path: Path) -> Dict[str, np.ndarray]:
    scfg = cfg['sampling']
    mode = scfg['mode']
    if mode not in MODES:
        raise InvalidArgument(f"Unknown mode {mode!r}; expected one of {MODES}")

    rof = build_orientation_features(cfg)
    dtype = resolve_dtype(cfg['orientation'].get('dtype', 'float32'))
    g = torch.Generator()
    g.manual_seed(int(scfg.get('seed', 0) or 0))

    n = int(scfg['num_transforms'])
    R, t = sample_raw_rigids(n, dtype, g)
    arrays: Dict[str, np.ndarray] = {
        'rotation': to_numpy(R),
        'translation': to_numpy(t),
    }
    logger.info(f"Embedding {n} transforms in {mode} mode with {rof}")

    with torch.no_grad():
        if mode == 'aligned':
            R2, t2 = sample_raw_rigids(n, dtype, g)
            arrays['rotation_2'] = to_numpy(R2)
            arrays['translation_2'] = to_numpy(t2)
            emb = embed_aligned_chunked(rof, R, t, R2, t2, int(scfg.get('chunk_size', 1024)))
        elif mode == 'pairwise':
            emb = rof.embed_pairwise((R, t), axis=1)
        else:
            adj = torch.rand(n, n, generator=g) < float(scfg.get('edge_prob', 0.5))
            graph = Graph.from_adjacency(adj)
            arrays['edge_index'] = graph.edge_index.numpy()
            logger.info(f"Sampled {graph}")
            emb = rof.embed_graph((R, t), graph=graph)

    arrays['embedding'] = emb.to(torch.float32).numpy()
    logger.info(f"Embedding shape: {tuple(emb.shape)}")

    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(out_path, 'w') as f:
        for key, arr in arrays.items():
            if arr.size > 0:
                f.create_dataset(key, data=arr, compression='gzip', compression_opts=1)
            else:
                f.create_dataset(key, data=arr)
        f.attrs['mode'] = mode
        f.attrs['dim'] = rof.dim
        f.attrs['sigma'] = rof.sigma
        f.attrs['config'] = yaml.safe_dump(cfg, sort_keys=False)
        f.create_dataset('FA', data=to_numpy(rof.FA))
        f.create_dataset('FB', data=to_numpy(rof.FB))
    logger.info(f"Wrote {out_path}")
    return arrays


def main(argv=None):
    parser = argparse.ArgumentParser(description='Embed random rigid transformations with random orientation features')
    parser.add_argument('--config', type=str, required=False, help='Path to YAML config')
    parser.add_argument('--out', type=str, default='rof_embeddings.h5', help='Output HDF5 path')
    parser.add_argument('--num-transforms', type=int, default=None)
    parser.add_argument('--mode', type=str, choices=MODES, default=None)
    parser.add_argument('--edge-prob', type=float, default=None)
    parser.add_argument('--log-dir', type=str, default=None)
    args = parser.parse_args(argv)

    cfg = load_config(args.config)
    if args.num_transforms is not None:
        cfg['sampling']['num_transforms'] = args.num_transforms
    if args.mode is not None:
        cfg['sampling']['mode'] = args.mode
    if args.edge_prob is not None:
        cfg['sampling']['edge_prob'] = args.edge_prob

    log_dir = Path(args.log_dir) if args.log_dir else None
    build_logger(log_dir, cfg['logging'].get('log_level', 'INFO'))
    if log_dir is not None:
        save_config(cfg, log_dir / 'config.yaml')

    run(cfg, Path(args.out))


if __name__ == '__main__':
    main()
