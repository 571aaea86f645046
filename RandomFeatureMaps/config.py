from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import torch
import yaml

from RandomFeatureMaps.models.fourier import RandomFourierFeatures
from RandomFeatureMaps.models.orientation import RandomOrientationFeatures
from RandomFeatureMaps.utils.errors import InvalidArgument

logger = logging.getLogger(__name__)


_DTYPES = {
    'float16': torch.float16,
    'bfloat16': torch.bfloat16,
    'float32': torch.float32,
    'float64': torch.float64,
}


@dataclass
class FeatureMapConfig:
    """Configuration for a random feature map.

    - dim: output feature width (orientation features) or out_dim (Fourier features).
    - sigma: standard deviation of the random projections.
    - dtype: name of the torch dtype of the random matrices.
    - seed: seed for a private torch.Generator; None draws from the global RNG.
    """

    dim: int
    sigma: float
    dtype: str = 'float32'
    seed: Optional[int] = None

    def torch_dtype(self) -> torch.dtype:
        return resolve_dtype(self.dtype)

    def generator(self) -> Optional[torch.Generator]:
        if self.seed is None:
            return None
        g = torch.Generator()
        g.manual_seed(int(self.seed))
        return g


def resolve_dtype(name: Union[str, torch.dtype]) -> torch.dtype:
    if isinstance(name, torch.dtype):
        return name
    try:
        return _DTYPES[str(name).replace('torch.', '')]
    except KeyError as e:
        raise InvalidArgument(f"Unknown dtype {name!r}; expected one of {sorted(_DTYPES)}") from e


def create_default_config() -> Dict[str, Any]:
    return {
        'orientation': {
            'dim': 64,
            'sigma': 0.1,
            'dtype': 'float32',
            'seed': None,
        },
        'fourier': {
            'in_dim': 3,
            'dim': 64,
            'sigma': 1.0,
            'dtype': 'float32',
            'seed': None,
        },
        'sampling': {
            'num_transforms': 16,
            'mode': 'pairwise',  # aligned | pairwise | graph
            'edge_prob': 0.5,
            'chunk_size': 1024,
            'seed': 42,
        },
        'logging': {
            'log_level': 'INFO',
        },
    }


def merge_config(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay `overrides` on a deep copy of `defaults`, section by section.

    Keys inside a section replace the defaults one by one; a section that is
    not in the defaults is kept as given, with a warning. Neither input is
    modified.
    """
    merged = copy.deepcopy(defaults)
    for name, section in overrides.items():
        current = merged.get(name)
        if isinstance(current, dict):
            if not isinstance(section, dict):
                raise InvalidArgument(f"Config section {name!r} must be a mapping, got {type(section).__name__}")
            merged[name] = merge_config(current, section)
        else:
            if name not in merged:
                logger.warning(f"Unknown config key {name!r}; keeping it as given")
            merged[name] = copy.deepcopy(section)
    return merged


def load_config(path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Defaults, updated with the YAML file at `path` when given."""
    cfg = create_default_config()
    if path:
        with open(path, 'r') as f:
            user = yaml.safe_load(f) or {}
        if not isinstance(user, dict):
            raise InvalidArgument(f"Config file {path} must contain a mapping, got {type(user).__name__}")
        cfg = merge_config(cfg, user)
    return cfg


def save_config(config: Dict[str, Any], path: Union[str, Path]) -> None:
    with open(path, 'w') as f:
        yaml.dump(copy.deepcopy(config), f, default_flow_style=False, indent=2, sort_keys=False)


def _section(cfg: Dict[str, Any], name: str) -> FeatureMapConfig:
    sec = cfg.get(name, cfg)
    return FeatureMapConfig(
        dim=sec['dim'],
        sigma=sec['sigma'],
        dtype=sec.get('dtype', 'float32'),
        seed=sec.get('seed'),
    )


def build_orientation_features(cfg: Dict[str, Any]) -> RandomOrientationFeatures:
    fm = _section(cfg, 'orientation')
    return RandomOrientationFeatures(fm.dim, fm.sigma, dtype=fm.torch_dtype(), generator=fm.generator())


def build_fourier_features(cfg: Dict[str, Any]) -> RandomFourierFeatures:
    fm = _section(cfg, 'fourier')
    in_dim = cfg.get('fourier', cfg).get('in_dim', 3)
    return RandomFourierFeatures(in_dim, fm.dim, fm.sigma, dtype=fm.torch_dtype(), generator=fm.generator())
