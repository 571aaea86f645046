"""Rigid transformations of batched 3D point sets."""

from .rigid import (
    RigidTransform,
    Rotation,
    Translation,
    as_rigid,
    compose,
    get_rigid,
    rand_rigid,
    random_rotation,
)

__all__ = [
    'RigidTransform',
    'Rotation',
    'Translation',
    'as_rigid',
    'compose',
    'get_rigid',
    'rand_rigid',
    'random_rotation',
]
