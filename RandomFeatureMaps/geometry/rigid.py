"""Batched rigid transformations (rotation followed by translation) on 3D point sets.

Layout follows the feature maps: the geometric axis is leading and batch axes
trail. A rotation has shape (3, 3, *batch), a translation (3, 1, *batch) and a
point set (3, n, *batch). Batch axes broadcast against each other left-aligned:
a shorter batch shape is padded with trailing singleton axes, so batch (4,)
pairs with (4, 2) and (2,) does not.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np
import torch

from RandomFeatureMaps.utils.errors import ShapeError


def _as_tensor(x, dtype: Optional[torch.dtype] = None) -> torch.Tensor:
    if isinstance(x, np.ndarray):
        x = torch.from_numpy(x)
    x = torch.as_tensor(x)
    if dtype is not None:
        x = x.to(dtype)
    elif not x.is_floating_point():
        x = x.to(torch.get_default_dtype())
    return x


def _broadcast_batch(*shapes: Sequence[int]) -> torch.Size:
    shapes = [tuple(s) for s in shapes]
    nb = max((len(s) for s in shapes), default=0)
    try:
        return torch.broadcast_shapes(*[s + (1,) * (nb - len(s)) for s in shapes])
    except RuntimeError as e:
        raise ShapeError(f"Batch shapes {shapes} are not broadcastable") from e


def pad_batch(x: torch.Tensor, nb: int, lead: int = 2) -> torch.Tensor:
    """Pad the batch axes of x, which follow `lead` leading axes, with trailing singletons up to `nb`."""
    missing = nb - (x.dim() - lead)
    return x.reshape(x.shape + (1,) * missing)


def _check_points(x: torch.Tensor) -> None:
    if x.dim() < 2 or x.shape[0] != 3:
        raise ShapeError(f"Points must have shape (3, n, *batch), got {tuple(x.shape)}")


def _batched_matmul(A: torch.Tensor, x: torch.Tensor) -> torch.Tensor:
    """Contract the leading 3-axis of A (3, 3, *ba) with x (3, n, *bx).

    Batch axes are moved to the front so torch.matmul can broadcast them, then
    moved back to the trailing positions.
    """
    nb = len(_broadcast_batch(A.shape[2:], x.shape[2:]))
    A = pad_batch(A, nb)
    x = pad_batch(x, nb)
    y = torch.matmul(A.movedim((0, 1), (-2, -1)), x.movedim((0, 1), (-2, -1)))
    return y.movedim((-2, -1), (0, 1))


class Rotation:
    """Batched linear part of a rigid transformation, x -> R x."""

    def __init__(self, R):
        R = _as_tensor(R)
        if R.dim() < 2 or R.shape[:2] != (3, 3):
            raise ShapeError(f"Rotation must have shape (3, 3, *batch), got {tuple(R.shape)}")
        self._R = R

    @property
    def values(self) -> torch.Tensor:
        return self._R

    @property
    def batch_shape(self) -> torch.Size:
        return self._R.shape[2:]

    def apply(self, x: torch.Tensor) -> torch.Tensor:
        x = _as_tensor(x, self._R.dtype)
        _check_points(x)
        return _batched_matmul(self._R, x)

    __call__ = apply

    def __repr__(self):
        return f"Rotation(batch_shape={tuple(self.batch_shape)})"


class Translation:
    """Batched translation, x -> x + t.

    Accepts t of shape (3, *batch) or (3, 1, *batch); stored as (3, 1, *batch).
    """

    def __init__(self, t, batch_shape: Optional[Sequence[int]] = None):
        t = _as_tensor(t)
        if t.dim() < 1 or t.shape[0] != 3:
            raise ShapeError(f"Translation must have shape (3, *batch) or (3, 1, *batch), got {tuple(t.shape)}")
        if batch_shape is None:
            # (3, 1, *batch) is taken at face value, anything else is (3, *batch)
            if t.dim() >= 2 and t.shape[1] == 1:
                batch_shape = t.shape[2:]
            else:
                batch_shape = t.shape[1:]
        batch_shape = tuple(batch_shape)
        if t.numel() != 3 * int(np.prod(batch_shape, dtype=np.int64)):
            raise ShapeError(f"Translation of shape {tuple(t.shape)} does not hold batch shape {batch_shape}")
        self._t = t.reshape((3, 1) + batch_shape)

    @property
    def values(self) -> torch.Tensor:
        return self._t

    @property
    def batch_shape(self) -> torch.Size:
        return self._t.shape[2:]

    def apply(self, x: torch.Tensor) -> torch.Tensor:
        x = _as_tensor(x, self._t.dtype)
        _check_points(x)
        nb = len(_broadcast_batch(self.batch_shape, x.shape[2:]))
        return pad_batch(x, nb) + pad_batch(self._t, nb)

    __call__ = apply

    def __repr__(self):
        return f"Translation(batch_shape={tuple(self.batch_shape)})"


class RigidTransform:
    """Rotation followed by translation, x -> R x + t, over trailing batch axes.

    Instances are immutable; every method returns fresh tensors or a new transform.
    """

    def __init__(self, rotation: Rotation, translation: Translation):
        if not isinstance(rotation, Rotation):
            rotation = Rotation(rotation)
        if not isinstance(translation, Translation):
            translation = Translation(translation)
        self._batch_shape = _broadcast_batch(rotation.batch_shape, translation.batch_shape)
        self._rotation = rotation
        self._translation = translation

    @property
    def rotation(self) -> Rotation:
        return self._rotation

    @property
    def translation(self) -> Translation:
        return self._translation

    @property
    def batch_shape(self) -> torch.Size:
        return self._batch_shape

    @property
    def dtype(self) -> torch.dtype:
        return self._rotation.values.dtype

    @property
    def device(self) -> torch.device:
        return self._rotation.values.device

    def apply(self, x: torch.Tensor) -> torch.Tensor:
        """Apply to points of shape (3, n, *batch), returning (3, n, *broadcast batch)."""
        return self._translation.apply(self._rotation.apply(x))

    __call__ = apply

    def unsqueeze_batch(self, dim: int) -> "RigidTransform":
        """Insert a singleton batch axis at batch position `dim` (0-based, batch axes only)."""
        nb = len(self._batch_shape)
        if not -nb - 1 <= dim <= nb:
            raise ShapeError(f"Cannot insert batch axis {dim} into batch shape {tuple(self._batch_shape)}")
        if dim < 0:
            dim += nb + 1
        R = pad_batch(self._rotation.values, nb).expand((3, 3) + tuple(self._batch_shape))
        t = pad_batch(self._translation.values, nb).expand((3, 1) + tuple(self._batch_shape))
        return RigidTransform(Rotation(R.unsqueeze(dim + 2)), Translation(t.unsqueeze(dim + 2)))

    def compose(self, other: "RigidTransform") -> "RigidTransform":
        """Return the transform equal to applying `other` first, then `self`."""
        other = as_rigid(other)
        R = _batched_matmul(self._rotation.values, other.rotation.values)
        t = self.apply(other.translation.values)
        return RigidTransform(Rotation(R), Translation(t))

    def to(self, *args, **kwargs) -> "RigidTransform":
        return RigidTransform(
            Rotation(self._rotation.values.to(*args, **kwargs)),
            Translation(self._translation.values.to(*args, **kwargs)),
        )

    def __repr__(self):
        return f"RigidTransform(batch_shape={tuple(self._batch_shape)}, dtype={self.dtype})"


Transform = Union[Rotation, Translation, RigidTransform]


def _to_rigid(T: Transform) -> RigidTransform:
    if isinstance(T, RigidTransform):
        return T
    if isinstance(T, Rotation):
        zeros = torch.zeros((3, 1), dtype=T.values.dtype, device=T.values.device)
        return RigidTransform(T, Translation(zeros, batch_shape=()))
    if isinstance(T, Translation):
        eye = torch.eye(3, dtype=T.values.dtype, device=T.values.device)
        return RigidTransform(Rotation(eye), T)
    raise TypeError(f"Cannot compose object of type {type(T).__name__}")


def compose(outer: Transform, inner: Transform) -> RigidTransform:
    """Compose two transforms: the result applies `inner` first, then `outer`.

    compose(Translation(t), Rotation(R)) is the rigid transform x -> R x + t.
    """
    if isinstance(outer, Translation) and isinstance(inner, Rotation):
        return RigidTransform(inner, outer)
    return _to_rigid(outer).compose(_to_rigid(inner))


def get_rigid(R, t) -> RigidTransform:
    """Convert a rotation R (3, 3, *batch) and translation t to a RigidTransform.

    t may be given as (3, *batch) or (3, 1, *batch); it is reshaped to
    (3, 1, *batch) using the batch shape of R. The transformation is applied as
    R @ x + t over the trailing batch axes.
    """
    rotation = Rotation(R)
    t = _as_tensor(t, rotation.values.dtype)
    return compose(Translation(t, batch_shape=rotation.batch_shape), rotation)


def as_rigid(T: Union[RigidTransform, Tuple]) -> RigidTransform:
    """Normalize a RigidTransform or a raw (R, t) pair to a RigidTransform."""
    if isinstance(T, RigidTransform):
        return T
    if isinstance(T, tuple) and len(T) == 2:
        return get_rigid(*T)
    raise TypeError(f"Expected RigidTransform or (rotation, translation) tuple, got {type(T).__name__}")


def random_rotation(
    batch_shape: Sequence[int] = (),
    dtype: Optional[torch.dtype] = None,
    generator: Optional[torch.Generator] = None,
    device=None,
) -> torch.Tensor:
    """Sample uniformly distributed proper rotations, returned as (3, 3, *batch_shape)."""
    if dtype is None:
        dtype = torch.get_default_dtype()
    batch_shape = tuple(batch_shape)
    n = int(np.prod(batch_shape, dtype=np.int64))
    # QR in float64 keeps orthogonality tight before casting down
    A = torch.randn(n, 3, 3, generator=generator, dtype=torch.float64, device=device)
    Q, R = torch.linalg.qr(A)
    diag = torch.sign(torch.diagonal(R, dim1=-2, dim2=-1))
    diag = torch.where(diag == 0, torch.ones_like(diag), diag)
    Q = Q * diag.unsqueeze(-2)
    det = torch.linalg.det(Q)
    flip = torch.ones(n, 3, dtype=Q.dtype, device=Q.device)
    flip[:, 2] = torch.sign(det)
    Q = Q * flip.unsqueeze(-2)
    return Q.to(dtype).movedim(0, -1).reshape((3, 3) + batch_shape)


def rand_rigid(
    batch_shape: Sequence[int] = (),
    dtype: Optional[torch.dtype] = None,
    generator: Optional[torch.Generator] = None,
    device=None,
) -> RigidTransform:
    """Sample random rigid transformations with Gaussian translations."""
    if dtype is None:
        dtype = torch.get_default_dtype()
    batch_shape = tuple(batch_shape)
    R = random_rotation(batch_shape, dtype=dtype, generator=generator, device=device)
    t = torch.randn((3,) + batch_shape, generator=generator, dtype=dtype, device=device)
    return get_rigid(R, t)
