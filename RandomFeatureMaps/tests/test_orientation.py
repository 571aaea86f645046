import math

import pytest
import torch

from RandomFeatureMaps.geometry.rigid import get_rigid, rand_rigid, random_rotation
from RandomFeatureMaps.models.orientation import RandomOrientationFeatures, coordinate_norms
from RandomFeatureMaps.utils.debug import assert_finite_embedding, nonfinite_entries
from RandomFeatureMaps.utils.errors import InvalidArgument, ShapeError


def test_construction_draws_independent_finite_point_sets():
    rof1 = RandomOrientationFeatures(10, 0.1)
    rof2 = RandomOrientationFeatures(10, 0.1)
    for rof in (rof1, rof2):
        assert rof.FA.shape == (3, 10)
        assert rof.FB.shape == (3, 10)
        assert torch.isfinite(rof.FA).all() and torch.isfinite(rof.FB).all()
        assert not torch.equal(rof.FA, rof.FB)
    assert not torch.equal(rof1.FA, rof2.FA)
    assert not torch.equal(rof1.FB, rof2.FB)


def test_construction_is_reproducible_with_generator():
    a = RandomOrientationFeatures(8, 0.5, generator=torch.Generator().manual_seed(3))
    b = RandomOrientationFeatures(8, 0.5, generator=torch.Generator().manual_seed(3))
    assert torch.equal(a.FA, b.FA)
    assert torch.equal(a.FB, b.FB)


def test_scale_of_point_sets_follows_sigma():
    rof = RandomOrientationFeatures(20000, 0.1, dtype=torch.float64, generator=torch.Generator().manual_seed(0))
    assert abs(rof.FA.std().item() - 0.1) < 5e-3
    assert abs(rof.FB.mean().item()) < 5e-3


@pytest.mark.parametrize("sigma", [0.0, -1.0, float("nan"), float("inf"), "large"])
def test_invalid_scale_raises(sigma):
    with pytest.raises(InvalidArgument):
        RandomOrientationFeatures(10, sigma)


@pytest.mark.parametrize("dim", [0, -3, 2.5, True])
def test_invalid_dim_raises(dim):
    with pytest.raises(InvalidArgument):
        RandomOrientationFeatures(dim, 0.1)


def test_no_trainable_parameters():
    rof = RandomOrientationFeatures(10, 0.1)
    assert list(rof.parameters()) == []
    assert set(rof.state_dict().keys()) == {"FA", "FB"}
    rof64 = rof.to(torch.float64)
    assert rof64.FA.dtype == torch.float64


def test_embed_shape_and_nonnegative():
    rof = RandomOrientationFeatures(10, 0.1)
    T1, T2 = rand_rigid((4, 2)), rand_rigid((4, 2))
    out = rof.embed(T1, T2)
    assert out.shape == (10, 4, 2)
    assert (out >= 0).all()
    assert (rof.embed(T1) >= 0).all()


def test_embed_matches_direct_distance():
    rof = RandomOrientationFeatures(6, 1.0, dtype=torch.float64)
    T1 = rand_rigid((5,), dtype=torch.float64)
    T2 = rand_rigid((5,), dtype=torch.float64)
    expected = torch.linalg.norm(T1.apply(rof.FA) - T2.apply(rof.FB), dim=0)
    assert torch.allclose(rof.embed(T1, T2), expected)


def test_embed_is_asymmetric_and_self_embedding_nonzero():
    rof = RandomOrientationFeatures(16, 1.0, dtype=torch.float64)
    T1 = rand_rigid((3,), dtype=torch.float64)
    T2 = rand_rigid((3,), dtype=torch.float64)
    assert not torch.allclose(rof.embed(T1, T2), rof.embed(T2, T1))
    assert (rof.embed(T1, T1) > 0).any()


def test_embed_is_invariant_to_shared_rigid_motion():
    rof = RandomOrientationFeatures(12, 1.0, dtype=torch.float64)
    T1 = rand_rigid((4,), dtype=torch.float64)
    T2 = rand_rigid((4,), dtype=torch.float64)
    G = rand_rigid((), dtype=torch.float64)
    assert torch.allclose(rof.embed(G.compose(T1), G.compose(T2)), rof.embed(T1, T2), atol=1e-10)


def test_single_argument_shorthand():
    rof = RandomOrientationFeatures(10, 0.1)
    T = rand_rigid((4, 2))
    assert torch.equal(rof.embed(T), rof.embed(T, T))
    assert torch.equal(rof.embed_pairwise(T), rof.embed_pairwise(T, T))
    assert torch.equal(rof(T), rof.embed(T, T))


def test_embed_broadcasts_batch_shapes_left_aligned():
    rof = RandomOrientationFeatures(5, 0.1)
    T1 = rand_rigid((4, 2))
    T2 = rand_rigid((1, 2))
    T3 = rand_rigid((4,))
    assert rof.embed(T1, T2).shape == (5, 4, 2)
    assert rof.embed(T1, T3).shape == (5, 4, 2)
    assert rof.embed(T3, T1).shape == (5, 4, 2)
    expected = torch.linalg.norm(T1.apply(rof.FA) - T3.apply(rof.FB)[..., None], dim=0)
    assert torch.allclose(rof.embed(T1, T3), expected, atol=1e-6)


def test_embed_missing_batch_axes_are_trailing():
    rof = RandomOrientationFeatures(5, 0.1)
    with pytest.raises(ShapeError):
        rof.embed(rand_rigid((4, 2)), rand_rigid((2,)))


def test_embed_incompatible_batches_raise():
    rof = RandomOrientationFeatures(5, 0.1)
    with pytest.raises(ShapeError):
        rof.embed(rand_rigid((4,)), rand_rigid((3,)))


def test_pairwise_shapes():
    rof = RandomOrientationFeatures(10, 0.1)
    T1, T2 = rand_rigid((4, 2)), rand_rigid((3, 2))
    assert rof.embed_pairwise(T1, T2, axis=1).shape == (10, 4, 3, 2)
    assert rof(T1, T2, axis=1).shape == (10, 4, 3, 2)
    assert rof.embed_pairwise(rand_rigid((4, 2))).shape == (10, 4, 4, 2)
    assert rof.embed_pairwise(rand_rigid((5,)), rand_rigid((7,))).shape == (10, 5, 7)

    T1, T2 = rand_rigid((4, 2)), rand_rigid((4, 3))
    assert rof.embed_pairwise(T1, T2, axis=2).shape == (10, 4, 2, 3)


def test_pairwise_broadcasts_shorter_batch_left_aligned():
    rof = RandomOrientationFeatures(10, 0.1, dtype=torch.float64)
    T1 = rand_rigid((4, 2), dtype=torch.float64)
    T2 = rand_rigid((3,), dtype=torch.float64)
    out = rof.embed_pairwise(T1, T2, axis=1)
    assert out.shape == (10, 4, 3, 2)
    p1, p2 = T1.apply(rof.FA), T2.apply(rof.FB)
    for j in range(3):
        assert torch.allclose(out[:, :, j, :], coordinate_norms(p1 - p2[:, :, j, None, None]))
    assert rof.embed_pairwise(T2, T1, axis=1).shape == (10, 3, 4, 2)


def test_pairwise_entries_match_aligned_embedding():
    rof = RandomOrientationFeatures(7, 1.0, dtype=torch.float64)
    g = torch.Generator().manual_seed(5)
    R1, R2 = random_rotation((4, 2), torch.float64, g), random_rotation((3, 2), torch.float64, g)
    t1 = torch.randn(3, 4, 2, dtype=torch.float64, generator=g)
    t2 = torch.randn(3, 3, 2, dtype=torch.float64, generator=g)
    out = rof.embed_pairwise(get_rigid(R1, t1), get_rigid(R2, t2), axis=1)
    for i in range(4):
        for j in range(3):
            for k in range(2):
                pair = rof.embed(get_rigid(R1[..., i, k], t1[..., i, k]), get_rigid(R2[..., j, k], t2[..., j, k]))
                assert torch.allclose(out[:, i, j, k], pair)


def test_pairwise_accepts_raw_arrays():
    rof = RandomOrientationFeatures(10, 0.1)
    out = rof.embed_pairwise((torch.rand(3, 3, 4, 2), torch.rand(3, 1, 4, 2)))
    assert out.shape == (10, 4, 4, 2)


def test_pairwise_invalid_axis_and_shapes():
    rof = RandomOrientationFeatures(4, 0.1)
    T = rand_rigid((4, 2))
    with pytest.raises(InvalidArgument):
        rof.embed_pairwise(T, axis=0)
    with pytest.raises(InvalidArgument):
        rof.embed_pairwise(T, axis=3)
    with pytest.raises(InvalidArgument):
        rof.embed_pairwise(T, rand_rigid(()), axis=2)
    with pytest.raises(ShapeError):
        rof.embed_pairwise(T, rand_rigid((3,)), axis=2)
    with pytest.raises(ShapeError):
        rof.embed_pairwise(T, rand_rigid((3, 5)), axis=1)


def test_coordinate_norms_matches_linalg_norm():
    x = torch.randn(3, 6, 5, dtype=torch.float64)
    assert torch.allclose(coordinate_norms(x), torch.linalg.norm(x, dim=0))


def test_debug_mode_flags_nan(monkeypatch):
    monkeypatch.setenv("RFM_DEBUG_NAN", "1")
    rof = RandomOrientationFeatures(4, 0.1)
    t = torch.full((3, 2), math.nan)
    with pytest.raises(RuntimeError, match=r"aligned embedding .*batch positions \[\(0,\), \(1,\)\]"):
        rof.embed((random_rotation((2,)), t))


def test_nonfinite_entries_locate_rows_and_edges():
    emb = torch.ones(4, 6)
    emb[1, 3] = math.nan
    emb[2, 5] = math.inf
    rows, positions = nonfinite_entries(emb)
    assert rows == [1, 2]
    assert positions == [(3,), (5,)]
    assert nonfinite_entries(torch.ones(4, 2, 3)) == ([], [])
    unbatched = torch.zeros(3)
    unbatched[2] = math.nan
    assert nonfinite_entries(unbatched) == ([2], [])
    with pytest.raises(RuntimeError, match=r"graph embedding .*feature rows \[1, 2\], edges \[\(3,\), \(5,\)\]"):
        assert_finite_embedding(emb, "graph")


def test_debug_mode_off_lets_nan_through(monkeypatch):
    monkeypatch.delenv("RFM_DEBUG_NAN", raising=False)
    rof = RandomOrientationFeatures(4, 0.1)
    out = rof.embed((random_rotation((2,)), torch.full((3, 2), math.nan)))
    assert torch.isnan(out).all()


def test_transforms_are_placed_on_the_feature_device():
    rof = RandomOrientationFeatures(6, 0.1, dtype=torch.float64)
    T = rand_rigid((3,), dtype=torch.float64)
    assert rof._on_device(T) is T
    placed = rof._on_device((T.rotation.values, T.translation.values))
    assert placed.device == rof.FA.device
    assert placed.dtype == torch.float64
    assert torch.equal(rof.embed(placed), rof.embed(T))
