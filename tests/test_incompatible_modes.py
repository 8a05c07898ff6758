"""非適合モード演算子のテスト."""

from __future__ import annotations

import numpy as np
import pytest

from nlsolid.core.errors import ElementGeometryError
from nlsolid.elements.hex8_basis import Hex8Basis, gauss_points_3d
from nlsolid.elements.incompatible import (
    build_enhancement,
    incompatible_interpolation,
    reference_transform,
    strain_transform_T,
)


def _unit_cube() -> np.ndarray:
    return np.array(
        [
            [0, 0, 0],
            [1, 0, 0],
            [1, 1, 0],
            [0, 1, 0],
            [0, 0, 1],
            [1, 0, 1],
            [1, 1, 1],
            [0, 1, 1],
        ],
        dtype=float,
    )


class TestStrainTransform:
    """ひずみ変換行列 T₀."""

    def test_identity(self):
        np.testing.assert_allclose(strain_transform_T(np.eye(3)), np.eye(6), atol=1e-15)

    def test_diagonal_jacobian(self):
        a, b, c = 2.0, 3.0, 0.5
        T = strain_transform_T(np.diag([a, b, c]))
        np.testing.assert_allclose(T, np.diag([a * a, b * b, c * c, a * b, b * c, c * a]))

    def test_shear_entries(self):
        """J に xy 成分がある場合の既知の項."""
        J = np.eye(3)
        J[0, 1] = 0.5  # ∂y/∂ξ
        T = strain_transform_T(J)
        # 行 xx (a=b=0), 列 yy (p=q=1): J[1,0]·J[1,0] = 0
        assert T[0, 1] == pytest.approx(0.0)
        # 行 yy (a=b=1), 列 xx (p=q=0): J[0,1]² = 0.25
        assert T[1, 0] == pytest.approx(0.25)
        # 行 xy (0,1), 列 xx (0,0): J[0,0]·J[0,1] = 0.5
        assert T[3, 0] == pytest.approx(0.5)

    def test_bad_shape(self):
        with pytest.raises(ValueError):
            strain_transform_T(np.eye(2))


class TestReferenceTransform:
    """T₀⁻ᵀ·det(J₀)."""

    def test_scaled_identity(self):
        """J₀ = s·I → T₀ = s²·I → T₀⁻ᵀ·det = s·I."""
        s = 0.5
        np.testing.assert_allclose(reference_transform(s * np.eye(3)), s * np.eye(6), atol=1e-15)

    def test_diagonal(self):
        a, b, c = 2.0, 3.0, 0.5
        R = reference_transform(np.diag([a, b, c]))
        det0 = a * b * c
        expected = det0 * np.diag(1.0 / np.array([a * a, b * b, c * c, a * b, b * c, c * a]))
        np.testing.assert_allclose(R, expected)

    def test_singular(self):
        J = np.eye(3)
        J[2] = 0.0
        with pytest.raises(ElementGeometryError):
            reference_transform(J)

    def test_nearly_singular(self):
        J = np.eye(3)
        J[2, 2] = 1e-20
        with pytest.raises(ElementGeometryError):
            reference_transform(J)


class TestInterpolation:
    """親要素域の 30 モード補間."""

    def test_each_mode_used_once(self):
        b_inc = incompatible_interpolation(np.array([0.3, -0.4, 0.5]))
        modes = [j for _, j in b_inc.pattern]
        assert sorted(modes) == list(range(30))
        assert b_inc.shape == (6, 30)

    def test_vanish_at_center(self):
        b_inc = incompatible_interpolation(np.zeros(3))
        np.testing.assert_array_equal(b_inc.to_dense(), np.zeros((6, 30)))

    def test_known_values(self):
        xi, eta, zeta = 0.3, -0.4, 0.5
        M = incompatible_interpolation(np.array([xi, eta, zeta])).to_dense()
        assert M[0, 0] == pytest.approx(xi)
        assert M[0, 24] == pytest.approx(xi * eta * zeta)
        assert M[1, 18] == pytest.approx(eta * zeta)
        assert M[3, 4] == pytest.approx(eta)
        assert M[4, 6] == pytest.approx(zeta)
        assert M[5, 23] == pytest.approx(xi * zeta)

    def test_zero_mean_over_gauss_points(self):
        """2×2×2 Gauss 積分で全モードの平均がゼロ（一定ひずみと直交）."""
        pts, wts = gauss_points_3d(2)
        total = np.zeros((6, 30))
        for p, w in zip(pts, wts, strict=True):
            total += w * incompatible_interpolation(p).to_dense()
        np.testing.assert_allclose(total, 0.0, atol=1e-14)


class TestEnhancement:
    """全体座標系の G 行列."""

    def test_unit_cube_scaling(self):
        """単位立方体: J = ½I → G = T₀⁻ᵀ·det(J₀)·M̃ / det(J) = ½ · 8 · M̃."""
        quad = Hex8Basis().evaluate(_unit_cube())
        t0 = reference_transform(0.5 * np.eye(3))
        for qp in range(quad.n_qp):
            enh = build_enhancement(quad, qp, t0)
            np.testing.assert_allclose(enh.g_mat, 4.0 * enh.b_inc.to_dense(), atol=1e-14)

    def test_zero_mean_on_distorted_element(self):
        """歪んだ要素でも Σ w·det(J)·G = 0（均一ひずみと直交）."""
        rng = np.random.default_rng(7)
        nodes = _unit_cube() + 0.15 * rng.uniform(-1.0, 1.0, size=(8, 3))
        basis = Hex8Basis()
        quad = basis.evaluate(nodes)
        t0 = reference_transform(basis.mapping_jacobian(nodes, np.zeros(3)))
        total = np.zeros((6, 30))
        for qp in range(quad.n_qp):
            total += quad.JxW[qp] * build_enhancement(quad, qp, t0).g_mat
        np.testing.assert_allclose(total, 0.0, atol=1e-13)

    def test_bad_transform_shape(self):
        quad = Hex8Basis().evaluate(_unit_cube())
        with pytest.raises(ValueError):
            build_enhancement(quad, 0, np.eye(3))
