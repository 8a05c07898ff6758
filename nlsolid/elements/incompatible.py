"""非適合モード（拡張仮定ひずみ）演算子 — HEX8 用 30 モード.

Wilson 型の非適合モードを Simo-Rifai の EAS 形式で表現する。
親要素座標 (ξ, η, ζ) の多項式 30 項を 6 ひずみ成分に割り当て、
要素中心のヤコビアンで全体座標系へ変換する。

  G(ξ) = T₀⁻ᵀ · det(J₀) · M̃(ξ) · det(J(ξ))

M̃ の疎パターン（行 = ひずみ成分、(モード番号, 多項式)）:
  εxx: 0 ξ,  15 ξη, 16 ξζ, 24 ξηζ
  εyy: 1 η,  17 ξη, 18 ηζ, 25 ξηζ
  εzz: 2 ζ,  19 ξζ, 20 ηζ, 26 ξηζ
  γxy: 3 ξ,  4 η,  9 ξζ, 10 ηζ, 21 ξη, 27 ξηζ
  γyz: 5 η,  6 ζ,  11 ξη, 12 ξζ, 22 ηζ, 28 ξηζ
  γzx: 7 ξ,  8 ζ,  13 ξη, 14 ηζ, 23 ξζ, 29 ξηζ

参考文献:
  Simo, J.C. & Rifai, M.S. (1990) "A class of mixed assumed strain methods
  and the method of incompatible modes", IJNME, 29, 1595-1638.
  Wilson, E.L. et al. (1973) "Incompatible displacement models".
"""

from __future__ import annotations

import numpy as np

from nlsolid.core.element import QuadratureData
from nlsolid.core.errors import ElementGeometryError
from nlsolid.core.results import Enhancement
from nlsolid.core.state import N_INCOMPATIBLE_MODES
from nlsolid.numerics.operator_matrix import OperatorMatrix


def _xi(x, e, z):
    return x


def _eta(x, e, z):
    return e


def _zeta(x, e, z):
    return z


def _xi_eta(x, e, z):
    return x * e


def _xi_zeta(x, e, z):
    return x * z


def _eta_zeta(x, e, z):
    return e * z


def _xi_eta_zeta(x, e, z):
    return x * e * z


# (ひずみ行, モード番号, 多項式)
_MODE_TABLE = (
    (0, 0, _xi),
    (0, 15, _xi_eta),
    (0, 16, _xi_zeta),
    (0, 24, _xi_eta_zeta),
    (1, 1, _eta),
    (1, 17, _xi_eta),
    (1, 18, _eta_zeta),
    (1, 25, _xi_eta_zeta),
    (2, 2, _zeta),
    (2, 19, _xi_zeta),
    (2, 20, _eta_zeta),
    (2, 26, _xi_eta_zeta),
    (3, 3, _xi),
    (3, 4, _eta),
    (3, 9, _xi_zeta),
    (3, 10, _eta_zeta),
    (3, 21, _xi_eta),
    (3, 27, _xi_eta_zeta),
    (4, 5, _eta),
    (4, 6, _zeta),
    (4, 11, _xi_eta),
    (4, 12, _xi_zeta),
    (4, 22, _eta_zeta),
    (4, 28, _xi_eta_zeta),
    (5, 7, _xi),
    (5, 8, _zeta),
    (5, 13, _xi_eta),
    (5, 14, _eta_zeta),
    (5, 23, _xi_zeta),
    (5, 29, _xi_eta_zeta),
)

# Voigt 成分 → テンソル添字 [xx, yy, zz, xy, yz, zx]
_VOIGT_PAIRS = ((0, 0), (1, 1), (2, 2), (0, 1), (1, 2), (2, 0))


def strain_transform_T(jac: np.ndarray) -> np.ndarray:
    """3 次元ひずみ変換行列 T (6×6, 工学せん断規約) を返す.

    行 (a,b)、列 (p,q) の成分:
      T[(a,b),(p,q)] = (J[p,a]·J[q,b] + J[q,a]·J[p,b]) / (2 if p == q else 1)

    Args:
        jac: (3,3) J[r, c] = ∂x_c/∂ξ_r
    """
    jac = np.asarray(jac, dtype=float)
    if jac.shape != (3, 3):
        raise ValueError(f"jac は (3,3) が必要。実際: {jac.shape}")
    T = np.empty((6, 6), dtype=float)
    for i, (a, b) in enumerate(_VOIGT_PAIRS):
        for k, (p, q) in enumerate(_VOIGT_PAIRS):
            val = jac[p, a] * jac[q, b] + jac[q, a] * jac[p, b]
            T[i, k] = 0.5 * val if p == q else val
    return T


def reference_transform(jac0: np.ndarray, det_tol: float = 1.0e-14) -> np.ndarray:
    """要素中心のヤコビアンから T₀⁻ᵀ · det(J₀) (6×6) を返す.

    参照（未変形）配置でのみ計算し、以後の変形には依存しない。

    Raises:
        ElementGeometryError: det(J₀) ≈ 0 または T₀ が特異
    """
    jac0 = np.asarray(jac0, dtype=float)
    det0 = float(np.linalg.det(jac0))
    scale = max(float(np.abs(jac0).max()), 1.0e-300) ** 3
    if not np.isfinite(det0) or abs(det0) <= det_tol * scale:
        raise ElementGeometryError(f"要素中心の detJ={det0:.3e} が特異（非適合モード変換不可）")
    T0 = strain_transform_T(jac0)
    try:
        T0_inv = np.linalg.inv(T0)
    except np.linalg.LinAlgError as exc:
        raise ElementGeometryError("要素中心のひずみ変換行列 T0 が特異") from exc
    return det0 * T0_inv.T


def incompatible_interpolation(ref_point: np.ndarray) -> OperatorMatrix:
    """親要素座標での補間演算子 M̃ (6 × 30) を構築する."""
    xi, eta, zeta = (float(c) for c in ref_point)
    b_inc = OperatorMatrix(6, N_INCOMPATIBLE_MODES, 1)
    for row, mode, poly in _MODE_TABLE:
        b_inc.set_shape_function(row, mode, np.array([poly(xi, eta, zeta)]))
    return b_inc


def build_enhancement(quad: QuadratureData, qp: int, t0_inv_tr: np.ndarray) -> Enhancement:
    """積分点 qp での非適合モード演算子 (b_inc, G) を返す.

    G = T₀⁻ᵀ · M̃(ξ_qp) · det(J₀) / det(J_qp)

    Gauss 積分 Σ w·G·det(J_qp) = T₀⁻ᵀ·det(J₀)·Σ w·M̃ はゼロになるため、
    任意形状の要素で均一ひずみに対し α = 0（パッチテスト）。

    Args:
        quad: 要素の積分点データ
        qp: 積分点番号
        t0_inv_tr: reference_transform() の戻り値 (6,6)
    """
    t0_inv_tr = np.asarray(t0_inv_tr, dtype=float)
    if t0_inv_tr.shape != (6, 6):
        raise ValueError(f"t0_inv_tr は (6,6) が必要。実際: {t0_inv_tr.shape}")
    point = quad.point(qp)
    b_inc = incompatible_interpolation(point.ref_point)
    g_mat = b_inc.left_multiply(t0_inv_tr) / point.det_jacobian
    return Enhancement(b_inc=b_inc, g_mat=g_mat)
