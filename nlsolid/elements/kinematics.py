"""Green-Lagrange 運動学（3D 固体要素用）.

Total Lagrangian (TL) 定式化:
- 変位勾配: H = [∂u/∂x  ∂u/∂y  ∂u/∂z]   （列 = 方向別の勾配ベクトル）
- Green-Lagrange ひずみ: E = 0.5*(H + Hᵀ + HᵀH)
- ひずみの変分: δE = B_lin δu + mat_x B_x δu + mat_y B_y δu + mat_z B_z δu

Voigt 表記（工学せん断ひずみ）:
  ε = [εxx, εyy, εzz, γxy, γyz, γzx]
  γxy = E01 + E10（テンソル成分の 2 倍）

演算子:
  B_lin          (6 × 3n)  線形ひずみ演算子
  B_x, B_y, B_z  (3 × 3n)  B_d · u = {∂u/∂d, ∂v/∂d, ∂w/∂d}
  B_u, B_v, B_w  (3 × 3n)  B_u · u = {∂u/∂x, ∂u/∂y, ∂u/∂z}  （幾何剛性用）
"""

from __future__ import annotations

import numpy as np

from nlsolid.core.element import QuadratureData
from nlsolid.core.results import Kinematics
from nlsolid.numerics.operator_matrix import OperatorMatrix

N_STRAIN = 6

# 方向 d の形状関数微分が入る (行, 変位成分): 線形ひずみ演算子
#   ∂/∂x: εxx ← u, γxy ← v, γzx ← w
#   ∂/∂y: εyy ← v, γxy ← u, γyz ← w
#   ∂/∂z: εzz ← w, γyz ← v, γzx ← u
_LINEAR_SLOTS = (
    ((0, 0), (3, 1), (5, 2)),
    ((1, 1), (3, 0), (4, 2)),
    ((2, 2), (4, 1), (5, 0)),
)

# mat_d の行に入る勾配ベクトルの方向
#   mat_x: 行 0 ← ∂u/∂x, 行 3 ← ∂u/∂y, 行 5 ← ∂u/∂z
#   mat_y: 行 1 ← ∂u/∂y, 行 3 ← ∂u/∂x, 行 4 ← ∂u/∂z
#   mat_z: 行 2 ← ∂u/∂z, 行 4 ← ∂u/∂y, 行 5 ← ∂u/∂x
_AUX_ROWS = (
    ((0, 0), (3, 1), (5, 2)),
    ((1, 1), (3, 0), (4, 2)),
    ((2, 2), (4, 1), (5, 0)),
)


def _check_disp(quad: QuadratureData, local_disp: np.ndarray) -> np.ndarray:
    local_disp = np.asarray(local_disp, dtype=float)
    n_dof = 3 * quad.n_nodes
    if local_disp.shape != (n_dof,):
        raise ValueError(f"local_disp は ({n_dof},) が必要。実際: {local_disp.shape}")
    return local_disp


def initialize_strain_operator(quad: QuadratureData, qp: int) -> OperatorMatrix:
    """線形ひずみ演算子 B_lin (6 × 3n) のみを構築する."""
    point = quad.point(qp)
    b_lin = OperatorMatrix(N_STRAIN, 3, quad.n_nodes)
    for d in range(3):
        for row, var in _LINEAR_SLOTS[d]:
            b_lin.set_shape_function(row, var, point.dphi[d])
    return b_lin


def green_lagrange_strain(grad: np.ndarray) -> np.ndarray:
    """変位勾配から Green-Lagrange ひずみ (Voigt, 工学せん断) を返す.

    Args:
        grad: (3,3) grad[:, d] = ∂u/∂x_d

    Returns:
        strain: (6,) [εxx, εyy, εzz, γxy, γyz, γzx]
    """
    E = 0.5 * (grad + grad.T + grad.T @ grad)
    return np.array(
        [
            E[0, 0],
            E[1, 1],
            E[2, 2],
            E[0, 1] + E[1, 0],
            E[1, 2] + E[2, 1],
            E[0, 2] + E[2, 0],
        ],
        dtype=float,
    )


def build_kinematics(quad: QuadratureData, qp: int, local_disp: np.ndarray) -> Kinematics:
    """積分点 qp での GL ひずみ・補助行列・ひずみ演算子を構築する.

    Args:
        quad: 要素の積分点データ
        qp: 積分点番号
        local_disp: (3n,) 要素変位 [u1, v1, w1, u2, ...]

    Returns:
        Kinematics
    """
    local_disp = _check_disp(quad, local_disp)
    point = quad.point(qp)
    n_nodes = quad.n_nodes

    b_lin = OperatorMatrix(N_STRAIN, 3, n_nodes)
    b_nl = [OperatorMatrix(3, 3, n_nodes) for _ in range(3)]  # x, y, z
    b_comp = [OperatorMatrix(3, 3, n_nodes) for _ in range(3)]  # u, v, w

    for d in range(3):
        phi = point.dphi[d]
        for row, var in _LINEAR_SLOTS[d]:
            b_lin.set_shape_function(row, var, phi)
        for c in range(3):
            # 方向 d: 行 c ← 成分 c の d 方向微分
            b_nl[d].set_shape_function(c, c, phi)
            # 成分 c: 行 d ← 成分 c の d 方向微分
            b_comp[c].set_shape_function(d, c, phi)

    # 方向別の変位勾配ベクトル（行列自由な適用）
    grad = np.column_stack([b_nl[d].apply(local_disp) for d in range(3)])
    strain = green_lagrange_strain(grad)

    mats = [np.zeros((N_STRAIN, 3), dtype=float) for _ in range(3)]
    for d in range(3):
        for row, src in _AUX_ROWS[d]:
            mats[d][row] = grad[:, src]

    return Kinematics(
        strain=strain,
        mat_x=mats[0],
        mat_y=mats[1],
        mat_z=mats[2],
        b_lin=b_lin,
        b_nl_x=b_nl[0],
        b_nl_y=b_nl[1],
        b_nl_z=b_nl[2],
        b_nl_u=b_comp[0],
        b_nl_v=b_comp[1],
        b_nl_w=b_comp[2],
    )


def stress_matrix(stress: np.ndarray) -> np.ndarray:
    """Voigt 応力 (6,) を対称 3×3 行列に戻す（せん断は対称位置に配置）."""
    s = np.asarray(stress, dtype=float)
    return np.array(
        [
            [s[0], s[3], s[5]],
            [s[3], s[1], s[4]],
            [s[5], s[4], s[2]],
        ],
        dtype=float,
    )
