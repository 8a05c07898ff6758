"""HEX8 基底評価器 — 8 節点 6 面体（三重一次）.

== 定式化 ==

節点順序（自然座標）:
  0: (-1,-1,-1)  1: (+1,-1,-1)  2: (+1,+1,-1)  3: (-1,+1,-1)
  4: (-1,-1,+1)  5: (+1,-1,+1)  6: (+1,+1,+1)  7: (-1,+1,+1)

写像ヤコビアン:
  J = dN/dξ @ X   (3×3)、J[r, c] = ∂x_c/∂ξ_r
  dN/dx = J⁻¹ @ dN/dξ

積分: Gauss-Legendre 積 (order × order × order)。既定は 2×2×2。
"""

from __future__ import annotations

import numpy as np

from nlsolid.core.element import QuadratureData
from nlsolid.core.errors import ElementGeometryError

# ============================================================
# 形状関数
# ============================================================

_NODE_SIGNS = np.array(
    [
        [-1, -1, -1],
        [+1, -1, -1],
        [+1, +1, -1],
        [-1, +1, -1],
        [-1, -1, +1],
        [+1, -1, +1],
        [+1, +1, +1],
        [-1, +1, +1],
    ],
    dtype=float,
)


def hex8_shape(xi: float, eta: float, zeta: float) -> np.ndarray:
    """HEX8 形状関数 N_i (i=0..7)."""
    s = _NODE_SIGNS
    return 0.125 * (1.0 + s[:, 0] * xi) * (1.0 + s[:, 1] * eta) * (1.0 + s[:, 2] * zeta)


def hex8_dNdxi(xi: float, eta: float, zeta: float) -> np.ndarray:
    """HEX8 形状関数の自然座標微分.

    Returns:
        dNdxi: (3, 8) — [dN/dξ; dN/dη; dN/dζ]
    """
    s = _NODE_SIGNS
    a = 1.0 + s[:, 0] * xi
    b = 1.0 + s[:, 1] * eta
    c = 1.0 + s[:, 2] * zeta
    return 0.125 * np.array([s[:, 0] * b * c, a * s[:, 1] * c, a * b * s[:, 2]])


def gauss_points_3d(order: int) -> tuple[np.ndarray, np.ndarray]:
    """テンソル積 Gauss-Legendre 積分点と重み.

    Returns:
        points: (order³, 3)
        weights: (order³,)
    """
    if order < 1:
        raise ValueError(f"order は 1 以上: {order}")
    g, w = np.polynomial.legendre.leggauss(order)
    # ξ が最も速く変化する順（zeta → eta → xi のループ）
    pts = [(g[i], g[j], g[k]) for k in range(order) for j in range(order) for i in range(order)]
    wts = [w[i] * w[j] * w[k] for k in range(order) for j in range(order) for i in range(order)]
    return np.array(pts, dtype=float), np.array(wts, dtype=float)


# ============================================================
# BasisEvaluator 適合クラス
# ============================================================


class Hex8Basis:
    """HEX8 三重一次基底（BasisEvaluator 適合）.

    Args:
        order: 1 方向あたりの Gauss 点数（既定 2 → 8 点）
        det_tol: detJ の下限。これ以下は退化要素とみなす。
    """

    n_nodes: int = 8

    def __init__(self, order: int = 2, det_tol: float = 1.0e-14) -> None:
        self.order = order
        self.det_tol = det_tol
        self._points, self._weights = gauss_points_3d(order)

    def _check_coords(self, node_xyz: np.ndarray) -> np.ndarray:
        node_xyz = np.asarray(node_xyz, dtype=float)
        if node_xyz.shape != (8, 3):
            raise ValueError(f"node_xyz は (8,3) が必要。実際: {node_xyz.shape}")
        return node_xyz

    def mapping_jacobian(self, node_xyz: np.ndarray, ref_point: np.ndarray) -> np.ndarray:
        """親要素座標 ref_point での写像ヤコビアン J (3,3)."""
        node_xyz = self._check_coords(node_xyz)
        xi, eta, zeta = np.asarray(ref_point, dtype=float)
        return hex8_dNdxi(xi, eta, zeta) @ node_xyz

    def evaluate(self, node_xyz: np.ndarray) -> QuadratureData:
        """全積分点の JxW, xyz, dN/dx, ∂x/∂ξ を計算する."""
        node_xyz = self._check_coords(node_xyz)
        n_qp = len(self._weights)

        JxW = np.empty(n_qp, dtype=float)
        xyz = np.empty((n_qp, 3), dtype=float)
        dphi = np.empty((n_qp, 3, 8), dtype=float)
        dxyz_dref = np.empty((n_qp, 3, 3), dtype=float)

        for q, (xi, eta, zeta) in enumerate(self._points):
            dNdxi = hex8_dNdxi(xi, eta, zeta)
            J = dNdxi @ node_xyz  # (3, 3) ヤコビアン
            detJ = np.linalg.det(J)
            if detJ <= self.det_tol:
                raise ElementGeometryError(f"detJ={detJ:.3e} <= {self.det_tol:.1e}（反転/退化要素）")
            JxW[q] = self._weights[q] * detJ
            xyz[q] = hex8_shape(xi, eta, zeta) @ node_xyz
            dphi[q] = np.linalg.solve(J, dNdxi)  # (3, 8)
            dxyz_dref[q] = J

        return QuadratureData(
            ref_points=self._points.copy(),
            JxW=JxW,
            xyz=xyz,
            dphi=dphi,
            dxyz_dref=dxyz_dref,
        )

    def dof_indices(self, node_indices: np.ndarray) -> np.ndarray:
        """グローバル節点インデックスから要素 DOF インデックスを返す."""
        node_indices = np.asarray(node_indices, dtype=np.int64)
        return (node_indices[:, None] * 3 + np.arange(3, dtype=np.int64)[None, :]).ravel()
