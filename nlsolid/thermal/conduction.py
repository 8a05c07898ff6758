"""2D 非定常熱伝導 — Q4 双線形四角形要素.

支配方程式（厚さ t の平板）:
  ρc t ∂T/∂t = k t ∇²T + q t

半離散形:
  C Ṫ + K T = Q

  C = ∫∫ Nᵀ ρc t N dA        （熱容量行列）
  K = ∫∫ ∇Nᵀ k t ∇N dA       （熱伝導行列）
  Q = ∫∫ Nᵀ q t dA           （体積発熱）

1 階過渡要素としての分解:
  f_m = C Ṫ                  ∂f_m/∂Ṫ = C,  ∂f_m/∂T = 0
  f_x = K T − Q              ∂f_x/∂T = K
"""

from __future__ import annotations

from collections.abc import Iterator

import numpy as np

from nlsolid.core.errors import ElementGeometryError
from nlsolid.core.results import TransientTerms

# ---------------------------------------------------------------------------
# Q4 積分点ユーティリティ
# ---------------------------------------------------------------------------

_G = 1.0 / np.sqrt(3.0)
_GAUSS_2X2 = np.array([[-_G, -_G], [_G, -_G], [_G, _G], [-_G, _G]])
_GAUSS_2X2_W = np.ones(4)
_XI_SIGNS = np.array([-1.0, 1.0, 1.0, -1.0])
_ETA_SIGNS = np.array([-1.0, -1.0, 1.0, 1.0])


def q4_shape(xi: float, eta: float) -> np.ndarray:
    """Q4 形状関数 N (4,)."""
    return 0.25 * (1.0 + _XI_SIGNS * xi) * (1.0 + _ETA_SIGNS * eta)


def q4_dNdxi(xi: float, eta: float) -> np.ndarray:
    """Q4 形状関数微分 (2, 4) — [dN/dξ; dN/dη]."""
    return 0.25 * np.array(
        [
            _XI_SIGNS * (1.0 + _ETA_SIGNS * eta),
            _ETA_SIGNS * (1.0 + _XI_SIGNS * xi),
        ]
    )


def _q4_points(node_xy: np.ndarray) -> Iterator[tuple[np.ndarray, np.ndarray, float]]:
    """2×2 Gauss 点ごとに (N, dN/dx (2,4), 重み×detJ) を返す."""
    node_xy = np.asarray(node_xy, dtype=float)
    if node_xy.shape != (4, 2):
        raise ValueError(f"node_xy は (4,2) が必要。実際: {node_xy.shape}")
    for (xi, eta), w in zip(_GAUSS_2X2, _GAUSS_2X2_W, strict=True):
        dNdxi = q4_dNdxi(xi, eta)
        J = dNdxi @ node_xy  # (2, 2)
        detJ = J[0, 0] * J[1, 1] - J[0, 1] * J[1, 0]
        if detJ <= 0.0:
            raise ElementGeometryError(f"Q4 detJ={detJ:.3e} <= 0（反転/退化要素）")
        yield q4_shape(xi, eta), np.linalg.solve(J, dNdxi), w * detJ


# ---------------------------------------------------------------------------
# 要素レベル行列
# ---------------------------------------------------------------------------


def quad4_conductance(node_xy: np.ndarray, k: float, t: float = 1.0) -> np.ndarray:
    """熱伝導行列 K_e = ∫ ∇Nᵀ k t ∇N dA (4, 4)."""
    Ke = np.zeros((4, 4))
    for _, dN_dx, wdet in _q4_points(node_xy):
        Ke += (dN_dx.T @ dN_dx) * k * t * wdet
    return Ke


def quad4_capacitance(node_xy: np.ndarray, rho_c: float, t: float = 1.0) -> np.ndarray:
    """熱容量行列 C_e = ∫ Nᵀ ρc t N dA (4, 4)（整合質量）."""
    Ce = np.zeros((4, 4))
    for N, _, wdet in _q4_points(node_xy):
        Ce += np.outer(N, N) * rho_c * t * wdet
    return Ce


def quad4_heat_load(node_xy: np.ndarray, q: float | np.ndarray, t: float = 1.0) -> np.ndarray:
    """体積発熱荷重 f_q = ∫ Nᵀ q t dA (4,).

    Args:
        q: 一様な発熱密度（スカラー）または各節点値 (4,)
    """
    q_nodal = np.broadcast_to(np.asarray(q, dtype=float), (4,))
    fe = np.zeros(4)
    for N, _, wdet in _q4_points(node_xy):
        fe += N * (N @ q_nodal) * t * wdet
    return fe


# ---------------------------------------------------------------------------
# 過渡要素
# ---------------------------------------------------------------------------


class Quad4ConductionElement:
    """Q4 非定常熱伝導要素（TransientElementProtocol 適合）.

    Args:
        node_xy: (4, 2) 節点座標（反時計回り）
        k: 熱伝導率
        rho_c: 体積熱容量 ρc
        t: 板厚
        q: 体積発熱密度（スカラー or 節点値 (4,)）
    """

    def __init__(
        self,
        node_xy: np.ndarray,
        k: float,
        rho_c: float,
        t: float = 1.0,
        q: float | np.ndarray = 0.0,
    ) -> None:
        if k <= 0.0:
            raise ValueError(f"k は正値: {k}")
        if rho_c <= 0.0:
            raise ValueError(f"rho_c は正値: {rho_c}")
        self.node_xy = np.array(node_xy, dtype=float)
        self.K = quad4_conductance(self.node_xy, k, t)
        self.C = quad4_capacitance(self.node_xy, rho_c, t)
        self.Q = quad4_heat_load(self.node_xy, q, t)
        self._sol = np.zeros(4)
        self._vel = np.zeros(4)

    def set_solution(self, sol: np.ndarray) -> None:
        sol = np.asarray(sol, dtype=float)
        if sol.shape != (4,):
            raise ValueError(f"sol は (4,) が必要。実際: {sol.shape}")
        self._sol = sol.copy()

    def set_velocity(self, vel: np.ndarray) -> None:
        vel = np.asarray(vel, dtype=float)
        if vel.shape != (4,):
            raise ValueError(f"vel は (4,) が必要。実際: {vel.shape}")
        self._vel = vel.copy()

    def transient_terms(self, request_jacobian: bool) -> TransientTerms:
        """質量項 C Ṫ とフラックス項 K T − Q を返す."""
        zeros = np.zeros((4, 4))
        return TransientTerms(
            f_m=self.C @ self._vel,
            f_x=self.K @ self._sol - self.Q,
            f_m_jac_xdot=self.C if request_jacobian else zeros,
            f_m_jac=zeros,
            f_x_jac=self.K if request_jacobian else zeros,
        )


# ---------------------------------------------------------------------------
# メッシュ生成・全体組立
# ---------------------------------------------------------------------------


def make_rect_mesh(Lx: float, Ly: float, nx: int, ny: int) -> tuple[np.ndarray, np.ndarray]:
    """長方形の均一 Q4 メッシュ.

    Returns:
        nodes: ((nx+1)*(ny+1), 2) 節点座標（x が速く変化）
        conn: (nx*ny, 4) 接続配列（反時計回り）
    """
    x = np.linspace(0.0, Lx, nx + 1)
    y = np.linspace(0.0, Ly, ny + 1)
    xx, yy = np.meshgrid(x, y)
    nodes = np.column_stack([xx.ravel(), yy.ravel()])

    conn = np.empty((nx * ny, 4), dtype=int)
    for j in range(ny):
        for i in range(nx):
            n0 = j * (nx + 1) + i
            conn[j * nx + i] = [n0, n0 + 1, n0 + nx + 2, n0 + nx + 1]
    return nodes, conn


def build_conduction_elements(
    nodes: np.ndarray,
    conn: np.ndarray,
    *,
    k: float,
    rho_c: float,
    t: float = 1.0,
    q: float = 0.0,
) -> list[tuple[Quad4ConductionElement, np.ndarray]]:
    """メッシュから (要素, DOF インデックス) の列を作る（1 節点 1 DOF）."""
    return [
        (Quad4ConductionElement(nodes[elem], k, rho_c, t=t, q=q), np.asarray(elem, dtype=int))
        for elem in conn
    ]
