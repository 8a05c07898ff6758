"""3D 固体要素 — 幾何学的非線形 (TL) + 非適合モード + 熱荷重.

== 定式化 ==

内力（Total Lagrangian）:
  f = ∫ B(u)ᵀ S dV₀,   S = C (E(u) + G α)
  B(u) = B_lin + mat_x B_x + mat_y B_y + mat_z B_z

接線剛性:
  K_T = ∫ B(u)ᵀ C B(u) dV₀                       （材料剛性）
      + Σ_{c=u,v,w} ∫ B_cᵀ [S] B_c dV₀            （幾何剛性、[S] は 3×3 応力行列）
      − K_uα K_αα⁻¹ K_uαᵀ                          （非適合モードの静的縮合）

非適合モードの局所方程式（要素内で解く、全体系には組み込まない）:
  r_α = ∫ Gᵀ C (E(u) + G α) dV₀ = 0
  K_αα = ∫ Gᵀ C G dV₀,   K_uα = ∫ B(u)ᵀ C G dV₀
  r_α は α について線形なので 1 回の線形求解で厳密に収束する。

熱荷重:
  σ_th = (C·α_th)(T − T₀)
  f   −= ∫ B(u)ᵀ σ_th dV₀
  K_T −= Σ_c ∫ B_cᵀ [σ_th] B_c dV₀

状態遷移（1 回の呼出し内）:
  未初期化 → α 局所求解（縮合有効時のみ）→ 残差・ヤコビアン積分 → 完了
"""

from __future__ import annotations

import numpy as np
import scipy.linalg as la

from nlsolid.core.constitutive import BoundaryConditionProvider, SolidPropertyProtocol
from nlsolid.core.element import BasisEvaluator, QuadratureData
from nlsolid.core.results import ElementResidual, Kinematics
from nlsolid.core.state import N_INCOMPATIBLE_MODES, IncompatibleModeState
from nlsolid.elements.hex8_basis import Hex8Basis
from nlsolid.elements.incompatible import build_enhancement, reference_transform
from nlsolid.elements.kinematics import build_kinematics, stress_matrix

# ============================================================
# B(u) を介した積（演算子の疎パターンをそのまま使う）
# ============================================================


def _bt_vector(kin: Kinematics, s: np.ndarray) -> np.ndarray:
    """B(u)ᵀ · s (3n,)."""
    out = kin.b_lin.apply_transpose(s)
    out += kin.b_nl_x.apply_transpose(kin.mat_x.T @ s)
    out += kin.b_nl_y.apply_transpose(kin.mat_y.T @ s)
    out += kin.b_nl_z.apply_transpose(kin.mat_z.T @ s)
    return out


def _bt_matrix(kin: Kinematics, M: np.ndarray) -> np.ndarray:
    """B(u)ᵀ · M (3n, k)、M は (6, k)."""
    out = kin.b_lin.transpose_left_multiply(M)
    out += kin.b_nl_x.transpose_left_multiply(kin.mat_x.T @ M)
    out += kin.b_nl_y.transpose_left_multiply(kin.mat_y.T @ M)
    out += kin.b_nl_z.transpose_left_multiply(kin.mat_z.T @ M)
    return out


def _a_b(kin: Kinematics, A: np.ndarray) -> np.ndarray:
    """A · B(u) (m, 3n)、A は (m, 6)."""
    out = kin.b_lin.left_multiply(A)
    out += kin.b_nl_x.left_multiply(A @ kin.mat_x)
    out += kin.b_nl_y.left_multiply(A @ kin.mat_y)
    out += kin.b_nl_z.left_multiply(A @ kin.mat_z)
    return out


def material_stiffness(kin: Kinematics, C: np.ndarray) -> np.ndarray:
    """1 積分点の材料剛性 B(u)ᵀ C B(u)（重み未乗算）."""
    return _bt_matrix(kin, _a_b(kin, C))


def geometric_stiffness(kin: Kinematics, stress: np.ndarray) -> np.ndarray:
    """1 積分点の幾何剛性 Σ_c B_cᵀ [S] B_c（重み未乗算）."""
    S = stress_matrix(stress)
    return kin.b_nl_u.sandwich(S) + kin.b_nl_v.sandwich(S) + kin.b_nl_w.sandwich(S)


def _check_stiffness(C: np.ndarray) -> np.ndarray:
    C = np.asarray(C, dtype=float)
    if C.shape != (6, 6):
        raise ValueError(f"材料行列は (6,6) が必要。実際: {C.shape}")
    return C


# ============================================================
# 要素クラス
# ============================================================


class StructuralElement3D:
    """3D 固体要素（HEX8 + 30 非適合モード、TL 定式化）.

    参照配置の要素中心で T₀⁻ᵀ を構築時に 1 回だけ計算し、要素の寿命中保持する。

    Args:
        node_xyz: (8, 3) 参照配置の節点座標
        prop: 特性カード（stiffness_field, thermal_expansion_field）
        basis: 基底評価器（省略時 Hex8Basis()）
        time: 場関数に渡す時刻
        condense_incompatible_modes: True で非適合モードを静的縮合する。
            False の場合、K_αα 等は計算せず適合変位のみの残差となる。

    Raises:
        ElementGeometryError: 要素中心のヤコビアンが特異、または反転要素
    """

    ndof_per_node: int = 3

    def __init__(
        self,
        node_xyz: np.ndarray,
        prop: SolidPropertyProtocol,
        *,
        basis: BasisEvaluator | None = None,
        time: float = 0.0,
        condense_incompatible_modes: bool = True,
    ) -> None:
        if basis is None:
            basis = Hex8Basis()
        self.node_xyz = np.array(node_xyz, dtype=float)
        self.prop = prop
        self.time = float(time)
        self.condense_incompatible_modes = condense_incompatible_modes

        self.nnodes = basis.n_nodes
        self.ndof = 3 * self.nnodes
        self._quad = basis.evaluate(self.node_xyz)
        jac0 = basis.mapping_jacobian(self.node_xyz, np.zeros(3))
        self._t0_inv_tr = reference_transform(jac0)
        self._t0_inv_tr.setflags(write=False)

        self.incompatible_state = IncompatibleModeState()
        self._local_sol = np.zeros(self.ndof, dtype=float)
        self._local_vel = np.zeros(self.ndof, dtype=float)

    # ------------------------------------------------------------------
    # 状態
    # ------------------------------------------------------------------

    @property
    def quadrature(self) -> QuadratureData:
        return self._quad

    @property
    def t0_inv_tr(self) -> np.ndarray:
        """要素中心の変換行列 T₀⁻ᵀ·det(J₀) (6,6)（読み取り専用）."""
        return self._t0_inv_tr

    @property
    def local_solution(self) -> np.ndarray:
        return self._local_sol.copy()

    def set_solution(self, sol: np.ndarray) -> None:
        """要素変位 (3n,) を設定する."""
        sol = np.asarray(sol, dtype=float)
        if sol.shape != (self.ndof,):
            raise ValueError(f"sol は ({self.ndof},) が必要。実際: {sol.shape}")
        self._local_sol = sol.copy()

    def set_velocity(self, vel: np.ndarray) -> None:
        """要素速度 (3n,) を設定する."""
        vel = np.asarray(vel, dtype=float)
        if vel.shape != (self.ndof,):
            raise ValueError(f"vel は ({self.ndof},) が必要。実際: {vel.shape}")
        self._local_vel = vel.copy()

    # ------------------------------------------------------------------
    # 内力
    # ------------------------------------------------------------------

    def internal_residual(
        self,
        request_jacobian: bool,
        if_ignore_ho_jac: bool = False,
    ) -> ElementResidual:
        """ひずみエネルギーによる内力ベクトルと接線剛性を計算する.

        Args:
            request_jacobian: True で接線剛性も計算
            if_ignore_ho_jac: 互換用。高次項は常に含める。

        Returns:
            ElementResidual(f, jac, jacobian_computed)
        """
        quad = self._quad
        n = self.ndof
        u = self._local_sol
        f = np.zeros(n, dtype=float)
        jac = np.zeros((n, n), dtype=float)

        # ==== Pass 1: 積分点ごとの C, 運動学, G を評価 ====
        C_list = []
        kin_list = []
        G_list = []
        for qp in range(quad.n_qp):
            C_list.append(_check_stiffness(self.prop.stiffness_field(quad.xyz[qp], self.time)))
            kin_list.append(build_kinematics(quad, qp, u))
            G_list.append(build_enhancement(quad, qp, self._t0_inv_tr).g_mat)

        alpha = np.zeros(N_INCOMPATIBLE_MODES, dtype=float)
        K_ua = None
        cho = None
        if self.condense_incompatible_modes:
            alpha, K_ua, cho = self._solve_incompatible_modes(C_list, kin_list, G_list)

        # ==== Pass 2: 内力と接線剛性 ====
        for qp in range(quad.n_qp):
            w = quad.JxW[qp]
            C = C_list[qp]
            kin = kin_list[qp]
            stress = C @ (kin.strain + G_list[qp] @ alpha)

            f += w * _bt_vector(kin, stress)

            if request_jacobian:
                jac += w * material_stiffness(kin, C)
                jac += w * geometric_stiffness(kin, stress)

        if request_jacobian and K_ua is not None:
            jac -= K_ua @ la.cho_solve(cho, K_ua.T)

        return ElementResidual(f=f, jac=jac, jacobian_computed=request_jacobian)

    def _solve_incompatible_modes(self, C_list, kin_list, G_list):
        """非適合モード α を局所的に解く（静的縮合）.

        Returns:
            alpha: (30,) 縮合解
            K_ua: (3n, 30) 連成剛性
            cho: K_αα の Cholesky 分解
        """
        quad = self._quad
        state = self.incompatible_state
        state.reset()

        K_aa = np.zeros((N_INCOMPATIBLE_MODES, N_INCOMPATIBLE_MODES), dtype=float)
        K_ua = np.zeros((self.ndof, N_INCOMPATIBLE_MODES), dtype=float)
        r_a = np.zeros(N_INCOMPATIBLE_MODES, dtype=float)

        for qp in range(quad.n_qp):
            w = quad.JxW[qp]
            G = G_list[qp]
            CG = C_list[qp] @ G
            K_aa += w * (G.T @ CG)
            K_ua += w * _bt_matrix(kin_list[qp], CG)
            r_a += w * (CG.T @ kin_list[qp].strain)

        try:
            cho = la.cho_factor(K_aa)
        except la.LinAlgError as exc:
            raise ValueError("K_αα が正定値でない（材料行列または要素形状を確認）") from exc

        alpha = -la.cho_solve(cho, r_a)
        state.alpha = alpha
        state.residual_norm = float(np.linalg.norm(r_a + K_aa @ alpha))
        state.converged = True
        return alpha, K_ua, cho

    # ------------------------------------------------------------------
    # 熱荷重
    # ------------------------------------------------------------------

    def thermal_residual(
        self,
        request_jacobian: bool,
        bc: BoundaryConditionProvider,
    ) -> ElementResidual:
        """熱応力による残差ベクトルとヤコビアンを計算する.

        bc から "temperature" と "ref_temperature" の場関数を参照する。

        Returns:
            ElementResidual(f, jac, jacobian_computed)
        """
        quad = self._quad
        n = self.ndof
        u = self._local_sol
        f = np.zeros(n, dtype=float)
        jac = np.zeros((n, n), dtype=float)

        temp_func = bc.get("temperature")
        ref_temp_func = bc.get("ref_temperature")

        for qp in range(quad.n_qp):
            xyz = quad.xyz[qp]
            w = quad.JxW[qp]
            c_alpha = np.asarray(self.prop.thermal_expansion_field(xyz, self.time), dtype=float)
            c_alpha = c_alpha.ravel()
            if c_alpha.shape != (6,):
                raise ValueError(f"熱膨張ベクトルは (6,) が必要。実際: {c_alpha.shape}")
            delta_t = float(temp_func(xyz, self.time)) - float(ref_temp_func(xyz, self.time))
            sigma_th = c_alpha * delta_t  # [C]{α (T - T0)}

            kin = build_kinematics(quad, qp, u)
            f -= w * _bt_vector(kin, sigma_th)

            if request_jacobian:
                jac -= w * geometric_stiffness(kin, sigma_th)

        return ElementResidual(f=f, jac=jac, jacobian_computed=request_jacobian)

    # ------------------------------------------------------------------
    # 未実装の感度・初期応力
    # ------------------------------------------------------------------

    def internal_residual_sensitivity(self, request_jacobian: bool, if_ignore_ho_jac: bool = False):
        """内力の設計感度（3D 要素では未実装）."""
        raise NotImplementedError("3D 固体要素の内力感度は未実装")

    def internal_residual_jac_dot_state_sensitivity(self, state_sens: np.ndarray):
        """d[J]/d{x}·d{x}/dp（3D 要素では未実装）."""
        raise NotImplementedError("3D 固体要素の d[J]/dx·dx/dp は未実装")

    def prestress_residual(self, request_jacobian: bool):
        """初期応力による残差（3D 要素では未実装）."""
        raise NotImplementedError("3D 固体要素の初期応力残差は未実装")

    def prestress_residual_sensitivity(self, request_jacobian: bool):
        """初期応力残差の感度（3D 要素では未実装）."""
        raise NotImplementedError("3D 固体要素の初期応力残差感度は未実装")

    def thermal_residual_sensitivity(self, request_jacobian: bool, bc: BoundaryConditionProvider):
        """熱残差の感度（3D 要素では未実装）."""
        raise NotImplementedError("3D 固体要素の熱残差感度は未実装")

    # ------------------------------------------------------------------
    # 便利関数
    # ------------------------------------------------------------------

    def linear_stiffness(self) -> np.ndarray:
        """ゼロ変位での接線剛性（= 微小変形の剛性行列）を返す.

        要素の変位状態は変更しない。
        """
        saved = self._local_sol
        saved_state = self.incompatible_state.copy()
        try:
            self._local_sol = np.zeros(self.ndof, dtype=float)
            return self.internal_residual(True).jac
        finally:
            self._local_sol = saved
            self.incompatible_state = saved_state

    def dof_indices(self, node_indices: np.ndarray) -> np.ndarray:
        """グローバル節点インデックスから要素 DOF インデックスを返す."""
        node_indices = np.asarray(node_indices, dtype=np.int64)
        return (node_indices[:, None] * 3 + np.arange(3, dtype=np.int64)[None, :]).ravel()


def solid3d_force_and_stiffness(
    node_xyz: np.ndarray,
    u_elem: np.ndarray,
    prop: SolidPropertyProtocol,
    *,
    condense_incompatible_modes: bool = True,
) -> tuple[np.ndarray, np.ndarray]:
    """要素 1 個の内力と接線剛性を返す（関数インタフェース）.

    Args:
        node_xyz: (8,3) 参照配置の節点座標
        u_elem: (24,) 要素変位
        prop: 特性カード
        condense_incompatible_modes: 非適合モードの縮合

    Returns:
        f_int: (24,) 内力ベクトル
        K_T: (24,24) 接線剛性行列
    """
    elem = StructuralElement3D(
        node_xyz, prop, condense_incompatible_modes=condense_incompatible_modes
    )
    elem.set_solution(u_elem)
    f, jac, _ = elem.internal_residual(True)
    return f, jac
