"""3D 固体要素群の全体アセンブリ.

COO 形式で要素ごとの寄与を蓄積し、最終的に CSR 行列を生成する。
要素オブジェクト（参照配置の T₀⁻ᵀ と非適合モード状態を保持）は
アセンブラの構築時に 1 回だけ生成し、Newton 反復の間で再利用する。
"""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from nlsolid.core.constitutive import BoundaryConditionProvider, SolidPropertyProtocol
from nlsolid.core.results import SolidAssemblyResult
from nlsolid.elements.solid3d import StructuralElement3D

# ========== COO ベクトル化ヘルパー ==========


def _vectorized_coo_indices(
    conn_int: np.ndarray,
    ndof_per_node: int,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """全要素の DOF インデックスと COO row/col を一括計算する.

    Args:
        conn_int: (n_elem, nnodes) 接続配列（整数）
        ndof_per_node: 節点あたりの自由度数

    Returns:
        all_edofs: (n_elem, m) 要素 DOF インデックス
        rows, cols: それぞれ (n_elem * m * m,) の int64 配列
    """
    n_elem, nnodes = conn_int.shape
    m = nnodes * ndof_per_node
    dof_offsets = np.arange(ndof_per_node, dtype=np.int64)
    all_edofs = (conn_int[:, :, None] * ndof_per_node + dof_offsets[None, None, :]).reshape(
        n_elem, m
    )
    rows = np.repeat(all_edofs, m, axis=1).ravel()
    cols = np.tile(all_edofs, (1, m)).ravel()
    return all_edofs, rows, cols


class SolidAssembler:
    """HEX8 非線形固体要素群のアセンブラ.

    Args:
        nodes: (n_nodes, 3) 参照配置の節点座標
        conn: (n_elems, 8) 接続配列
        prop: 特性カード（全要素共通）
        condense_incompatible_modes: 非適合モードの静的縮合
        time: 場関数に渡す時刻
    """

    def __init__(
        self,
        nodes: np.ndarray,
        conn: np.ndarray,
        prop: SolidPropertyProtocol,
        *,
        condense_incompatible_modes: bool = True,
        time: float = 0.0,
    ) -> None:
        self.nodes = np.asarray(nodes, dtype=float)
        conn_int = np.asarray(conn, dtype=np.int64)
        if conn_int.ndim != 2 or conn_int.shape[1] != 8:
            raise ValueError(f"conn は (n_elems, 8) が必要。実際: {conn_int.shape}")
        if conn_int.size and (conn_int.min() < 0 or conn_int.max() >= len(self.nodes)):
            raise IndexError("conn に範囲外の節点番号があります。")
        self.conn = conn_int
        self.ndof = 3 * len(self.nodes)
        self.elements = [
            StructuralElement3D(
                self.nodes[elem],
                prop,
                time=time,
                condense_incompatible_modes=condense_incompatible_modes,
            )
            for elem in conn_int
        ]
        self._edofs, self._rows, self._cols = _vectorized_coo_indices(conn_int, 3)

    def assemble(
        self,
        u: np.ndarray,
        request_jacobian: bool = True,
        *,
        thermal_bc: BoundaryConditionProvider | None = None,
    ) -> SolidAssemblyResult:
        """全体内力ベクトルと接線剛性を組み立てる.

        thermal_bc を与えると熱荷重の残差とヤコビアンも加える。

        Args:
            u: (ndof,) 全体変位
            request_jacobian: True で接線剛性（CSR）も返す
            thermal_bc: "temperature", "ref_temperature" を持つ境界条件

        Returns:
            SolidAssemblyResult(f_int, K_T)
        """
        u = np.asarray(u, dtype=float)
        if u.shape != (self.ndof,):
            raise ValueError(f"u は ({self.ndof},) が必要。実際: {u.shape}")

        f_int = np.zeros(self.ndof, dtype=float)
        data: list[np.ndarray] = []

        for elem, edofs in zip(self.elements, self._edofs, strict=True):
            elem.set_solution(u[edofs])
            f_e, K_e, _ = elem.internal_residual(request_jacobian)
            if thermal_bc is not None:
                f_th, K_th, _ = elem.thermal_residual(request_jacobian, thermal_bc)
                f_e = f_e + f_th
                K_e = K_e + K_th
            np.add.at(f_int, edofs, f_e)
            if request_jacobian:
                data.append(K_e.ravel())

        if not request_jacobian:
            return SolidAssemblyResult(f_int=f_int, K_T=None)

        K = sp.coo_matrix(
            (np.concatenate(data), (self._rows, self._cols)),
            shape=(self.ndof, self.ndof),
        ).tocsr()
        K.sum_duplicates()
        return SolidAssemblyResult(f_int=f_int, K_T=K)

    def callbacks(self, *, thermal_bc: BoundaryConditionProvider | None = None):
        """newton_raphson() 用のコールバック組を返す.

        同一変位ベクトルに対して内力と接線が連続で要求される場合は
        1 回の要素ループの結果を共有する。

        Returns:
            assemble_internal_force: u → f_int
            assemble_tangent: u → K_T (CSR)
        """
        _cache: dict = {"u_key": None, "result": None}

        def _ensure_cache(u: np.ndarray) -> SolidAssemblyResult:
            u_key = np.asarray(u, dtype=float).tobytes()
            if _cache["u_key"] != u_key:
                _cache["result"] = self.assemble(u, True, thermal_bc=thermal_bc)
                _cache["u_key"] = u_key
            return _cache["result"]

        def assemble_internal_force(u: np.ndarray) -> np.ndarray:
            return _ensure_cache(u).f_int.copy()

        def assemble_tangent(u: np.ndarray) -> sp.csr_matrix:
            return _ensure_cache(u).K_T

        return assemble_internal_force, assemble_tangent


def assemble_solid_system(
    nodes: np.ndarray,
    conn: np.ndarray,
    prop: SolidPropertyProtocol,
    u: np.ndarray | None = None,
    request_jacobian: bool = True,
    *,
    thermal_bc: BoundaryConditionProvider | None = None,
    condense_incompatible_modes: bool = True,
) -> SolidAssemblyResult:
    """固体要素群の内力と接線剛性を 1 回だけ組み立てる（関数インタフェース）.

    Args:
        nodes: (n_nodes, 3) 参照配置の節点座標
        conn: (n_elems, 8) 接続配列
        prop: 特性カード
        u: (ndof,) 全体変位（None = ゼロ → 微小変形の剛性）
        request_jacobian: True で接線剛性も返す
        thermal_bc: 熱荷重の境界条件（None = 熱荷重なし）
        condense_incompatible_modes: 非適合モードの静的縮合

    Returns:
        SolidAssemblyResult(f_int, K_T)
    """
    assembler = SolidAssembler(
        nodes, conn, prop, condense_incompatible_modes=condense_incompatible_modes
    )
    if u is None:
        u = np.zeros(assembler.ndof, dtype=float)
    return assembler.assemble(u, request_jacobian, thermal_bc=thermal_bc)


def make_nl_assembler_hex8(
    nodes: np.ndarray,
    conn: np.ndarray,
    prop: SolidPropertyProtocol,
    *,
    thermal_bc: BoundaryConditionProvider | None = None,
    condense_incompatible_modes: bool = True,
):
    """HEX8 要素群の非線形アセンブラを生成する.

    Usage::

        f_int_fn, K_T_fn = make_nl_assembler_hex8(mesh.nodes, mesh.conn, prop)
        result = newton_raphson(f_ext, fixed_dofs, K_T_fn, f_int_fn)

    Returns:
        assemble_internal_force: u → f_int (ndof,)
        assemble_tangent: u → K_T (CSR)
    """
    assembler = SolidAssembler(
        nodes, conn, prop, condense_incompatible_modes=condense_incompatible_modes
    )
    return assembler.callbacks(thermal_bc=thermal_bc)
