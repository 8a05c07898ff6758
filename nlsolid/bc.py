"""境界条件: 名前付き場関数の保持と Dirichlet 拘束の適用."""

from __future__ import annotations

import numpy as np
import scipy.sparse as sp

from nlsolid.core.results import DirichletResult


class BoundaryCondition:
    """名前付き場関数を保持する境界条件（BoundaryConditionProvider 適合）.

    熱荷重では "temperature" と "ref_temperature" の 2 つを登録する。

    Example::

        bc = BoundaryCondition(
            temperature=ConstantScalarField(120.0),
            ref_temperature=ConstantScalarField(20.0),
        )
        T = bc.get("temperature")(xyz, t)
    """

    def __init__(self, **fields) -> None:
        self._fields = dict(fields)

    def add(self, name: str, field) -> None:
        """場関数を登録（同名は上書き）."""
        self._fields[name] = field

    def get(self, name: str):
        """名前で場関数を返す."""
        try:
            return self._fields[name]
        except KeyError:
            raise KeyError(
                f"境界条件に場関数 '{name}' がありません。登録済み: {sorted(self._fields)}"
            ) from None

    def __contains__(self, name: str) -> bool:
        return name in self._fields


def apply_dirichlet(
    K: sp.spmatrix,
    f: np.ndarray,
    fixed_dofs: np.ndarray,
    values: float | np.ndarray = 0.0,
) -> DirichletResult:
    """拘束 DOF の行・列を消去し、右辺を強制変位で補正する.

    元の K, f から
      f' = f − K[:, d]·ū,  f'[d] = ū
      K' = P·K·P + (I − P),  P = diag(自由 DOF で 1, 拘束 DOF で 0)
    を作る。K' は対称性を保ち、拘束行は単位行になる。入力は変更しない。

    Args:
        K: (n, n) 疎剛性行列
        f: (n,) 右辺
        fixed_dofs: 拘束 DOF
        values: 強制変位（スカラー or fixed_dofs と同長）

    Returns:
        DirichletResult(K, f)。K は CSR。
    """
    n = K.shape[0]
    f_bc = np.array(f, dtype=float)
    if f_bc.shape != (n,):
        raise ValueError(f"K {K.shape} と f {f_bc.shape} のサイズが一致していません。")

    fixed_dofs = np.asarray(fixed_dofs, dtype=int)
    if np.isscalar(values):
        prescribed = np.full(len(fixed_dofs), float(values))
    else:
        prescribed = np.asarray(values, dtype=float)
        if prescribed.shape != fixed_dofs.shape:
            raise ValueError("values の長さと fixed_dofs の長さが一致していません。")

    K_csr = sp.csr_matrix(K)
    lifted = prescribed != 0.0
    if np.any(lifted):
        f_bc -= K_csr.tocsc()[:, fixed_dofs[lifted]] @ prescribed[lifted]

    free_mask = np.ones(n, dtype=float)
    free_mask[fixed_dofs] = 0.0
    P = sp.diags(free_mask)
    K_bc = (P @ K_csr @ P + sp.diags(1.0 - free_mask)).tocsr()
    K_bc.eliminate_zeros()

    f_bc[fixed_dofs] = prescribed
    return DirichletResult(K=K_bc, f=f_bc)
