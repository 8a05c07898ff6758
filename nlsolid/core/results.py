"""要素・アセンブリ・時間積分の戻り値型.

いずれも NamedTuple で、フィールド名でもタプルアンパックでも受け取れる:

    f, jac, computed = elem.internal_residual(True)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
import scipy.sparse as sp

if TYPE_CHECKING:
    from nlsolid.numerics.operator_matrix import OperatorMatrix


class ElementResidual(NamedTuple):
    """要素残差・ヤコビアンの計算結果.

    Attributes:
        f: (3n,) 要素残差（内力）ベクトル
        jac: (3n, 3n) 要素ヤコビアン。未要求時はゼロ行列。
        jacobian_computed: jac を実際に計算したか（request_jacobian と一致）
    """

    f: np.ndarray
    jac: np.ndarray
    jacobian_computed: bool


class Kinematics(NamedTuple):
    """1 積分点での Green-Lagrange 運動学.

    Voigt 順序: [εxx, εyy, εzz, γxy, γyz, γzx]（工学せん断ひずみ）

    Attributes:
        strain: (6,) Green-Lagrange ひずみ
        mat_x, mat_y, mat_z: (6,3) 変位勾配補助行列
        b_lin: 線形ひずみ演算子 (6 × 3n)
        b_nl_x, b_nl_y, b_nl_z: 方向別非線形演算子 (3 × 3n)。
            b_nl_d · u = {∂u/∂d, ∂v/∂d, ∂w/∂d}
        b_nl_u, b_nl_v, b_nl_w: 成分別非線形演算子 (3 × 3n)。
            b_nl_u · u = {∂u/∂x, ∂u/∂y, ∂u/∂z}
    """

    strain: np.ndarray
    mat_x: np.ndarray
    mat_y: np.ndarray
    mat_z: np.ndarray
    b_lin: OperatorMatrix
    b_nl_x: OperatorMatrix
    b_nl_y: OperatorMatrix
    b_nl_z: OperatorMatrix
    b_nl_u: OperatorMatrix
    b_nl_v: OperatorMatrix
    b_nl_w: OperatorMatrix

    def linearized_operator(self) -> np.ndarray:
        """δE = B(u)·δu となる線形化演算子 B(u) (6 × 3n) を密行列で返す."""
        B = self.b_lin.to_dense()
        B += self.b_nl_x.left_multiply(self.mat_x)
        B += self.b_nl_y.left_multiply(self.mat_y)
        B += self.b_nl_z.left_multiply(self.mat_z)
        return B


class Enhancement(NamedTuple):
    """非適合（拡張ひずみ）モード演算子.

    Attributes:
        b_inc: 親要素域での補間演算子 (6 × 30)
        g_mat: (6, 30) 全体座標系へ変換済みの拡張ひずみ行列
    """

    b_inc: OperatorMatrix
    g_mat: np.ndarray


class TransientTerms(NamedTuple):
    """過渡解析用の要素寄与（質量項とフラックス項）.

    Attributes:
        f_m: (n,) 質量項ベクトル
        f_x: (n,) フラックス項ベクトル
        f_m_jac_xdot: (n,n) ∂f_m/∂ẋ
        f_m_jac: (n,n) ∂f_m/∂x
        f_x_jac: (n,n) ∂f_x/∂x
    """

    f_m: np.ndarray
    f_x: np.ndarray
    f_m_jac_xdot: np.ndarray
    f_m_jac: np.ndarray
    f_x_jac: np.ndarray


class TransientResidual(NamedTuple):
    """時間積分スキームで合成した残差とヤコビアン.

    Attributes:
        residual: (n,) 残差 r = βΔt (f_m + f_x)
        jacobian: (n,n) dr/dx。未要求時は None。
    """

    residual: np.ndarray
    jacobian: np.ndarray | None


class SolidAssemblyResult(NamedTuple):
    """固体要素群の全体アセンブリ結果.

    Attributes:
        f_int: (ndof,) 全体内力ベクトル
        K_T: 接線剛性行列 (CSR)。計算しない場合は None。
    """

    f_int: np.ndarray
    K_T: sp.csr_matrix | None


class DirichletResult(NamedTuple):
    """Dirichlet 境界条件適用後の結果.

    Attributes:
        K: 拘束適用後の剛性行列 (CSR)
        f: 拘束適用後の右辺ベクトル (ndof,)
    """

    K: sp.csr_matrix
    f: np.ndarray


class StepResult(NamedTuple):
    """過渡解析 1 ステップの Newton 反復結果.

    Attributes:
        solution: (ndof,) 収束解
        converged: 収束したかどうか
        iterations: 反復回数
        info: 残差履歴などの補足情報
    """

    solution: np.ndarray
    converged: bool
    iterations: int
    info: dict[str, Any]
