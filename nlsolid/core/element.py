"""要素まわりの外部インタフェース定義.

Protocol 一覧:
  BasisEvaluator            — 形状関数・積分点データの供給（外部コラボレータ）
  TransientElementProtocol  — 過渡解析用（質量項 + フラックス項）
  TimeHistoryStore          — 解・速度の時刻歴ストア（名前付きベクトル）

カーネルはこれらを不透明なインタフェースとして扱い、
実装の内部には依存しない。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Protocol, runtime_checkable

import numpy as np

from nlsolid.core.results import TransientTerms


class QuadraturePoint(NamedTuple):
    """1 積分点のコンテキスト（組立ループ中のみ有効）.

    Attributes:
        index: 積分点番号
        ref_point: (3,) 親要素座標 (ξ, η, ζ)
        JxW: 重み × detJ
        xyz: (3,) 物理座標
        dphi: (3, n) 物理座標での形状関数微分 [dN/dx; dN/dy; dN/dz]
        dxyz_dref: (3, 3) 写像ヤコビアン。dxyz_dref[r, c] = ∂x_c/∂ξ_r
    """

    index: int
    ref_point: np.ndarray
    JxW: float
    xyz: np.ndarray
    dphi: np.ndarray
    dxyz_dref: np.ndarray

    @property
    def det_jacobian(self) -> float:
        """写像ヤコビアンの行列式."""
        return float(np.linalg.det(self.dxyz_dref))


@dataclass(frozen=True)
class QuadratureData:
    """要素 1 個分の積分点データ.

    Attributes:
        ref_points: (nqp, 3) 親要素座標
        JxW: (nqp,) 重み × detJ
        xyz: (nqp, 3) 物理座標
        dphi: (nqp, 3, n) 物理座標での形状関数微分
        dxyz_dref: (nqp, 3, 3) 写像ヤコビアン
    """

    ref_points: np.ndarray
    JxW: np.ndarray
    xyz: np.ndarray
    dphi: np.ndarray
    dxyz_dref: np.ndarray

    @property
    def n_qp(self) -> int:
        return len(self.JxW)

    @property
    def n_nodes(self) -> int:
        return self.dphi.shape[2]

    def point(self, qp: int) -> QuadraturePoint:
        """積分点 qp のコンテキストを返す."""
        if not 0 <= qp < self.n_qp:
            raise IndexError(f"積分点番号 {qp} が範囲外 (n_qp={self.n_qp})")
        return QuadraturePoint(
            index=qp,
            ref_point=self.ref_points[qp],
            JxW=float(self.JxW[qp]),
            xyz=self.xyz[qp],
            dphi=self.dphi[qp],
            dxyz_dref=self.dxyz_dref[qp],
        )


@runtime_checkable
class BasisEvaluator(Protocol):
    """有限要素基底の評価器.

    適合クラス例:
      - Hex8Basis  (8 節点 6 面体、2×2×2 Gauss 積分)
    """

    n_nodes: int

    def evaluate(self, node_xyz: np.ndarray) -> QuadratureData:
        """要素節点座標から全積分点のデータを計算する.

        Args:
            node_xyz: (n_nodes, 3) 参照配置の節点座標

        Returns:
            QuadratureData
        """
        ...

    def mapping_jacobian(self, node_xyz: np.ndarray, ref_point: np.ndarray) -> np.ndarray:
        """任意の親要素座標での写像ヤコビアン (3,3) を返す.

        Returns:
            J: J[r, c] = ∂x_c/∂ξ_r
        """
        ...


@runtime_checkable
class TimeHistoryStore(Protocol):
    """時刻歴ストア.

    名前付きベクトル（例: "solution_0", "solution_1", "velocity_1"）を
    DOF 番号で読み書きする。ストレージの所有権はストア側にある。
    """

    def get_vector(self, name: str) -> np.ndarray:
        ...

    def set_vector(self, name: str, vec: np.ndarray) -> None:
        ...


@runtime_checkable
class TransientElementProtocol(Protocol):
    """1 階の過渡問題に対応する要素のインタフェース.

    残差モデル:  f_m(x, ẋ) + f_x(x) = 0

    適合クラス例:
      - Quad4ConductionElement（熱容量 + 熱伝導）
    """

    def set_solution(self, sol: np.ndarray) -> None:
        ...

    def set_velocity(self, vel: np.ndarray) -> None:
        ...

    def transient_terms(self, request_jacobian: bool) -> TransientTerms:
        """質量項・フラックス項とそのヤコビアンを返す."""
        ...
