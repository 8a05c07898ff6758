"""場関数（材料特性・温度場）の抽象インタフェース定義.

Protocol 定義:
  MatrixFieldFunction   — f(xyz, t) → (6,6) 構成則行列
  VectorFieldFunction   — f(xyz, t) → (6,) 熱膨張応力ベクトル C·α
  ScalarFieldFunction   — f(xyz, t) → float（温度・基準温度）
  BoundaryConditionProvider — 名前で場関数を引く境界条件

場関数は再入可能・副作用なしであること（要素ごとの並列評価を許すため）。
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class MatrixFieldFunction(Protocol):
    """行列値の場関数.

    適合クラス例:
      - ConstantMatrixField  (IsotropicSolidProperty.stiffness_field)
    """

    def __call__(self, xyz: np.ndarray, time: float) -> np.ndarray:
        ...


@runtime_checkable
class VectorFieldFunction(Protocol):
    """ベクトル値の場関数."""

    def __call__(self, xyz: np.ndarray, time: float) -> np.ndarray:
        ...


@runtime_checkable
class ScalarFieldFunction(Protocol):
    """スカラー値の場関数."""

    def __call__(self, xyz: np.ndarray, time: float) -> float:
        ...


@runtime_checkable
class BoundaryConditionProvider(Protocol):
    """名前付き場関数を提供する境界条件.

    例: bc.get("temperature"), bc.get("ref_temperature")
    未登録の名前は KeyError。
    """

    def get(self, name: str) -> Any:
        ...


@runtime_checkable
class SolidPropertyProtocol(Protocol):
    """3D 固体要素の断面（材料）特性カード.

    Attributes:
        stiffness_field: C(xyz, t) → (6,6)
        thermal_expansion_field: C·α_th(xyz, t) → (6,)
    """

    stiffness_field: MatrixFieldFunction
    thermal_expansion_field: VectorFieldFunction
