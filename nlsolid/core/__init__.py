"""nlsolid.core - 要素・場関数・時刻歴の抽象インタフェース定義・戻り値型.

Protocol 階層:
  BasisEvaluator            — 形状関数・積分点データ
  TransientElementProtocol  — 過渡解析用（transient_terms）
  TimeHistoryStore          — 解・速度の時刻歴
  MatrixFieldFunction 等    — 材料・温度の場関数
  BoundaryConditionProvider — 名前付き場関数の参照
"""

from nlsolid.core.constitutive import (
    BoundaryConditionProvider,
    MatrixFieldFunction,
    ScalarFieldFunction,
    SolidPropertyProtocol,
    VectorFieldFunction,
)
from nlsolid.core.element import (
    BasisEvaluator,
    QuadratureData,
    QuadraturePoint,
    TimeHistoryStore,
    TransientElementProtocol,
)
from nlsolid.core.errors import ElementGeometryError, TimeSchemeConfigError
from nlsolid.core.results import (
    DirichletResult,
    ElementResidual,
    Enhancement,
    Kinematics,
    SolidAssemblyResult,
    StepResult,
    TransientResidual,
    TransientTerms,
)
from nlsolid.core.state import N_INCOMPATIBLE_MODES, IncompatibleModeState

__all__ = [
    "BasisEvaluator",
    "QuadratureData",
    "QuadraturePoint",
    "TimeHistoryStore",
    "TransientElementProtocol",
    "BoundaryConditionProvider",
    "MatrixFieldFunction",
    "ScalarFieldFunction",
    "VectorFieldFunction",
    "SolidPropertyProtocol",
    "ElementGeometryError",
    "TimeSchemeConfigError",
    "ElementResidual",
    "Enhancement",
    "Kinematics",
    "SolidAssemblyResult",
    "StepResult",
    "TransientResidual",
    "TransientTerms",
    "DirichletResult",
    "IncompatibleModeState",
    "N_INCOMPATIBLE_MODES",
]
