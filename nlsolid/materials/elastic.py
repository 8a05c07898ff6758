from __future__ import annotations

from collections.abc import Callable

import numpy as np


def constitutive_3d(E: float, nu: float) -> np.ndarray:
    """3D 等方弾性テンソル D (6×6) を返す.

    Voigt 表記: σ = [σxx, σyy, σzz, τxy, τyz, τzx]
                ε = [εxx, εyy, εzz, γxy, γyz, γzx]

    Args:
        E: ヤング率
        nu: ポアソン比

    Returns:
        D: (6, 6) 弾性テンソル
    """
    if E <= 0.0:
        raise ValueError(f"E は正値: {E}")
    if not -1.0 < nu < 0.5:
        raise ValueError(f"nu は (-1, 0.5): {nu}")
    lam = E * nu / ((1.0 + nu) * (1.0 - 2.0 * nu))
    mu = E / (2.0 * (1.0 + nu))
    D = np.zeros((6, 6), dtype=float)
    # 法線成分
    D[0, 0] = D[1, 1] = D[2, 2] = lam + 2.0 * mu
    D[0, 1] = D[0, 2] = D[1, 0] = D[1, 2] = D[2, 0] = D[2, 1] = lam
    # せん断成分
    D[3, 3] = D[4, 4] = D[5, 5] = mu
    return D


def thermal_expansion_stress(D: np.ndarray, alpha: float) -> np.ndarray:
    """単位温度変化あたりの熱応力ベクトル C·{α, α, α, 0, 0, 0} を返す."""
    eps_th = np.array([alpha, alpha, alpha, 0.0, 0.0, 0.0], dtype=float)
    return np.asarray(D, dtype=float) @ eps_th


# ============================================================
# 場関数
# ============================================================


class ConstantMatrixField:
    """位置・時刻に依存しない行列場."""

    def __init__(self, value: np.ndarray) -> None:
        self._value = np.array(value, dtype=float)
        self._value.setflags(write=False)

    def __call__(self, xyz: np.ndarray, time: float) -> np.ndarray:
        return self._value


class ConstantVectorField(ConstantMatrixField):
    """位置・時刻に依存しないベクトル場."""


class ConstantScalarField:
    """位置・時刻に依存しないスカラー場."""

    def __init__(self, value: float) -> None:
        self.value = float(value)

    def __call__(self, xyz: np.ndarray, time: float) -> float:
        return self.value


class FunctionField:
    """任意の関数 f(xyz, t) を場関数としてラップする.

    Example::

        temp = FunctionField(lambda xyz, t: 20.0 + 5.0 * xyz[2])
    """

    def __init__(self, fn: Callable[[np.ndarray, float], object]) -> None:
        self._fn = fn

    def __call__(self, xyz: np.ndarray, time: float):
        return self._fn(np.asarray(xyz, dtype=float), float(time))


# ============================================================
# 断面特性カード
# ============================================================


class IsotropicSolidProperty:
    """3D 等方線形弾性 + 等方熱膨張の特性カード（SolidPropertyProtocol 適合）.

    Args:
        E: ヤング率
        nu: ポアソン比
        alpha: 線膨張係数
    """

    def __init__(self, E: float, nu: float, alpha: float = 0.0) -> None:
        self.E = E
        self.nu = nu
        self.alpha = alpha
        self._D = constitutive_3d(E, nu)
        self.stiffness_field = ConstantMatrixField(self._D)
        self.thermal_expansion_field = ConstantVectorField(thermal_expansion_stress(self._D, alpha))

    def tangent(self, strain: np.ndarray | None = None) -> np.ndarray:
        """弾性テンソル D (6×6) を返す."""
        return self._D


class FieldSolidProperty:
    """任意の場関数で与える特性カード（非一様材料用）.

    Args:
        stiffness_field: C(xyz, t) → (6,6)
        thermal_expansion_field: C·α(xyz, t) → (6,)。省略時はゼロ。
    """

    def __init__(self, stiffness_field, thermal_expansion_field=None) -> None:
        self.stiffness_field = stiffness_field
        if thermal_expansion_field is None:
            thermal_expansion_field = ConstantVectorField(np.zeros(6))
        self.thermal_expansion_field = thermal_expansion_field
