"""例外型の定義.

組込み例外（ValueError / IndexError / NotImplementedError）を基本とし、
数値的な退化だけを識別できるよう ValueError のサブクラスを用意する。

  ElementGeometryError   — 特異・反転した要素形状（detJ ≈ 0, detJ < 0, T0 特異）
  TimeSchemeConfigError  — 時間積分パラメータ不正（β ∉ (0,1], Δt ≤ 0）
"""

from __future__ import annotations


class ElementGeometryError(ValueError):
    """要素形状が退化している（NaN/Inf を生成する前に検出）."""


class TimeSchemeConfigError(ValueError):
    """時間積分スキームの設定値が不正."""
