"""状態変数（要素内部変数）の管理.

非適合モード振幅 α は要素ごとに保持し、全体系には組み込まない。
全体 Newton 反復の各回で静的縮合により局所的に解き直す。
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

N_INCOMPATIBLE_MODES = 30


@dataclass
class IncompatibleModeState:
    """非適合モードの要素内部状態.

    入口: alpha = 0（初期推定）、converged = False
    出口: alpha = 縮合解、converged = True

    Attributes:
        alpha: (30,) 非適合モード振幅
        converged: 直近の局所求解が完了したか
        residual_norm: 局所方程式 r_α の残差ノルム（求解後）
    """

    alpha: np.ndarray = field(default_factory=lambda: np.zeros(N_INCOMPATIBLE_MODES))
    converged: bool = False
    residual_norm: float = 0.0

    def reset(self) -> None:
        """入口状態に戻す."""
        self.alpha = np.zeros(N_INCOMPATIBLE_MODES)
        self.converged = False
        self.residual_norm = 0.0

    def copy(self) -> IncompatibleModeState:
        """深いコピーを返す."""
        return IncompatibleModeState(
            alpha=self.alpha.copy(),
            converged=self.converged,
            residual_norm=self.residual_norm,
        )
