"""疎パターン付きひずみ-変位演算子.

B 行列の各行は少数の変位成分にしか依存しない（εxx は u のみ、γxy は u, v のみ）。
OperatorMatrix は (行, 変数) スロットごとに補間ベクトル φ を保持し、
非ゼロスロットだけを走査して積を計算する。

列の並び（節点インターリーブ、全体アセンブリの dof_indices と同じ）:
  [u1, v1, w1, u2, v2, w2, ...]   列番号 = 節点 * n_vars + 変数

例（線形ひずみ演算子）:
  B = OperatorMatrix(6, 3, 8)
  B.set_shape_function(0, 0, dN_dx)   # εxx = du/dx
  B.set_shape_function(3, 1, dN_dx)   # γxy = dv/dx + ...
"""

from __future__ import annotations

import numpy as np


class OperatorMatrix:
    """構造化された疎線形写像 B : R^(n_vars·n_interp) → R^(n_rows).

    Args:
        n_rows: 出力（ひずみ）成分数
        n_vars: 1 節点あたりの変数数
        n_interp: 補間関数（節点）数
    """

    def __init__(self, n_rows: int, n_vars: int, n_interp: int) -> None:
        if n_rows <= 0 or n_vars <= 0 or n_interp <= 0:
            raise ValueError(
                f"サイズは正値が必要: n_rows={n_rows}, n_vars={n_vars}, n_interp={n_interp}"
            )
        self.n_rows = n_rows
        self.n_vars = n_vars
        self.n_interp = n_interp
        self._slots: dict[tuple[int, int], np.ndarray] = {}

    @property
    def n_cols(self) -> int:
        return self.n_vars * self.n_interp

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_rows, self.n_cols)

    @property
    def pattern(self) -> list[tuple[int, int]]:
        """非ゼロスロット (行, 変数) の一覧."""
        return sorted(self._slots)

    def set_shape_function(self, row: int, var: int, phi: np.ndarray) -> None:
        """スロット (row, var) に補間ベクトル φ を設定する."""
        if not 0 <= row < self.n_rows:
            raise ValueError(f"row={row} が範囲外 (n_rows={self.n_rows})")
        if not 0 <= var < self.n_vars:
            raise ValueError(f"var={var} が範囲外 (n_vars={self.n_vars})")
        phi = np.asarray(phi, dtype=float).ravel()
        if phi.shape != (self.n_interp,):
            raise ValueError(f"phi は ({self.n_interp},) が必要。実際: {phi.shape}")
        self._slots[(row, var)] = phi.copy()

    # ------------------------------------------------------------------
    # 積
    # ------------------------------------------------------------------

    def apply(self, v: np.ndarray) -> np.ndarray:
        """B · v を返す (n_rows,)."""
        v = np.asarray(v, dtype=float)
        if v.shape != (self.n_cols,):
            raise ValueError(f"v は ({self.n_cols},) が必要。実際: {v.shape}")
        V = v.reshape(self.n_interp, self.n_vars)
        out = np.zeros(self.n_rows, dtype=float)
        for (r, j), phi in self._slots.items():
            out[r] += phi @ V[:, j]
        return out

    def apply_transpose(self, s: np.ndarray) -> np.ndarray:
        """Bᵀ · s を返す (n_cols,)."""
        s = np.asarray(s, dtype=float)
        if s.shape != (self.n_rows,):
            raise ValueError(f"s は ({self.n_rows},) が必要。実際: {s.shape}")
        out = np.zeros((self.n_interp, self.n_vars), dtype=float)
        for (r, j), phi in self._slots.items():
            out[:, j] += s[r] * phi
        return out.ravel()

    def left_multiply(self, A: np.ndarray) -> np.ndarray:
        """A · B を返す (m, n_cols)."""
        A = np.asarray(A, dtype=float)
        if A.ndim != 2 or A.shape[1] != self.n_rows:
            raise ValueError(f"A は (m, {self.n_rows}) が必要。実際: {A.shape}")
        m = A.shape[0]
        out = np.zeros((m, self.n_interp, self.n_vars), dtype=float)
        for (r, j), phi in self._slots.items():
            out[:, :, j] += np.outer(A[:, r], phi)
        return out.reshape(m, self.n_cols)

    def transpose_left_multiply(self, M: np.ndarray) -> np.ndarray:
        """Bᵀ · M を返す (n_cols, k)."""
        M = np.asarray(M, dtype=float)
        if M.ndim != 2 or M.shape[0] != self.n_rows:
            raise ValueError(f"M は ({self.n_rows}, k) が必要。実際: {M.shape}")
        k = M.shape[1]
        out = np.zeros((self.n_interp, self.n_vars, k), dtype=float)
        for (r, j), phi in self._slots.items():
            out[:, j, :] += np.outer(phi, M[r])
        return out.reshape(self.n_cols, k)

    def sandwich(self, D: np.ndarray, other: OperatorMatrix | None = None) -> np.ndarray:
        """Bᵀ · D · B_other を返す (n_cols, other.n_cols).

        other を省略すると Bᵀ D B。
        """
        if other is None:
            other = self
        return self.transpose_left_multiply(other.left_multiply(D))

    def to_dense(self) -> np.ndarray:
        """密行列 (n_rows, n_cols) に展開する."""
        return self.left_multiply(np.eye(self.n_rows))

    def __repr__(self) -> str:
        return (
            f"OperatorMatrix(n_rows={self.n_rows}, n_vars={self.n_vars}, "
            f"n_interp={self.n_interp}, nnz_slots={len(self._slots)})"
        )
