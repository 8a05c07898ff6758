"""非線形静解析ソルバー.

  - newton_raphson(): 荷重・強制変位の増分 + Newton-Raphson 法
  - 収束判定: 力ノルム / 変位ノルム / エネルギーノルム（いずれか 1 つで収束）
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from nlsolid.bc import apply_dirichlet

_TINY = 1e-30


@dataclass
class NonlinearResult:
    """非線形静解析の結果.

    Attributes:
        u: (ndof,) 最終変位ベクトル
        converged: 全ステップが収束したか
        n_load_steps: 実行した荷重ステップ数（非収束時は失敗したステップ番号）
        total_iterations: 全ステップ合計の Newton 反復回数
        load_history: 収束したステップの荷重係数 λ
        displacement_history: 収束したステップの変位
        residual_history: 収束したステップの最終残差ノルム
        iteration_history: 各ステップの Newton 反復回数
    """

    u: np.ndarray
    converged: bool
    n_load_steps: int
    total_iterations: int
    load_history: list[float] = field(default_factory=list)
    displacement_history: list[np.ndarray] = field(default_factory=list)
    residual_history: list[float] = field(default_factory=list)
    iteration_history: list[int] = field(default_factory=list)


@dataclass
class _StepOutcome:
    converged: bool
    iterations: int
    residual_norm: float
    reason: str


def _prescribed_totals(fixed_dofs: np.ndarray, fixed_values: float | np.ndarray) -> np.ndarray:
    if np.isscalar(fixed_values):
        return np.full(len(fixed_dofs), float(fixed_values))
    totals = np.asarray(fixed_values, dtype=float)
    if totals.shape != fixed_dofs.shape:
        raise ValueError(
            f"fixed_values の形状 {totals.shape} が fixed_dofs の形状 {fixed_dofs.shape} と一致しません。"
        )
    return totals


def _newton_step(
    u: np.ndarray,
    f_ext: np.ndarray,
    fixed_dofs: np.ndarray,
    assemble_tangent: Callable[[np.ndarray], sp.csr_matrix],
    assemble_internal_force: Callable[[np.ndarray], np.ndarray],
    f_ref: float | None,
    *,
    max_iter: int,
    tol_force: float,
    tol_disp: float,
    tol_energy: float,
) -> _StepOutcome:
    """1 荷重ステップの Newton 反復（u をその場で更新）.

    f_ref が None のとき（外力ゼロ）は初回残差ノルムを基準にする。
    """
    energy_ref: float | None = None
    res_norm = 0.0

    for it in range(max_iter):
        residual = f_ext - assemble_internal_force(u)
        residual[fixed_dofs] = 0.0
        res_norm = float(np.linalg.norm(residual))
        if f_ref is None:
            f_ref = res_norm if res_norm > _TINY else 1.0
        if res_norm / f_ref < tol_force:
            return _StepOutcome(True, it + 1, res_norm, f"||R||/||f|| = {res_norm / f_ref:.3e}")

        K_bc, r_bc = apply_dirichlet(assemble_tangent(u), residual, fixed_dofs, 0.0)
        du = spla.spsolve(K_bc, r_bc)

        energy = abs(float(du @ residual))
        if energy_ref is None:
            energy_ref = energy if energy > _TINY else 1.0
        u_norm = float(np.linalg.norm(u))
        du_norm = float(np.linalg.norm(du))
        u += du

        if u_norm > _TINY and du_norm / u_norm < tol_disp:
            return _StepOutcome(True, it + 1, res_norm, f"||du||/||u|| = {du_norm / u_norm:.3e}")
        if energy / energy_ref < tol_energy:
            return _StepOutcome(True, it + 1, res_norm, f"energy ratio = {energy / energy_ref:.3e}")

    return _StepOutcome(False, max_iter, res_norm, f"||R||/||f|| = {res_norm / f_ref:.3e}")


def newton_raphson(
    f_ext_total: np.ndarray,
    fixed_dofs: np.ndarray,
    assemble_tangent: Callable[[np.ndarray], sp.csr_matrix],
    assemble_internal_force: Callable[[np.ndarray], np.ndarray],
    *,
    n_load_steps: int = 10,
    max_iter: int = 30,
    tol_force: float = 1e-8,
    tol_disp: float = 1e-8,
    tol_energy: float = 1e-10,
    show_progress: bool = True,
    u0: np.ndarray | None = None,
    fixed_values: float | np.ndarray = 0.0,
) -> NonlinearResult:
    """荷重増分 + Newton-Raphson 法による非線形静解析.

    ステップ k（λ = k / n_load_steps）では外力 λ·f_ext と強制変位
    λ·fixed_values を与え、R(u) = λ·f_ext − f_int(u) = 0 を解く。
    拘束 DOF はステップ開始時に強制変位を代入し、Newton 増分はゼロとする。

    Args:
        f_ext_total: (ndof,) 最終外力ベクトル
        fixed_dofs: 拘束 DOF
        assemble_tangent: u → K_T(u)（CSR）
        assemble_internal_force: u → f_int(u)
        n_load_steps: 荷重ステップ数
        max_iter: ステップあたりの最大反復回数
        tol_force: ||R|| / ||f_ref|| の許容値（f_ext = 0 なら f_ref は初回残差）
        tol_disp: ||Δu|| / ||u|| の許容値
        tol_energy: |Δu·R| / |Δu₀·R₀| の許容値
        show_progress: ステップごとの収束状況を表示
        u0: 初期変位（None = ゼロ）
        fixed_values: 拘束 DOF の最終変位（スカラー or fixed_dofs と同長）

    Returns:
        NonlinearResult
    """
    if n_load_steps < 1:
        raise ValueError(f"n_load_steps は 1 以上: {n_load_steps}")
    f_ext_total = np.asarray(f_ext_total, dtype=float)
    fixed_dofs = np.asarray(fixed_dofs, dtype=int)
    fixed_total = _prescribed_totals(fixed_dofs, fixed_values)

    ndof = f_ext_total.shape[0]
    u = np.zeros(ndof, dtype=float) if u0 is None else np.array(u0, dtype=float)
    f_norm = float(np.linalg.norm(f_ext_total))
    f_ref = f_norm if f_norm > _TINY else None

    result = NonlinearResult(u=u, converged=True, n_load_steps=n_load_steps, total_iterations=0)

    for step in range(1, n_load_steps + 1):
        lam = step / n_load_steps
        u[fixed_dofs] = lam * fixed_total
        outcome = _newton_step(
            u,
            lam * f_ext_total,
            fixed_dofs,
            assemble_tangent,
            assemble_internal_force,
            f_ref,
            max_iter=max_iter,
            tol_force=tol_force,
            tol_disp=tol_disp,
            tol_energy=tol_energy,
        )
        result.total_iterations += outcome.iterations

        if not outcome.converged:
            if show_progress:
                print(
                    f"  WARNING: Step {step}/{n_load_steps} did not converge "
                    f"in {max_iter} iterations. {outcome.reason}"
                )
            result.converged = False
            result.n_load_steps = step
            return result

        if show_progress:
            print(f"  Step {step}/{n_load_steps}: {outcome.iterations} iter, {outcome.reason}")
        result.load_history.append(lam)
        result.displacement_history.append(u.copy())
        result.residual_history.append(outcome.residual_norm)
        result.iteration_history.append(outcome.iterations)

    return result
