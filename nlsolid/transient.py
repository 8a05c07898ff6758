"""1 階過渡問題の時間積分（1 次 Newmark / 一般化台形則）.

残差モデル:
  f_m(x, ẋ) + f_x(x) = 0

1 次 Newmark 近似:
  x_{n+1} = x_n + Δt·[(1-β)·ẋ_n + β·ẋ_{n+1}]
  → ẋ_{n+1} = (x_{n+1} - x_n - (1-β)·Δt·ẋ_n) / (β·Δt)

合成残差とヤコビアン（x_{n+1} について）:
  r = β·Δt·(f_m + f_x)
  J = ∂f_m/∂ẋ + β·Δt·(∂f_m/∂x + ∂f_x/∂x)

β = 1 で後退 Euler、β = 1/2 で Crank-Nicolson。

時刻歴ストアの名前:
  solution_0 / velocity_0 : 現在ステップ（未知）
  solution_1 / velocity_1 : 前ステップ（既知）
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from nlsolid.bc import apply_dirichlet
from nlsolid.core.element import TimeHistoryStore, TransientElementProtocol
from nlsolid.core.errors import TimeSchemeConfigError
from nlsolid.core.results import StepResult, TransientResidual, TransientTerms

# ====================================================================
# コンフィグ
# ====================================================================


def _check_scheme(beta: float, dt: float) -> None:
    if not np.isfinite(dt) or dt <= 0.0:
        raise TimeSchemeConfigError(f"dt は正値: {dt}")
    if not 0.0 < beta <= 1.0:
        raise TimeSchemeConfigError(f"beta は (0, 1]: {beta}")


@dataclass
class FirstOrderNewmarkConfig:
    """1 次 Newmark 法の設定.

    Attributes:
        dt: 時間刻み
        beta: Newmark β (0 < β ≤ 1、デフォルト 1.0 = 後退 Euler)
    """

    dt: float
    beta: float = 1.0

    def __post_init__(self) -> None:
        _check_scheme(self.beta, self.dt)


# ====================================================================
# 速度復元・残差合成（純関数）
# ====================================================================


def reconstruct_velocity(
    sol: np.ndarray,
    prev_sol: np.ndarray,
    prev_vel: np.ndarray,
    beta: float,
    dt: float,
) -> np.ndarray:
    """現在の解と前ステップの解・速度から現在の速度を復元する.

    ẋ = (x - x_prev - (1-β)·Δt·ẋ_prev) / (β·Δt)
    """
    _check_scheme(beta, dt)
    sol = np.asarray(sol, dtype=float)
    prev_sol = np.asarray(prev_sol, dtype=float)
    prev_vel = np.asarray(prev_vel, dtype=float)
    if not (sol.shape == prev_sol.shape == prev_vel.shape):
        raise ValueError(
            f"形状不一致: sol={sol.shape}, prev_sol={prev_sol.shape}, prev_vel={prev_vel.shape}"
        )
    return (sol - prev_sol - (1.0 - beta) * dt * prev_vel) / (beta * dt)


def combine_first_order_newmark(
    terms: TransientTerms,
    beta: float,
    dt: float,
    request_jacobian: bool,
) -> TransientResidual:
    """質量項とフラックス項を 1 次 Newmark 残差に合成する.

    Args:
        terms: 要素（または全体）の f_m, f_x とそのヤコビアン
        beta: Newmark β
        dt: 時間刻み
        request_jacobian: True でヤコビアンも合成

    Returns:
        TransientResidual(residual, jacobian)
    """
    f_m = np.asarray(terms.f_m, dtype=float)
    f_x = np.asarray(terms.f_x, dtype=float)
    if f_m.shape != f_x.shape:
        raise ValueError(f"f_m と f_x の形状不一致: {f_m.shape} vs {f_x.shape}")
    bdt = beta * dt
    residual = bdt * (f_m + f_x)

    jacobian = None
    if request_jacobian:
        jacobian = np.asarray(terms.f_m_jac_xdot, dtype=float) + bdt * (
            np.asarray(terms.f_m_jac, dtype=float) + np.asarray(terms.f_x_jac, dtype=float)
        )
    return TransientResidual(residual=residual, jacobian=jacobian)


# ====================================================================
# 時刻歴ストア
# ====================================================================


class TransientHistory:
    """解・速度の 2 レベル時刻歴（TimeHistoryStore 適合）.

    Args:
        ndof: 全体 DOF 数
        x0: 初期解（None = ゼロ）
        v0: 初期速度（None = ゼロ）
    """

    _NAMES = ("solution_0", "solution_1", "velocity_0", "velocity_1")

    def __init__(
        self,
        ndof: int,
        x0: np.ndarray | None = None,
        v0: np.ndarray | None = None,
    ) -> None:
        if ndof <= 0:
            raise ValueError(f"ndof は正値: {ndof}")
        self.ndof = ndof
        self._vectors = {name: np.zeros(ndof, dtype=float) for name in self._NAMES}
        if x0 is not None:
            self.set_vector("solution_0", x0)
            self.set_vector("solution_1", x0)
        if v0 is not None:
            self.set_vector("velocity_0", v0)
            self.set_vector("velocity_1", v0)

    def get_vector(self, name: str) -> np.ndarray:
        """名前付きベクトルのコピーを返す."""
        if name not in self._vectors:
            raise KeyError(f"未知の時刻歴ベクトル '{name}'。有効: {self._NAMES}")
        return self._vectors[name].copy()

    def set_vector(self, name: str, vec: np.ndarray) -> None:
        """名前付きベクトルを上書きする."""
        if name not in self._vectors:
            raise KeyError(f"未知の時刻歴ベクトル '{name}'。有効: {self._NAMES}")
        vec = np.asarray(vec, dtype=float)
        if vec.shape != (self.ndof,):
            raise ValueError(f"'{name}' は ({self.ndof},) が必要。実際: {vec.shape}")
        self._vectors[name] = vec.copy()

    def advance_time_step(self) -> None:
        """現在ステップを前ステップへ移す（次ステップの初期推定は現在値）."""
        self._vectors["solution_1"] = self._vectors["solution_0"].copy()
        self._vectors["velocity_1"] = self._vectors["velocity_0"].copy()


# ====================================================================
# 過渡ソルバー
# ====================================================================


@dataclass
class FirstOrderTransientResult:
    """1 階過渡解析の結果.

    Attributes:
        time: (n_steps+1,) 時刻配列
        solution: (n_steps+1, ndof) 解の履歴
        velocity: (n_steps+1, ndof) 速度の履歴
        iterations: 各ステップの Newton 反復回数
        converged: 全ステップが収束したか
    """

    time: np.ndarray
    solution: np.ndarray
    velocity: np.ndarray
    iterations: list[int] = field(default_factory=list)
    converged: bool = True


ElementEntry = tuple[TransientElementProtocol, np.ndarray]


class FirstOrderNewmarkTransientSolver:
    """1 次 Newmark 法による 1 階過渡問題の Newton ソルバー.

    Args:
        config: FirstOrderNewmarkConfig
        history: 時刻歴ストア（solution_0/1, velocity_0/1 を保持）
    """

    def __init__(self, config: FirstOrderNewmarkConfig, history: TimeHistoryStore) -> None:
        self.config = config
        self.history = history

    @property
    def ndof(self) -> int:
        return self.history.get_vector("solution_0").shape[0]

    def set_element_data(self, element: TransientElementProtocol, dof_indices: np.ndarray) -> None:
        """時刻歴から要素の解・速度を取り出して要素に設定する."""
        dofs = np.asarray(dof_indices, dtype=int)
        element.set_solution(self.history.get_vector("solution_0")[dofs])
        element.set_velocity(self.history.get_vector("velocity_0")[dofs])

    def _element_residual(
        self,
        element: TransientElementProtocol,
        sol: np.ndarray,
        vel: np.ndarray,
        request_jacobian: bool,
    ) -> TransientResidual:
        element.set_solution(sol)
        element.set_velocity(vel)
        terms = element.transient_terms(request_jacobian)
        return combine_first_order_newmark(
            terms, self.config.beta, self.config.dt, request_jacobian
        )

    def update_velocity(self) -> np.ndarray:
        """現在の解から velocity_0 を復元して書き戻す."""
        vel = reconstruct_velocity(
            self.history.get_vector("solution_0"),
            self.history.get_vector("solution_1"),
            self.history.get_vector("velocity_1"),
            self.config.beta,
            self.config.dt,
        )
        self.history.set_vector("velocity_0", vel)
        return vel

    def elem_calculations(
        self,
        element: TransientElementProtocol,
        dof_indices: np.ndarray,
        request_jacobian: bool,
    ) -> TransientResidual:
        """要素 1 個の合成残差・ヤコビアンを計算する."""
        dofs = np.asarray(dof_indices, dtype=int)
        return self._element_residual(
            element,
            self.history.get_vector("solution_0")[dofs],
            self.history.get_vector("velocity_0")[dofs],
            request_jacobian,
        )

    def assemble(
        self,
        elements: Sequence[ElementEntry],
        request_jacobian: bool,
    ) -> tuple[np.ndarray, sp.csr_matrix | None]:
        """全要素の合成残差とヤコビアン（CSR）を組み立てる.

        Args:
            elements: (要素, DOF インデックス) の列

        Returns:
            residual: (ndof,) 全体残差
            jac: 全体ヤコビアン（CSR）。未要求時は None。
        """
        sol = self.history.get_vector("solution_0")
        vel = self.history.get_vector("velocity_0")
        ndof = sol.shape[0]
        residual = np.zeros(ndof, dtype=float)
        rows: list[np.ndarray] = []
        cols: list[np.ndarray] = []
        vals: list[np.ndarray] = []

        for element, dof_indices in elements:
            dofs = np.asarray(dof_indices, dtype=int)
            r_e, j_e = self._element_residual(element, sol[dofs], vel[dofs], request_jacobian)
            np.add.at(residual, dofs, r_e)
            if request_jacobian:
                m = len(dofs)
                rows.append(np.repeat(dofs, m))
                cols.append(np.tile(dofs, m))
                vals.append(j_e.ravel())

        if not request_jacobian:
            return residual, None

        if rows:
            jac = sp.coo_matrix(
                (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
                shape=(ndof, ndof),
            ).tocsr()
        else:
            jac = sp.csr_matrix((ndof, ndof))
        return residual, jac

    def solve_time_step(
        self,
        elements: Sequence[ElementEntry],
        *,
        fixed_dofs: np.ndarray | None = None,
        fixed_values: float | np.ndarray = 0.0,
        max_iter: int = 20,
        tol: float = 1e-10,
        show_progress: bool = False,
    ) -> StepResult:
        """1 時間ステップ分の Newton 反復を行う.

        初期推定は solution_0 の現在値。収束判定は
        ||r|| ≤ tol·max(||r₀||, 1)（r₀ は初回残差）。

        Args:
            elements: (要素, DOF インデックス) の列
            fixed_dofs: 拘束 DOF（None = 拘束なし）
            fixed_values: 拘束値（スカラー or 同長配列）
            max_iter: 最大反復回数
            tol: 相対収束判定
            show_progress: 進捗表示

        Returns:
            StepResult(solution, converged, iterations, info)
        """
        if fixed_dofs is None:
            fixed = np.array([], dtype=int)
        else:
            fixed = np.asarray(fixed_dofs, dtype=int)

        x = self.history.get_vector("solution_0")
        if len(fixed) > 0:
            x[fixed] = fixed_values
            self.history.set_vector("solution_0", x)

        res_history: list[float] = []
        ref_norm = None
        converged = False
        it = 0

        for it in range(max_iter):
            self.update_velocity()
            residual, jac = self.assemble(elements, True)
            residual[fixed] = 0.0
            res_norm = float(np.linalg.norm(residual))
            res_history.append(res_norm)
            if ref_norm is None:
                ref_norm = max(res_norm, 1.0)

            if show_progress:
                print(f"  iter {it}, ||r|| = {res_norm:.3e}")

            if res_norm <= tol * ref_norm:
                converged = True
                break

            K_bc, r_bc = apply_dirichlet(jac, -residual, fixed, 0.0)
            dx = spla.spsolve(K_bc, r_bc)
            x = self.history.get_vector("solution_0") + dx
            self.history.set_vector("solution_0", x)

        if not converged and show_progress:
            print(f"  WARNING: time step did not converge in {max_iter} iterations.")

        self.update_velocity()
        return StepResult(
            solution=self.history.get_vector("solution_0"),
            converged=converged,
            iterations=it + 1,
            info={"residual_history": res_history},
        )

    def advance_time_step(self) -> None:
        """時刻歴を 1 ステップ進める."""
        if isinstance(self.history, TransientHistory):
            self.history.advance_time_step()
            return
        self.history.set_vector("solution_1", self.history.get_vector("solution_0"))
        self.history.set_vector("velocity_1", self.history.get_vector("velocity_0"))


def solve_first_order_transient(
    elements: Sequence[ElementEntry],
    history: TimeHistoryStore,
    config: FirstOrderNewmarkConfig,
    n_steps: int,
    *,
    fixed_dofs: np.ndarray | None = None,
    fixed_values: float | np.ndarray = 0.0,
    max_iter: int = 20,
    tol: float = 1e-10,
    show_progress: bool = False,
) -> FirstOrderTransientResult:
    """1 次 Newmark 法で n_steps ステップ分の過渡解析を行う.

    Args:
        elements: (要素, DOF インデックス) の列
        history: 初期解・初期速度を設定済みの時刻歴ストア
        config: FirstOrderNewmarkConfig
        n_steps: ステップ数

    Returns:
        FirstOrderTransientResult
    """
    if n_steps < 1:
        raise ValueError(f"n_steps は1以上: {n_steps}")
    solver = FirstOrderNewmarkTransientSolver(config, history)

    x0 = history.get_vector("solution_0")
    ndof = x0.shape[0]
    time_arr = np.linspace(0.0, config.dt * n_steps, n_steps + 1)
    x_hist = np.zeros((n_steps + 1, ndof), dtype=float)
    v_hist = np.zeros((n_steps + 1, ndof), dtype=float)
    x_hist[0] = x0
    v_hist[0] = history.get_vector("velocity_0")

    iterations: list[int] = []
    all_converged = True
    for n in range(n_steps):
        solver.advance_time_step()
        step = solver.solve_time_step(
            elements,
            fixed_dofs=fixed_dofs,
            fixed_values=fixed_values,
            max_iter=max_iter,
            tol=tol,
            show_progress=False,
        )
        iterations.append(step.iterations)
        x_hist[n + 1] = step.solution
        v_hist[n + 1] = history.get_vector("velocity_0")
        if show_progress:
            print(
                f"  Step {n + 1}/{n_steps}, t = {time_arr[n + 1]:.4e}, "
                f"iter = {step.iterations}, converged = {step.converged}"
            )
        if not step.converged:
            all_converged = False
            break

    return FirstOrderTransientResult(
        time=time_arr,
        solution=x_hist,
        velocity=v_hist,
        iterations=iterations,
        converged=all_converged,
    )
