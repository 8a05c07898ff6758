"""HEX8 非線形固体の静解析（荷重増分 Newton-Raphson）のテスト.

テスト構成:
- TestAssembly: 全体アセンブリ（CSR、対称性、要素和との一致）
- TestUniaxialTension: 大ひずみ一軸引張（St.Venant-Kirchhoff の解析解）
- TestThermalExpansion: 自由熱膨張（λ + λ²/2 = α·ΔT）
"""

from __future__ import annotations

import numpy as np
import pytest
import scipy.sparse as sp

from nlsolid.assembly import (
    SolidAssembler,
    assemble_solid_system,
    make_nl_assembler_hex8,
)
from nlsolid.bc import BoundaryCondition
from nlsolid.elements.solid3d import StructuralElement3D
from nlsolid.materials.elastic import ConstantScalarField, IsotropicSolidProperty
from nlsolid.mesh import make_box_mesh
from nlsolid.solver import newton_raphson

E_MOD = 1000.0
NU = 0.3


def _symmetry_fixed(mesh) -> np.ndarray:
    """x=0 面の u、y=0 面の v、z=0 面の w を拘束（対称条件）."""
    return np.concatenate(
        [
            mesh.dofs(mesh.nodes_on_plane(0, 0.0), (0,)),
            mesh.dofs(mesh.nodes_on_plane(1, 0.0), (1,)),
            mesh.dofs(mesh.nodes_on_plane(2, 0.0), (2,)),
        ]
    )


class TestAssembly:
    def test_matches_single_element(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1)
        prop = IsotropicSolidProperty(E_MOD, NU)
        u = 0.02 * np.random.default_rng(0).standard_normal(mesh.ndof)
        res = assemble_solid_system(mesh.nodes, mesh.conn, prop, u)
        elem = StructuralElement3D(mesh.nodes[mesh.conn[0]], prop)
        elem.set_solution(u[elem.dof_indices(mesh.conn[0])])
        f, K, _ = elem.internal_residual(True)
        dofs = elem.dof_indices(mesh.conn[0])
        np.testing.assert_allclose(res.f_int[dofs], f, atol=1e-12)
        np.testing.assert_allclose(res.K_T.toarray()[np.ix_(dofs, dofs)], K, atol=1e-10)

    def test_csr_and_symmetric(self):
        mesh = make_box_mesh(2.0, 1.0, 1.0, 2, 1, 2)
        res = assemble_solid_system(mesh.nodes, mesh.conn, IsotropicSolidProperty(E_MOD, NU))
        assert sp.issparse(res.K_T) and res.K_T.format == "csr"
        K = res.K_T.toarray()
        np.testing.assert_allclose(K, K.T, atol=1e-10 * np.abs(K).max())
        np.testing.assert_array_equal(res.f_int, np.zeros(mesh.ndof))

    def test_internal_force_only(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 2)
        assembler = SolidAssembler(mesh.nodes, mesh.conn, IsotropicSolidProperty(E_MOD, NU))
        res = assembler.assemble(np.zeros(mesh.ndof), False)
        assert res.K_T is None

    def test_callbacks_share_evaluation(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 2)
        prop = IsotropicSolidProperty(E_MOD, NU)
        f_fn, K_fn = make_nl_assembler_hex8(mesh.nodes, mesh.conn, prop)
        u = 0.01 * mesh.nodes.ravel()
        f1 = f_fn(u)
        K1 = K_fn(u)
        f1[:] = 0.0
        assert np.abs(f_fn(u)).max() > 0.0
        assert K_fn(u) is K1
        assert K_fn(2.0 * u) is not K1

    def test_bad_connectivity(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1)
        with pytest.raises(ValueError):
            SolidAssembler(mesh.nodes, mesh.conn[:, :4], IsotropicSolidProperty(E_MOD, NU))
        with pytest.raises(IndexError):
            SolidAssembler(mesh.nodes, mesh.conn + 100, IsotropicSolidProperty(E_MOD, NU))

    def test_wrong_displacement_size(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1)
        assembler = SolidAssembler(mesh.nodes, mesh.conn, IsotropicSolidProperty(E_MOD, NU))
        with pytest.raises(ValueError):
            assembler.assemble(np.zeros(5))


@pytest.mark.slow
class TestUniaxialTension:
    """強制変位による一軸引張（側面は自由）.

    St.Venant-Kirchhoff:
      E₁ = λ₁ + λ₁²/2,  E₂ = −ν·E₁,  λ₂ = √(1 + 2E₂) − 1
      反力 = (1 + λ₁)·E·E₁·A₀
    """

    @pytest.mark.parametrize("condense", [True, False])
    def test_homogeneous_solution(self, condense):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 2, 2, 2)
        prop = IsotropicSolidProperty(E_MOD, NU)
        f_fn, K_fn = make_nl_assembler_hex8(
            mesh.nodes, mesh.conn, prop, condense_incompatible_modes=condense
        )
        lam1 = 0.1
        pulled = mesh.dofs(mesh.nodes_on_plane(0, 1.0), (0,))
        sym = _symmetry_fixed(mesh)
        fixed = np.concatenate([sym, pulled])
        values = np.concatenate([np.zeros(len(sym)), np.full(len(pulled), lam1)])

        result = newton_raphson(
            np.zeros(mesh.ndof),
            fixed,
            K_fn,
            f_fn,
            n_load_steps=2,
            tol_force=1e-10,
            tol_disp=1e-12,
            tol_energy=1e-20,
            show_progress=False,
            fixed_values=values,
        )
        assert result.converged

        E1 = lam1 + 0.5 * lam1**2
        lam2 = np.sqrt(1.0 - 2.0 * NU * E1) - 1.0
        u_exact = (mesh.nodes * np.array([lam1, lam2, lam2])).ravel()
        np.testing.assert_allclose(result.u, u_exact, atol=1e-8)

        reaction = f_fn(result.u)[pulled].sum()
        assert reaction == pytest.approx((1.0 + lam1) * E_MOD * E1, rel=1e-6)

    def test_load_history(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1)
        prop = IsotropicSolidProperty(E_MOD, NU)
        f_fn, K_fn = make_nl_assembler_hex8(mesh.nodes, mesh.conn, prop)
        pulled = mesh.dofs(mesh.nodes_on_plane(0, 1.0), (0,))
        sym = _symmetry_fixed(mesh)
        values = np.concatenate([np.zeros(len(sym)), np.full(len(pulled), 0.05)])
        result = newton_raphson(
            np.zeros(mesh.ndof),
            np.concatenate([sym, pulled]),
            K_fn,
            f_fn,
            n_load_steps=4,
            show_progress=False,
            fixed_values=values,
        )
        assert result.converged
        assert result.load_history == pytest.approx([0.25, 0.5, 0.75, 1.0])
        assert len(result.displacement_history) == 4
        assert len(result.iteration_history) == 4
        assert result.total_iterations == sum(result.iteration_history)


@pytest.mark.slow
class TestThermalExpansion:
    """自由熱膨張: 均一温度上昇で E = α·ΔT·I."""

    def test_free_expansion(self):
        alpha, dT = 1e-3, 100.0
        mesh = make_box_mesh(1.0, 1.0, 1.0, 2, 2, 2)
        prop = IsotropicSolidProperty(E_MOD, NU, alpha)
        bc = BoundaryCondition(
            temperature=ConstantScalarField(20.0 + dT),
            ref_temperature=ConstantScalarField(20.0),
        )
        f_fn, K_fn = make_nl_assembler_hex8(mesh.nodes, mesh.conn, prop, thermal_bc=bc)
        result = newton_raphson(
            np.zeros(mesh.ndof),
            _symmetry_fixed(mesh),
            K_fn,
            f_fn,
            n_load_steps=1,
            tol_force=1e-10,
            tol_disp=1e-12,
            tol_energy=1e-20,
            show_progress=False,
        )
        assert result.converged
        lam = np.sqrt(1.0 + 2.0 * alpha * dT) - 1.0
        np.testing.assert_allclose(result.u, lam * mesh.nodes.ravel(), atol=1e-9)
