"""材料（弾性テンソル・場関数）と直方体メッシュのテスト."""

from __future__ import annotations

import numpy as np
import pytest

from nlsolid.materials.elastic import (
    ConstantMatrixField,
    FieldSolidProperty,
    FunctionField,
    IsotropicSolidProperty,
    constitutive_3d,
    thermal_expansion_stress,
)
from nlsolid.mesh import make_box_mesh


class TestConstitutive3D:
    def test_uniaxial_stress(self):
        """σ = D·ε で一軸応力状態 ε = σ/E·{1, −ν, −ν, 0, 0, 0}."""
        E, nu = 200.0, 0.3
        D = constitutive_3d(E, nu)
        eps = np.array([1.0, -nu, -nu, 0.0, 0.0, 0.0]) / E
        np.testing.assert_allclose(D @ eps, [1.0, 0.0, 0.0, 0.0, 0.0, 0.0], atol=1e-14)

    def test_shear_modulus(self):
        D = constitutive_3d(260.0, 0.3)
        np.testing.assert_allclose(np.diag(D)[3:], 100.0)

    def test_positive_definite(self):
        assert np.all(np.linalg.eigvalsh(constitutive_3d(1.0, 0.49)) > 0.0)

    @pytest.mark.parametrize("E, nu", [(0.0, 0.3), (-1.0, 0.3), (1.0, 0.5), (1.0, -1.0)])
    def test_invalid(self, E, nu):
        with pytest.raises(ValueError):
            constitutive_3d(E, nu)

    def test_thermal_expansion_stress(self):
        """等方材料: C·α の法線成分 = E·α / (1 − 2ν)."""
        E, nu, alpha = 1000.0, 0.25, 2e-5
        c_alpha = thermal_expansion_stress(constitutive_3d(E, nu), alpha)
        np.testing.assert_allclose(c_alpha[:3], E * alpha / (1.0 - 2.0 * nu))
        np.testing.assert_array_equal(c_alpha[3:], 0.0)


class TestFields:
    def test_constant_matrix_read_only(self):
        field = ConstantMatrixField(np.eye(6))
        value = field(np.zeros(3), 0.0)
        with pytest.raises(ValueError):
            value[0, 0] = 2.0

    def test_function_field_arguments(self):
        field = FunctionField(lambda xyz, t: xyz[0] + 10.0 * t)
        assert field([1, 2, 3], 2) == pytest.approx(21.0)

    def test_isotropic_property_fields(self):
        prop = IsotropicSolidProperty(1000.0, 0.3, 1e-3)
        xyz = np.array([0.3, 0.1, 0.2])
        np.testing.assert_allclose(prop.stiffness_field(xyz, 0.0), constitutive_3d(1000.0, 0.3))
        np.testing.assert_allclose(prop.tangent(), constitutive_3d(1000.0, 0.3))
        assert prop.thermal_expansion_field(xyz, 0.0)[0] == pytest.approx(1000.0e-3 / 0.4)

    def test_field_property_default_expansion(self):
        prop = FieldSolidProperty(ConstantMatrixField(constitutive_3d(1.0, 0.2)))
        np.testing.assert_array_equal(prop.thermal_expansion_field(np.zeros(3), 0.0), 0.0)


class TestBoxMesh:
    def test_counts(self):
        mesh = make_box_mesh(2.0, 1.0, 3.0, 2, 1, 3)
        assert mesh.n_nodes == 3 * 2 * 4
        assert mesh.n_elems == 6
        assert mesh.ndof == 72
        assert mesh.shape == (2, 1, 3)

    def test_element_volumes_positive(self):
        """各要素の節点 0→1, 0→3, 0→4 が右手系."""
        mesh = make_box_mesh(1.0, 2.0, 1.0, 2, 2, 2, shear_xy=0.4)
        for elem in mesh.conn:
            x = mesh.nodes[elem]
            vol = np.dot(np.cross(x[1] - x[0], x[3] - x[0]), x[4] - x[0])
            assert vol == pytest.approx(0.5 * 1.0 * 0.5)

    def test_nodes_on_plane_and_dofs(self):
        mesh = make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1)
        face = mesh.nodes_on_plane(2, 1.0)
        np.testing.assert_array_equal(face, [4, 5, 6, 7])
        np.testing.assert_array_equal(mesh.dofs(face[:2], (2,)), [14, 17])
        np.testing.assert_array_equal(mesh.dofs([1]), [3, 4, 5])

    def test_invalid(self):
        with pytest.raises(ValueError):
            make_box_mesh(1.0, 1.0, 1.0, 0, 1, 1)
        with pytest.raises(ValueError):
            make_box_mesh(1.0, -1.0, 1.0, 1, 1, 1)
        with pytest.raises(ValueError):
            make_box_mesh(1.0, 1.0, 1.0, 1, 1, 1).nodes_on_plane(3, 0.0)
