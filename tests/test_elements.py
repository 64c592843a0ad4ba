"""Unit tests for quadrature, shape functions, bulk elements and face binding.

Tests
-----
    TestGaussLegendre:   weight sums, polynomial exactness, knot ordering
    TestLagrangeShape:   partition of unity, Kronecker property, derivatives
    TestQElement:        Eulerian derivatives at arbitrary local coordinates
    TestFaceBinding:     face nodes, bulk re-embedding, outward normals
    TestConfiguration:   capability check, default construction, copying,
                         destroyed bulk element
    TestLocalEqnNumbers: pinned values are excluded from the local numbering

Usage
-----
    python -m pytest tests/test_elements.py -v
"""

import copy
import gc
import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from fourier_helmholtz.elements import (
    FourierDecomposedHelmholtzElement,
    Node,
    QElement,
    lagrange_shape,
)
from fourier_helmholtz.errors import ConfigurationError
from fourier_helmholtz.flux_elements import FluxElement
from fourier_helmholtz.mesh import assign_eqn_numbers, build_rectangular_mesh
from fourier_helmholtz.power_monitor import PowerMonitorElement
from fourier_helmholtz.quadrature import GaussLegendre


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
def _make_quad(corners, cls=FourierDecomposedHelmholtzElement):
    """Bilinear element from corners ordered (s0,s1) = (-,-), (+,-), (-,+), (+,+)."""
    return cls([Node(c) for c in corners], nnode_1d=2)


@pytest.fixture
def unit_element():
    """Bilinear element on [1, 2] x [0, 1]."""
    return _make_quad([(1.0, 0.0), (2.0, 0.0), (1.0, 1.0), (2.0, 1.0)])


@pytest.fixture
def distorted_element():
    """Non-affine bilinear element."""
    return _make_quad([(1.0, 0.0), (2.0, 0.1), (0.9, 1.0), (2.3, 1.4)])


# ---------------------------------------------------------------------------
# Quadrature
# ---------------------------------------------------------------------------
class TestGaussLegendre:
    @pytest.mark.parametrize("dim", [1, 2])
    def test_weights_sum_to_reference_volume(self, dim):
        rule = GaussLegendre.build(3, dim)
        assert rule.nweight == 3 ** dim
        assert np.sum(rule.weights) == pytest.approx(2.0 ** dim)

    def test_exact_for_degree_2n_minus_1(self):
        """Three points integrate s^5 + s^4 exactly: 0 + 2/5."""
        rule = GaussLegendre.build(3, 1)
        s = rule.knots[:, 0]
        assert np.sum(rule.weights * (s ** 5 + s ** 4)) == pytest.approx(0.4, abs=1e-14)

    def test_first_coordinate_fastest(self):
        rule = GaussLegendre.build(2, 2)
        assert rule.knots[0, 1] == rule.knots[1, 1]
        assert rule.knots[0, 0] != rule.knots[1, 0]

    def test_invalid_point_count(self):
        with pytest.raises(ValueError):
            GaussLegendre.build(0)


# ---------------------------------------------------------------------------
# Shape functions
# ---------------------------------------------------------------------------
class TestLagrangeShape:
    @pytest.mark.parametrize("nnode_1d", [2, 3])
    @pytest.mark.parametrize("dim", [1, 2])
    def test_partition_of_unity(self, nnode_1d, dim):
        s = np.full(dim, 0.37)
        psi, dpsi = lagrange_shape(s, nnode_1d)
        assert psi.shape == (nnode_1d ** dim,)
        assert dpsi.shape == (nnode_1d ** dim, dim)
        assert np.sum(psi) == pytest.approx(1.0)
        np.testing.assert_allclose(np.sum(dpsi, axis=0), 0.0, atol=1e-14)

    def test_kronecker_at_nodes(self):
        nodes_1d = [-1.0, 0.0, 1.0]
        for j, s1 in enumerate(nodes_1d):
            for i, s0 in enumerate(nodes_1d):
                psi, _ = lagrange_shape([s0, s1], 3)
                expected = np.zeros(9)
                expected[i + 3 * j] = 1.0
                np.testing.assert_allclose(psi, expected, atol=1e-14)

    def test_derivative_matches_finite_difference(self):
        s = np.array([0.2, -0.4])
        _, dpsi = lagrange_shape(s, 3)
        h = 1e-6
        for d in range(2):
            e = np.zeros(2)
            e[d] = h
            fd = (lagrange_shape(s + e, 3)[0] - lagrange_shape(s - e, 3)[0]) / (2 * h)
            np.testing.assert_allclose(dpsi[:, d], fd, atol=1e-8)

    def test_unsupported_order(self):
        with pytest.raises(ValueError):
            lagrange_shape([0.0], 4)


# ---------------------------------------------------------------------------
# Bulk element geometry
# ---------------------------------------------------------------------------
class TestQElement:
    def test_gradient_of_bilinear_field(self, distorted_element):
        """dshape_eulerian reproduces grad(a + b r + c z) on a distorted element."""
        a, b, c = 0.3 + 0.1j, 1.5 - 2.0j, -0.7 + 0.4j
        for node in distorted_element.nodes:
            u = a + b * node.x[0] + c * node.x[1]
            node.set_value(0, u.real)
            node.set_value(1, u.imag)

        for s in ([0.0, 0.0], [0.3, -0.8], [1.0, 0.25], [-1.0, -1.0]):
            np.testing.assert_allclose(
                distorted_element.interpolated_dudx(s), [b, c], atol=1e-12,
            )
            x = distorted_element.interpolated_x(s)
            assert distorted_element.interpolated_u(s) == pytest.approx(a + b * x[0] + c * x[1])

    def test_pin_and_unpin(self, unit_element):
        node = unit_element.nodes[0]
        node.pin(1)
        assert node.is_pinned(1)
        assert node.eqn_number(1) < 0
        node.unpin(1)
        assert not node.is_pinned(1)

    def test_interpolated_x_at_corner(self, unit_element):
        np.testing.assert_allclose(unit_element.interpolated_x([1.0, 1.0]), [2.0, 1.0])

    def test_jacobian_determinant(self, unit_element):
        assert unit_element.J_eulerian([0.1, 0.2]) == pytest.approx(0.25)

    def test_singular_mapping_gives_nan(self):
        """Collapsed edge: derivatives become NaN instead of raising."""
        elem = _make_quad([(1.0, 0.0), (1.0, 0.0), (1.0, 1.0), (2.0, 1.0)])
        _, dpsi_dx, det = elem.dshape_eulerian([0.0, -1.0])
        assert det == 0.0
        assert np.all(np.isnan(dpsi_dx))

    def test_wrong_node_count(self):
        with pytest.raises(ValueError):
            FourierDecomposedHelmholtzElement([Node((0.0, 0.0))] * 3, nnode_1d=2)


# ---------------------------------------------------------------------------
# Face binding
# ---------------------------------------------------------------------------
class TestFaceBinding:
    @pytest.mark.parametrize("face_index,expected_normal,expected_nodes", [
        (1, [1.0, 0.0], [(2.0, 0.0), (2.0, 1.0)]),
        (-1, [-1.0, 0.0], [(1.0, 0.0), (1.0, 1.0)]),
        (2, [0.0, 1.0], [(1.0, 1.0), (2.0, 1.0)]),
        (-2, [0.0, -1.0], [(1.0, 0.0), (2.0, 0.0)]),
    ])
    def test_faces_of_unit_element(self, unit_element, face_index, expected_normal, expected_nodes):
        face = FluxElement(unit_element, face_index)
        assert face.nnode == 2
        assert face.dim == 1
        np.testing.assert_allclose(face.nodal_positions(), expected_nodes)
        np.testing.assert_allclose(face.outer_unit_normal([0.3]), expected_normal, atol=1e-14)
        assert face.J_eulerian([0.3]) == pytest.approx(0.5)

    def test_nodes_are_shared_with_bulk(self, unit_element):
        face = FluxElement(unit_element, 1)
        assert face.nodes[0] is unit_element.nodes[1]
        assert face.nodes[1] is unit_element.nodes[3]

    @pytest.mark.parametrize("face_index", [1, -1, 2, -2])
    def test_bulk_coordinate_lands_on_face(self, distorted_element, face_index):
        """Re-embedded coordinate maps to the same Eulerian point."""
        face = PowerMonitorElement(distorted_element, face_index)
        for s in (-1.0, -0.3, 0.6, 1.0):
            s_bulk = face.local_coordinate_in_bulk([s])
            assert s_bulk.shape == (2,)
            np.testing.assert_allclose(
                distorted_element.interpolated_x(s_bulk), face.interpolated_x([s]), atol=1e-14,
            )

    def test_normal_on_distorted_face_is_unit_and_outward(self, distorted_element):
        face = PowerMonitorElement(distorted_element, 1)
        s = [0.2]
        n = face.outer_unit_normal(s)
        assert np.linalg.norm(n) == pytest.approx(1.0)

        # Perpendicular to the face tangent
        _, dpsi = face.dshape_local(s)
        tangent = dpsi[:, 0] @ face.nodal_positions()
        assert n @ tangent == pytest.approx(0.0, abs=1e-12)

        # Points away from the element centre
        centre = distorted_element.interpolated_x([0.0, 0.0])
        assert n @ (face.interpolated_x(s) - centre) > 0.0

    def test_quadratic_face(self):
        mesh = build_rectangular_mesh(0.0, 1.0, 0.0, 2.0, 1, 1, nnode_1d=3)
        face = FluxElement(mesh.elements[0], 2)
        assert face.nnode == 3
        assert face.integral.nweight == 3
        np.testing.assert_allclose(face.interpolated_x([0.0]), [0.5, 2.0])

    def test_invalid_face_index(self, unit_element):
        with pytest.raises(ConfigurationError):
            FluxElement(unit_element, 3)


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------
class TestConfiguration:
    @pytest.mark.parametrize("cls", [FluxElement, PowerMonitorElement])
    def test_empty_constructor_is_broken(self, cls):
        with pytest.raises(ConfigurationError, match="empty constructor"):
            cls()

    @pytest.mark.parametrize("cls", [FluxElement, PowerMonitorElement])
    def test_bulk_without_helmholtz_equations(self, cls):
        plain = _make_quad([(1.0, 0.0), (2.0, 0.0), (1.0, 1.0), (2.0, 1.0)], cls=QElement)
        with pytest.raises(ConfigurationError, match="FourierDecomposedHelmholtzEquations") as exc:
            cls(plain, 1)
        assert exc.value.element_class == cls.__name__

    def test_bulk_without_capability_query(self):
        with pytest.raises(ConfigurationError):
            FluxElement(object(), 1)

    def test_u_index_read_from_bulk(self):
        nodes = [Node(c, n_value=4) for c in [(1, 0), (2, 0), (1, 1), (2, 1)]]
        bulk = FourierDecomposedHelmholtzElement(nodes, 2, u_index=(2, 3))
        face = FluxElement(bulk, -1)
        assert face.u_index_fourier_decomposed_helmholtz() == (2, 3)

    def test_copy_is_refused(self, unit_element):
        face = FluxElement(unit_element, 1)
        with pytest.raises(ConfigurationError):
            copy.copy(face)
        with pytest.raises(ConfigurationError):
            copy.deepcopy(face)

    def test_no_rebinding(self, unit_element):
        face = FluxElement(unit_element, 1)
        with pytest.raises(ConfigurationError):
            unit_element.build_face_element(-1, face)

    def test_destroyed_bulk_element(self):
        bulk = _make_quad([(1.0, 0.0), (2.0, 0.0), (1.0, 1.0), (2.0, 1.0)])
        monitor = PowerMonitorElement(bulk, 1)
        del bulk
        gc.collect()
        with pytest.raises(ConfigurationError, match="not attached"):
            monitor.global_power_contribution()


# ---------------------------------------------------------------------------
# Local equation numbering
# ---------------------------------------------------------------------------
class TestLocalEqnNumbers:
    def test_pinned_values_are_negative(self, unit_element):
        face = FluxElement(unit_element, 1)
        face.nodes[0].pin(1)
        assign_eqn_numbers(unit_element.nodes)
        face.assign_local_eqn_numbers()

        assert face.ndof() == 3
        assert face.nodal_local_eqn(0, 1) < 0
        assert face.nodal_local_eqn(0, 0) >= 0
        locals_ = [face.nodal_local_eqn(l, i) for l in range(2) for i in range(2)]
        assert sorted(e for e in locals_ if e >= 0) == [0, 1, 2]

    def test_global_mapping(self, unit_element):
        face = FluxElement(unit_element, 1)
        assign_eqn_numbers(unit_element.nodes)
        face.assign_local_eqn_numbers()
        # Face nodes are bulk nodes 1 and 3 -> global equations 2, 3, 6, 7
        assert sorted(face.global_eqn_numbers.tolist()) == [2, 3, 6, 7]
        assert face.eqn_number(face.nodal_local_eqn(1, 1)) == 7
