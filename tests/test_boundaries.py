"""Tests for boundary conditions and their application."""

import numpy as np
import pytest
from scipy import sparse

from pybioclog.boundaries.base import (
    BoundaryConditions,
    Dirichlet,
    Inflow,
    Neumann,
    apply_dirichlet,
    flow_conditions,
    transport_conditions,
)
from pybioclog.core.config import BoundaryConfig
from pybioclog.geometry.mesh import BOTTOM_MARKER, TOP_MARKER, Mesh


def _laplacian(n=3):
    return sparse.diags([-np.ones(n - 1), 2.0 * np.ones(n), -np.ones(n - 1)], [-1, 0, 1]).tocsr()


class TestApplyDirichlet:
    def test_solution_honours_fixed_values(self):
        A = _laplacian(4)
        rhs = np.zeros(4)
        A_bc, rhs_bc = apply_dirichlet(A, rhs, np.array([0, 3]), np.array([1.0, 0.0]))
        x = np.linalg.solve(A_bc.toarray(), rhs_bc)
        np.testing.assert_allclose(x, [1.0, 2.0 / 3.0, 1.0 / 3.0, 0.0])

    def test_symmetry_preserved(self):
        A_bc, _ = apply_dirichlet(_laplacian(5), np.ones(5), np.array([0]), np.array([2.0]))
        dense = A_bc.toarray()
        np.testing.assert_allclose(dense, dense.T)
        np.testing.assert_allclose(dense[0], [1.0, 0.0, 0.0, 0.0, 0.0])

    def test_inputs_not_modified(self):
        A = _laplacian(3)
        rhs = np.ones(3)
        apply_dirichlet(A, rhs, np.array([1]), np.array([5.0]))
        np.testing.assert_allclose(A.toarray(), _laplacian(3).toarray())
        np.testing.assert_allclose(rhs, 1.0)

    def test_no_fixed_nodes(self):
        A_bc, rhs_bc = apply_dirichlet(_laplacian(3), np.ones(3), np.array([], dtype=int), np.array([]))
        np.testing.assert_allclose(A_bc.toarray(), _laplacian(3).toarray())
        np.testing.assert_allclose(rhs_bc, 1.0)


class TestBoundaryConditions:
    def test_of_type(self):
        bcs = BoundaryConditions([Dirichlet("h", 1.0), Neumann("h", 0.0), Inflow("c", 0.01)])
        assert len(bcs) == 3
        assert len(bcs.of_type(Dirichlet)) == 1
        assert len(bcs.of_type(Inflow)) == 1

    def test_dirichlet_data(self):
        mesh = Mesh.interval(10.0, 2)
        bcs = BoundaryConditions([Dirichlet("h", 5.0, BOTTOM_MARKER), Dirichlet("h", 1.0, TOP_MARKER)])
        nodes, values = bcs.dirichlet_data(mesh)
        np.testing.assert_array_equal(nodes, [0, 4])
        np.testing.assert_allclose(values, [5.0, 1.0])

    def test_later_conditions_win(self):
        mesh = Mesh.interval(10.0, 2)
        bcs = BoundaryConditions([Dirichlet("h", 5.0, TOP_MARKER)])
        bcs.add(Dirichlet("h", 7.0, TOP_MARKER))
        _, values = bcs.dirichlet_data(mesh)
        np.testing.assert_allclose(values, [7.0])

    def test_repr(self):
        assert "Dirichlet" in repr(BoundaryConditions([Dirichlet()]))


class TestFlowConditions:
    def test_saturating(self):
        bcs = flow_conditions(BoundaryConfig(), drying=False)
        dirichlet = bcs.of_type(Dirichlet)
        assert {bc.marker for bc in dirichlet} == {BOTTOM_MARKER, TOP_MARKER}
        assert not bcs.of_type(Neumann)

    def test_drying_closes_top(self):
        bcs = flow_conditions(BoundaryConfig(richards_top_flow_value=3.0), drying=True)
        (top,) = bcs.of_type(Neumann)
        assert top.marker == TOP_MARKER
        assert top.flux == 0.0
        (bottom,) = bcs.of_type(Dirichlet)
        assert bottom.value == pytest.approx(141.85)

    def test_top_flux(self):
        bcs = flow_conditions(
            BoundaryConfig(richards_fixed_at_top=False, richards_top_flow_value=-0.01), drying=False
        )
        (top,) = bcs.of_type(Neumann)
        assert top.flux == pytest.approx(-0.01)


class TestTransportConditions:
    def test_default_inflow_at_bottom(self):
        (bc,) = transport_conditions(BoundaryConfig())
        assert isinstance(bc, Inflow)
        assert bc.marker == BOTTOM_MARKER
        assert bc.concentration == 0.0

    def test_top_entry_converted_to_mg_per_cm3(self):
        (bc,) = transport_conditions(BoundaryConfig(transport_entry_point="top", transport_entry_value=10.0))
        assert bc.marker == TOP_MARKER
        assert bc.concentration == pytest.approx(0.01)

    def test_fixed_concentration(self):
        (bc,) = transport_conditions(
            BoundaryConfig(transport_entry_value=20.0, transport_fixed_concentration=True)
        )
        assert isinstance(bc, Dirichlet)
        assert bc.value == pytest.approx(0.02)
