"""Tests for the Richards and SUPG transport modules."""

import numpy as np
import pytest
from scipy.sparse.linalg import spsolve

from pybioclog.boundaries.base import BoundaryConditions, Inflow, flow_conditions
from pybioclog.core.config import BoundaryConfig, FlowFormulation
from pybioclog.core.exceptions import NumericalBreakdown
from pybioclog.fem.space import FunctionSpace
from pybioclog.geometry.mesh import BOTTOM_MARKER, Mesh
from pybioclog.physics.richards import Richards
from pybioclog.physics.transport import Transport, langevin
from pybioclog.simulation import fields as F
from pybioclog.time.schemes import ThetaScheme

K_SAT = 0.05


def _fields(mesh, pressure, conductivity=K_SAT, capacity=1e-3, moisture=0.3):
    fields = F.FieldSet(mesh.n_nodes)
    fields[F.PRESSURE].reset(pressure)
    fields[F.CONDUCTIVITY].reset(np.full(mesh.n_nodes, conductivity))
    fields[F.CAPACITY].reset(np.full(mesh.n_nodes, capacity))
    fields[F.MOISTURE_TOTAL].reset(np.full(mesh.n_nodes, moisture))
    fields[F.MOISTURE_FREE].reset(np.full(mesh.n_nodes, moisture))
    return fields


def _solve(system):
    A, rhs = system.constrained()
    return spsolve(A.tocsc(), rhs)


# ------------------------------------------------------------------
# Richards
# ------------------------------------------------------------------

class TestRichards:
    def _column(self, formulation=FlowFormulation.HEAD, theta=1.0):
        mesh = Mesh.interval(100.0, 4)
        space = FunctionSpace(mesh, facet_points=1)
        return mesh, Richards(space, ThetaScheme(theta), formulation)

    @pytest.mark.parametrize("formulation", list(FlowFormulation))
    @pytest.mark.parametrize("theta", [1.0, 0.5])
    def test_steady_linear_profile_reproduced(self, formulation, theta):
        mesh, richards = self._column(formulation, theta)
        z = mesh.elevation
        h = 1.0 - 1.4085 * z
        fields = _fields(mesh, h)
        bcs = flow_conditions(BoundaryConfig(), drying=False)
        system = richards.assemble(fields, 10.0, bcs)
        np.testing.assert_allclose(_solve(system), h, rtol=1e-10, atol=1e-10)

    def test_boundary_flows_of_steady_column(self):
        mesh, richards = self._column()
        h = 1.0 - 1.4085 * mesh.elevation
        top, bottom = richards.boundary_flows(_fields(mesh, h))
        assert top == pytest.approx(K_SAT * 0.4085)
        assert bottom == pytest.approx(-top)

    def test_hydrostatic_drying_column_is_at_rest(self):
        mesh, richards = self._column()
        h = 41.85 - mesh.elevation
        fields = _fields(mesh, h)
        system = richards.assemble(fields, 10.0, flow_conditions(BoundaryConfig(), drying=True))
        np.testing.assert_allclose(_solve(system), h, rtol=1e-10)
        top, bottom = richards.boundary_flows(fields)
        assert top == pytest.approx(0.0, abs=1e-14)
        assert bottom == pytest.approx(0.0, abs=1e-14)

    def test_neumann_flux_enters_load(self):
        mesh, richards = self._column()
        fields = _fields(mesh, 41.85 - mesh.elevation)
        closed = richards.assemble(fields, 1.0, flow_conditions(BoundaryConfig(), drying=True))
        open_top = richards.assemble(
            fields,
            1.0,
            flow_conditions(
                BoundaryConfig(richards_fixed_at_top=False, richards_top_flow_value=0.01),
                drying=False,
            ),
        )
        diff = open_top.rhs - closed.rhs
        np.testing.assert_allclose(diff[-1], -0.01)
        np.testing.assert_allclose(diff[:-1], 0.0)

    def test_matrix_is_symmetric(self):
        mesh, richards = self._column()
        fields = _fields(mesh, 1.0 - mesh.elevation)
        A, _ = richards.assemble(fields, 1.0, flow_conditions(BoundaryConfig(), drying=False)).constrained()
        dense = A.toarray()
        np.testing.assert_allclose(dense, dense.T)

    def test_validate_and_repr(self):
        _, richards = self._column()
        assert richards.validate() == []
        assert richards.dim == 1
        assert repr(richards) == "Richards(primary_field='pressure', dim=1, theta=1.0)"


# ------------------------------------------------------------------
# Transport
# ------------------------------------------------------------------

class TestLangevin:
    def test_zero(self):
        assert langevin(0.0) == 0.0

    def test_small_argument_series(self):
        np.testing.assert_allclose(langevin(1e-6), 1e-6 / 3.0)

    def test_matches_closed_form(self):
        x = np.array([0.1, 1.0, 5.0])
        np.testing.assert_allclose(langevin(x), 1.0 / np.tanh(x) - 1.0 / x)

    def test_large_argument(self):
        np.testing.assert_allclose(langevin(1e3), 1.0 - 1e-3)


class TestTransport:
    def _column(self, theta=0.5):
        mesh = Mesh.interval(10.0, 3)
        space = FunctionSpace(mesh, facet_points=2)
        return mesh, Transport(space, ThetaScheme(theta))

    def test_stabilization_parameters(self):
        mesh, transport = self._column()
        stab = transport.stabilization(_fields(mesh, -2.0 * mesh.elevation))
        np.testing.assert_allclose(stab.velocity_new[:, 0], K_SAT)
        dispersion = 0.1 * K_SAT + 1e-5
        peclet = 0.5 * 1.25 * K_SAT / dispersion
        np.testing.assert_allclose(stab.dispersion_new, dispersion)
        np.testing.assert_allclose(stab.peclet, peclet)
        np.testing.assert_allclose(stab.tau, 0.5 * langevin(peclet) * 1.25 / K_SAT)

    def test_velocity_floor(self):
        mesh, transport = self._column()
        stab = transport.stabilization(_fields(mesh, 5.0 - mesh.elevation))
        np.testing.assert_array_equal(stab.velocity_new, 0.0)
        np.testing.assert_array_equal(stab.peclet, 0.0)
        np.testing.assert_array_equal(stab.tau, 0.0)

    def test_starting_motion_uses_new_velocity(self):
        mesh, transport = self._column()
        fields = _fields(mesh, 5.0 - mesh.elevation)
        fields[F.PRESSURE].set(-2.0 * mesh.elevation)
        v_new, v_old = transport.velocities(fields)
        np.testing.assert_allclose(v_old, v_new)

    def test_velocity_uses_cell_mean_conductivity(self):
        mesh, transport = self._column()
        fields = _fields(mesh, -2.0 * mesh.elevation)
        conductivity = K_SAT * (1.0 + 0.05 * mesh.elevation)
        fields[F.CONDUCTIVITY].reset(conductivity)
        v_new, v_old = transport.velocities(fields)
        expected = conductivity[mesh.cells].mean(axis=1)
        np.testing.assert_allclose(v_new[:, 0], expected)
        np.testing.assert_allclose(v_old[:, 0], expected)

    def test_non_finite_velocity(self):
        mesh, transport = self._column()
        fields = _fields(mesh, -2.0 * mesh.elevation)
        conductivity = np.full(mesh.n_nodes, K_SAT)
        conductivity[3] = np.nan
        fields[F.CONDUCTIVITY].set(conductivity)
        with pytest.raises(NumericalBreakdown) as info:
            transport.velocities(fields)
        assert info.value.context.component == "transport"

    def test_closed_column_conserves_mass(self):
        mesh, transport = self._column()
        fields = _fields(mesh, 5.0 - mesh.elevation)
        fields[F.SUBSTRATE].reset(np.exp(mesh.elevation))
        before = transport.substrate_mass(fields)
        fields[F.SUBSTRATE].set(_solve(transport.assemble(fields, 100.0, BoundaryConditions())))
        after = transport.substrate_mass(fields)
        assert after == pytest.approx(before, rel=1e-10)

    def test_inflow_mass_balance(self):
        mesh, transport = self._column()
        fields = _fields(mesh, -2.0 * mesh.elevation)
        dt, c_in = 1.0, 0.01
        bcs = BoundaryConditions([Inflow("c", c_in, BOTTOM_MARKER)])
        c = _solve(transport.assemble(fields, dt, bcs))
        fields[F.SUBSTRATE].set(c)
        expected = dt * K_SAT * (c_in - transport.scheme.theta * c[-1])
        assert transport.substrate_mass(fields) == pytest.approx(expected, rel=1e-8)
        assert transport.substrate_mass(fields) > 0.0

    def test_decay_reduces_mass(self):
        mesh, transport = self._column()
        fields = _fields(mesh, 5.0 - mesh.elevation)
        fields[F.SUBSTRATE].reset(np.full(mesh.n_nodes, 0.02))
        rate = np.full(mesh.n_nodes, 1e-3)
        system = transport.assemble(fields, 10.0, BoundaryConditions(), reaction_rates=(rate, rate))
        fields[F.SUBSTRATE].set(_solve(system))
        # Crank-Nicolson factor; the rate acts on c, storage on θ_f c
        k = 10.0 * 1e-3 / 0.3
        factor = (1.0 - 0.5 * k) / (1.0 + 0.5 * k)
        np.testing.assert_allclose(fields[F.SUBSTRATE].new, 0.02 * factor, rtol=1e-10)

    def test_boundary_flux_of_uniform_concentration(self):
        mesh, transport = self._column(theta=1.0)
        fields = _fields(mesh, -2.0 * mesh.elevation)
        fields[F.SUBSTRATE].reset(np.full(mesh.n_nodes, 0.01))
        top, bottom = transport.boundary_flows(fields)
        assert top == pytest.approx(0.01 * K_SAT)
        assert bottom == pytest.approx(-0.01 * K_SAT)

    def test_name(self):
        _, transport = self._column()
        assert transport.name == "transport"
        assert transport.primary_field == F.SUBSTRATE
