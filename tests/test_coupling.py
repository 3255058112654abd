"""Tests for the Picard coupling of flow and transport."""

import numpy as np
import pytest

from pybioclog.core.config import Parameters
from pybioclog.core.exceptions import SolverDivergence
from pybioclog.coupling.picard import (
    FLOW_TOLERANCE,
    TRANSPORT_TEST_TOLERANCE,
    CoupledPicardSolver,
    relative_change,
)
from pybioclog.simulation import fields as F
from pybioclog.simulation.driver import SimulationDriver
from pybioclog.simulation.phases import Phase


def _make_driver(**groups):
    data = {"geometry": {"refinement_level": 3}}
    data.update(groups)
    driver = SimulationDriver(Parameters.from_dict(data))
    driver.setup()
    return driver


def _test_mode_driver(**time_stepping):
    return _make_driver(
        equations={"test_function_transport": True},
        initial_conditions={"substrate": 10.0},
        time_stepping=time_stepping,
    )


class TestRelativeChange:
    def test_values(self):
        assert relative_change(1.0, 2.0) == pytest.approx(0.5)
        assert relative_change(2.0, 2.0) == 0.0

    def test_zero_norms(self):
        assert relative_change(0.0, 0.0) == 0.0
        assert relative_change(1.0, 0.0) == float("inf")


class TestConvergenceCriteria:
    def test_coupled(self):
        picard = _make_driver().picard
        assert picard.converged(0.5 * FLOW_TOLERANCE, 1e-3)
        assert not picard.converged(2.0 * FLOW_TOLERANCE, 0.0)
        assert not picard.converged(0.0, 2e-3)

    def test_test_mode(self):
        picard = _test_mode_driver().picard
        assert picard.converged(1.0, 0.5 * TRANSPORT_TEST_TOLERANCE)
        assert not picard.converged(0.0, 1e-6)

    def test_transporting(self):
        driver = _make_driver()
        assert not driver.picard.transporting(driver.ctx)
        driver.ctx.phases.phase = Phase.TRANSPORTING
        assert driver.picard.transporting(driver.ctx)
        assert _test_mode_driver().picard.transporting(driver.ctx)

    def test_repr(self):
        assert isinstance(_make_driver().picard, CoupledPicardSolver)
        assert "test_mode=False" in repr(_make_driver().picard)


class TestPicardStep:
    def test_steady_guess_converges_in_one_iteration(self):
        driver = _make_driver(
            initial_conditions={"initial_state": "no_drying"},
            equations={"coupled_transport": False},
        )
        ctx = driver.ctx
        h = 1.0 - 1.4085 * ctx.mesh.elevation
        ctx.fields[F.PRESSURE].reset(h)
        report = driver.picard.step(ctx)
        assert report.iterations == 1
        assert report.flow_error < FLOW_TOLERANCE
        assert not report.transported
        np.testing.assert_allclose(ctx.fields[F.PRESSURE].new, h, rtol=1e-8)
        assert ctx.balance.flow_at_top == pytest.approx(0.05 * 0.4085, rel=1e-6)
        assert ctx.balance.flow_at_bottom == pytest.approx(-0.05 * 0.4085, rel=1e-6)
        assert ctx.balance.nutrient_flow_at_top == 0.0

    def test_drying_step_converges(self):
        driver = _make_driver()
        report = driver.picard.step(driver.ctx)
        assert report.flow_error < FLOW_TOLERANCE
        assert report.halvings == 0
        assert report.dt == pytest.approx(1.0)
        assert np.all(np.isfinite(driver.ctx.fields[F.PRESSURE].new))

    def test_test_mode_solves_transport_only(self):
        driver = _test_mode_driver()
        pressure = driver.ctx.fields[F.PRESSURE].new.copy()
        report = driver.picard.step(driver.ctx)
        assert report.transported
        assert report.transport_error < TRANSPORT_TEST_TOLERANCE
        np.testing.assert_array_equal(driver.ctx.fields[F.PRESSURE].new, pressure)
        assert np.all(np.isfinite(driver.ctx.fields[F.SUBSTRATE].new))


class TestDivergence:
    def test_iteration_cap(self):
        driver = _make_driver(time_stepping={"max_picard_iterations_total": 1})
        with pytest.raises(SolverDivergence, match="within 1 iterations") as info:
            driver.picard.step(driver.ctx)
        assert info.value.context.timestep == 1
        assert info.value.context.component == "picard"

    def test_halvings_exhausted(self):
        driver = _test_mode_driver(picard_iterations_before_halving=1, max_time_step_halvings=2)
        ctx = driver.ctx
        with pytest.raises(SolverDivergence, match="halvings"):
            driver.picard.step(ctx)
        assert ctx.dt == pytest.approx(0.25)

    def test_no_halving_allowed(self):
        driver = _test_mode_driver(picard_iterations_before_halving=1, max_time_step_halvings=0)
        with pytest.raises(SolverDivergence):
            driver.picard.step(driver.ctx)
        assert driver.ctx.dt == pytest.approx(1.0)


def _stall(picard, monkeypatch, failures):
    """Make the convergence check fail *failures* times, then pass."""
    calls = []

    def converged(flow_error, transport_error):
        calls.append((flow_error, transport_error))
        return len(calls) > failures

    monkeypatch.setattr(picard, "converged", converged)
    return calls


def _record_iterates(evaluator, monkeypatch):
    """Snapshot pressure and substrate at the start of every iteration."""
    snapshots = []
    evaluate = evaluator.evaluate

    def recording(mesh, incidence, fields, dt, drying):
        snapshots.append((fields[F.PRESSURE].new.copy(), fields[F.SUBSTRATE].new.copy()))
        return evaluate(mesh, incidence, fields, dt, drying)

    monkeypatch.setattr(evaluator, "evaluate", recording)
    return snapshots


class TestHalvingRecovery:
    def test_converges_after_one_halving(self, monkeypatch):
        driver = _test_mode_driver(picard_iterations_before_halving=3)
        ctx = driver.ctx
        calls = _stall(driver.picard, monkeypatch, failures=3)
        report = driver.picard.step(ctx)
        assert len(calls) == 4
        assert report.halvings == 1
        assert report.iterations == 1
        assert report.total_iterations == 4
        assert report.dt == pytest.approx(0.5)
        assert ctx.dt == pytest.approx(0.5)
        assert np.all(np.isfinite(ctx.fields[F.SUBSTRATE].new))

    def test_iterates_restart_from_old_level(self, monkeypatch):
        driver = _make_driver(time_stepping={"picard_iterations_before_halving": 2})
        ctx = driver.ctx
        ctx.phases.phase = Phase.TRANSPORTING
        _stall(driver.picard, monkeypatch, failures=2)
        snapshots = _record_iterates(driver.picard.evaluator, monkeypatch)
        report = driver.picard.step(ctx)
        assert report.halvings == 1
        assert len(snapshots) == 3
        pressure, substrate = snapshots[2]
        np.testing.assert_array_equal(pressure, ctx.fields[F.PRESSURE].old)
        np.testing.assert_array_equal(substrate, ctx.fields[F.SUBSTRATE].old)

    def test_no_growth_after_halving(self, monkeypatch):
        driver = _make_driver(time_stepping={"picard_iterations_before_halving": 15})
        ctx = driver.ctx
        ctx.phases.phase = Phase.TRANSPORTING
        ctx.dt = 8.0
        _stall(driver.picard, monkeypatch, failures=15)
        report = driver.advance(ctx)
        assert report.halvings == 1
        assert report.iterations == 1
        assert report.total_iterations == 16
        assert report.dt == pytest.approx(4.0)
        assert ctx.dt == pytest.approx(4.0)

    def test_continues_from_halved_step(self, monkeypatch):
        driver = _make_driver(time_stepping={"picard_iterations_before_halving": 15})
        ctx = driver.ctx
        ctx.phases.phase = Phase.TRANSPORTING
        ctx.dt = 8.0
        calls = _stall(driver.picard, monkeypatch, failures=15)
        driver.advance(ctx)
        assert ctx.time == pytest.approx(4.0)
        monkeypatch.setattr(driver.picard, "converged", lambda flow_error, transport_error: True)
        report = driver.advance(ctx)
        assert len(calls) == 16
        assert report.halvings == 0
        assert report.dt == pytest.approx(4.0)
        assert ctx.time == pytest.approx(8.0)
        assert ctx.dt == pytest.approx(8.0)
