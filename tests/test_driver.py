"""End-to-end runs of the simulation driver and the command line."""

import json

import numpy as np
import pytest

from pybioclog import Parameters, SimulationDriver
from pybioclog.cli import build_parser, main
from pybioclog.core.exceptions import ConfigError
from pybioclog.coupling.picard import FLOW_TOLERANCE
from pybioclog.geometry.mesh import Mesh
from pybioclog.postprocess.export import summary_filename
from pybioclog.simulation import fields as F
from pybioclog.simulation.phases import Phase


def _params(**groups):
    data = {"geometry": {"refinement_level": 3}}
    for name, values in groups.items():
        data.setdefault(name, {}).update(values)
    return Parameters.from_dict(data)


class TestFlowOnly:
    def test_drying_then_saturating(self):
        result = SimulationDriver(_params(equations={"coupled_transport": False})).run(20)
        assert len(result.reports) == 20
        assert result.transitions[0].target is Phase.SATURATING
        assert result.phase is Phase.SATURATING
        assert all(r.flow_error < FLOW_TOLERANCE for r in result.reports)
        assert result.balance.cumulative_flow_at_bottom != 0.0
        assert np.all(np.diff(result.times) > 0.0)

    def test_drying_reaches_hydrostatic_top(self):
        driver = SimulationDriver(_params(equations={"coupled_transport": False}))
        driver.setup()
        driver.advance(driver.ctx)
        assert driver.top_pressure(driver.ctx) == pytest.approx(41.85, rel=1e-3)
        assert driver.equilibrium_pressure(driver.ctx) == pytest.approx(41.85)

    def test_summary_rows(self):
        result = SimulationDriver(_params(equations={"coupled_transport": False})).run(5)
        assert [row[0] for row in result.summary] == [1, 2, 3, 4, 5]
        assert result.effective_conductivity.shape == (5,)
        assert np.all(result.effective_conductivity > 0.0)


class TestCoupled:
    def test_reaches_transport_phase(self):
        params = _params(
            boundary_conditions={"transport_entry_value": 10.0},
            initial_conditions={"bacteria": 10.0},
        )
        result = SimulationDriver(params).run(20)
        assert result.phase is Phase.TRANSPORTING
        assert [t.target for t in result.transitions] == [Phase.SATURATING, Phase.TRANSPORTING]
        assert any(r.transported for r in result.reports)
        for name in (F.PRESSURE, F.SUBSTRATE, F.BIOMASS, F.CONDUCTIVITY):
            assert np.all(np.isfinite(result[name]))
        assert result[F.SUBSTRATE].max() > 0.0
        assert np.all(result[F.BIOMASS] >= 0.01 - 1e-12)

    def test_restart_states_written(self, tmp_path):
        params = _params(
            output={"write_restart_states": True, "write_results": True, "output_format": ".gp"},
        )
        SimulationDriver(params, output_directory=tmp_path).run(4)
        for regime in ("dry", "saturated", "final"):
            assert (tmp_path / f"state_{regime}_pressure.npy").exists()
        assert (tmp_path / summary_filename(params)).exists()
        assert list(tmp_path.glob("solution_*.gp"))

    def test_start_from_saturated_state(self, tmp_path):
        first = _params(output={"write_restart_states": True})
        SimulationDriver(first, output_directory=tmp_path).run(3)
        params = _params(
            initial_conditions={"initial_state": "saturated", "state_directory": str(tmp_path)}
        )
        driver = SimulationDriver(params)
        ctx = driver.setup()
        assert ctx.phases.phase is Phase.TRANSPORTING
        saved = np.load(tmp_path / "state_saturated_pressure.npy")
        np.testing.assert_allclose(ctx.fields[F.PRESSURE].new, saved)


class TestSetup:
    def test_custom_mesh(self):
        driver = SimulationDriver(_params())
        ctx = driver.setup(Mesh.interval(100.0, 2))
        assert ctx.mesh.n_cells == 4

    def test_mesh_without_markers(self):
        mesh = Mesh.interval(100.0, 2)
        mesh.facet_markers[:] = 0
        with pytest.raises(ConfigError, match="Invalid mesh"):
            SimulationDriver(_params()).setup(mesh)

    def test_adaptive_run(self):
        params = _params(
            geometry={"adaptive_refinement": True, "min_refinement_level": 2, "max_refinement_level": 6},
            equations={"coupled_transport": False},
        )
        result = SimulationDriver(params).run(3)
        z = result.mesh.elevation
        assert z.min() == pytest.approx(-100.0)
        assert z.max() == pytest.approx(0.0)
        assert result[F.PRESSURE].shape == (result.mesh.n_nodes,)


class TestCli:
    def _write(self, tmp_path, data):
        path = tmp_path / "run.json"
        path.write_text(json.dumps(data))
        return path

    def test_parser(self):
        args = build_parser().parse_args(["run.yaml", "--steps", "3", "-v"])
        assert args.steps == 3
        assert args.verbose

    def test_run(self, tmp_path):
        path = self._write(tmp_path, {"geometry": {"refinement_level": 2}})
        assert main([str(path), "--steps", "2", "-q", "--output-dir", str(tmp_path)]) == 0

    def test_invalid_config(self, tmp_path):
        path = self._write(tmp_path, {"geometry": {"dim": 3}})
        assert main([str(path), "-q"]) == 1

    def test_invalid_steps(self, tmp_path):
        with pytest.raises(SystemExit):
            main([str(tmp_path / "run.yaml"), "--steps", "0"])


class TestReferenceColumn:
    """The default 100-step column at the configured refinement level."""

    @pytest.fixture(scope="class")
    def result(self):
        params = Parameters.from_dict(
            {
                "boundary_conditions": {"transport_entry_value": 10.0},
                "initial_conditions": {"bacteria": 10.0},
            }
        )
        return SimulationDriver(params).run()

    def test_runs_all_steps(self, result):
        assert len(result.reports) == 100
        assert all(r.flow_error < FLOW_TOLERANCE for r in result.reports)
        assert result.balance.cumulative_flow_at_bottom != 0.0

    def test_phases_in_order(self, result):
        assert [t.source for t in result.transitions] == [Phase.DRYING, Phase.SATURATING]
        assert [t.target for t in result.transitions] == [Phase.SATURATING, Phase.TRANSPORTING]
        assert result.transitions[0].time < result.transitions[1].time
        assert result.phase is Phase.TRANSPORTING

    def test_step_bounds_per_phase(self, result):
        for report in result.reports:
            assert report.dt * 2**report.halvings >= 1.0
            if report.transported:
                assert report.dt <= 60.0
            else:
                assert report.dt == pytest.approx(1.0)
        assert any(r.dt > 1.0 for r in result.reports if r.transported)

    def test_flow_stays_balanced(self, result):
        q_top = result.balance.flow_at_top
        q_bottom = result.balance.flow_at_bottom
        assert q_top > 0.0 > q_bottom
        assert abs(1.0 - abs(q_top / q_bottom)) < 0.1

    def test_substrate_enters_column(self, result):
        substrate = result[F.SUBSTRATE]
        assert np.all(np.isfinite(substrate))
        assert result.balance.nutrients_in_domain_current > 0.0
