"""Tests for the θ-scheme and the adaptive time-step controller."""

import numpy as np
import pytest

from pybioclog.core.config import TimeSteppingConfig
from pybioclog.core.exceptions import ConfigError
from pybioclog.time.schemes import ThetaScheme
from pybioclog.time.stepper import AdaptiveTimeStepController


class TestThetaScheme:
    def test_default_is_backward_euler(self):
        assert ThetaScheme().theta == 1.0
        assert ThetaScheme().explicit_weight == 0.0

    def test_blend(self):
        scheme = ThetaScheme(0.5)
        np.testing.assert_allclose(scheme.blend(np.array([2.0]), np.array([4.0])), [3.0])

    @pytest.mark.parametrize("theta", [-0.1, 1.1])
    def test_out_of_range(self, theta):
        with pytest.raises(ConfigError):
            ThetaScheme(theta)

    def test_repr(self):
        assert repr(ThetaScheme(0.5)) == "ThetaScheme(theta=0.5)"


class TestAdaptiveTimeStepController:
    def _controller(self):
        return AdaptiveTimeStepController(min_step=1.0, max_step_flow=4.0, max_step_transport=60.0)

    def test_growth(self):
        assert self._controller().suggest_dt(2.0, 3, transporting=False, redefine=False) == 4.0

    def test_clamped_to_phase_maximum(self):
        c = self._controller()
        assert c.suggest_dt(4.0, 3, transporting=False, redefine=False) == 4.0
        assert c.suggest_dt(40.0, 3, transporting=True, redefine=False) == 60.0

    def test_no_growth_after_many_iterations(self):
        assert self._controller().suggest_dt(8.0, 15, transporting=True, redefine=False) == 8.0

    def test_reset_after_transition(self):
        assert self._controller().suggest_dt(32.0, 2, transporting=True, redefine=True) == 1.0

    def test_lower_bound(self):
        assert self._controller().suggest_dt(0.125, 20, transporting=True, redefine=False) == 1.0

    def test_from_config(self):
        c = AdaptiveTimeStepController.from_config(
            TimeSteppingConfig(max_time_step_flow=10.0, growth_iteration_threshold=5)
        )
        assert c.max_step(False) == 10.0
        assert c.max_step(True) == 60.0
        assert c.suggest_dt(1.0, 5, transporting=False, redefine=False) == 1.0
