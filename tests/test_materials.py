"""Tests for hydraulic properties and biomass kinetics."""

import numpy as np
import pytest

from pybioclog.core.exceptions import ConfigError
from pybioclog.materials.hydraulics import (
    CLEMENT_EXPONENT,
    HydraulicModel,
    HydraulicProperties,
    RelativePermeabilityModel,
)
from pybioclog.materials.kinetics import MonodKinetics

RHO = 100.0


def _van_genuchten():
    return HydraulicProperties(
        model=HydraulicModel.VAN_GENUCHTEN_1980,
        theta_r=0.04,
        theta_s=0.39,
        k_sat=0.05,
        alpha=0.04,
        n=4.0,
    )


def _haverkamp():
    return HydraulicProperties(model=HydraulicModel.HAVERKAMP_1977, k_sat=0.05)


class TestVanGenuchtenRetention:
    def test_saturated_heads_give_unit_saturation(self):
        props = _van_genuchten()
        se = props.effective_total_saturation(np.array([0.0, 1.0, 141.85]))
        np.testing.assert_array_equal(se, 1.0)

    def test_saturation_in_unit_interval_and_monotone(self):
        props = _van_genuchten()
        h = -np.logspace(4, -3, 200)  # increasing towards 0
        se = props.effective_total_saturation(h)
        assert np.all(se > 0.0)
        assert np.all(se <= 1.0)
        assert np.all(np.diff(se) >= 0.0)

    def test_known_value(self):
        """α|h| = 1 gives Se = 2^(-m)."""
        props = _van_genuchten()
        se = props.effective_total_saturation(-25.0)
        np.testing.assert_allclose(se, 2.0 ** -0.75)

    def test_moisture_content_bounds(self):
        props = _van_genuchten()
        h = np.concatenate([-np.logspace(6, -3, 100), np.linspace(0, 100, 10)])
        theta = props.moisture_content_total(h)
        assert np.all(theta >= props.theta_r)
        assert np.all(theta <= props.theta_s)
        np.testing.assert_allclose(props.moisture_content_total(0.0), props.theta_s)

    def test_actual_total_saturation(self):
        props = _van_genuchten()
        np.testing.assert_allclose(props.actual_total_saturation(0.0), 1.0)
        np.testing.assert_allclose(
            props.actual_total_saturation(-1e6), props.theta_r / props.theta_s, rtol=1e-6
        )

    def test_capacity_is_derivative_of_moisture(self):
        props = _van_genuchten()
        h, eps = -20.0, 1e-5
        fd = (props.moisture_content_total(h + eps) - props.moisture_content_total(h - eps)) / (2 * eps)
        np.testing.assert_allclose(props.specific_moisture_capacity(h), fd, rtol=1e-5)

    def test_capacity_clamped_at_saturation(self):
        props = _van_genuchten()
        c = props.specific_moisture_capacity(np.array([0.0, 5.0]))
        np.testing.assert_allclose(c, props.specific_moisture_capacity(-0.01))
        assert np.all(c > 0.0)

    def test_m_parameter(self):
        assert _van_genuchten().m == pytest.approx(0.75)


class TestHaverkamp:
    def test_saturated_values(self):
        props = _haverkamp()
        assert props.effective_total_saturation(0.0) == 1.0
        assert props.specific_moisture_capacity(0.0) == 0.0
        assert props.hydraulic_conductivity(0.0, 0.0, RHO, "soleimani") == pytest.approx(0.05)

    def test_capacity_is_derivative_of_moisture(self):
        props = _haverkamp()
        h, eps = -30.0, 1e-5
        fd = (props.moisture_content_total(h + eps) - props.moisture_content_total(h - eps)) / (2 * eps)
        np.testing.assert_allclose(props.specific_moisture_capacity(h), fd, rtol=1e-5)

    def test_conductivity_below_saturated_for_positive_head(self):
        props = _haverkamp()
        h = np.array([10.0, -10.0])
        k = props.hydraulic_conductivity(h, 0.0, RHO, "soleimani")
        expected = 0.05 * 1.175e6 / (1.175e6 + 10.0 ** 4.74)
        np.testing.assert_allclose(k, [expected, expected])
        assert k[0] < props.k_sat

    def test_conductivity_decreases_with_suction(self):
        props = _haverkamp()
        k = props.hydraulic_conductivity(np.array([-10.0, -50.0]), 0.0, RHO, "soleimani")
        assert k[0] > k[1] > 0.0


class TestBiomassSaturation:
    def test_effective_biomass_saturation_clamped(self):
        props = _van_genuchten()
        se_b = props.effective_biomass_saturation(np.array([1e6, 1e12]), RHO)
        np.testing.assert_array_equal(se_b, 1.0)

    def test_actual_biomass_saturation(self):
        props = _van_genuchten()
        se_b = props.effective_biomass_saturation(5.0, RHO)
        np.testing.assert_allclose(
            props.actual_biomass_saturation(5.0, RHO), se_b * (1.0 - props.residual_ratio)
        )

    def test_free_saturation_never_negative(self):
        props = _van_genuchten()
        free = props.effective_free_saturation(np.array([-500.0, -100.0, 0.0]), 80.0, RHO)
        assert np.all(free >= 0.0)
        assert free[0] == 0.0

    def test_free_moisture_below_total(self):
        props = _van_genuchten()
        h = np.linspace(-100.0, 0.0, 11)
        free = props.moisture_content_free(h, 10.0, RHO)
        total = props.moisture_content_total(h)
        assert np.all(free <= total)
        assert np.all(free >= props.theta_r)


class TestConductivity:
    @pytest.mark.parametrize("model", list(RelativePermeabilityModel))
    def test_clean_saturated_soil_has_saturated_conductivity(self, model):
        props = _van_genuchten()
        k = props.hydraulic_conductivity(0.0, 0.0, RHO, model)
        np.testing.assert_allclose(k, props.k_sat)

    @pytest.mark.parametrize("model", list(RelativePermeabilityModel))
    def test_biomass_reduces_conductivity(self, model):
        props = _van_genuchten()
        k = props.hydraulic_conductivity(0.0, 5.0, RHO, model)
        assert 0.0 < k < props.k_sat

    def test_clement_exponent(self):
        props = _van_genuchten()
        k = props.hydraulic_conductivity(0.0, 20.0, RHO, RelativePermeabilityModel.CLEMENT)
        assert CLEMENT_EXPONENT == 3
        np.testing.assert_allclose(k, props.k_sat * 0.512)

    def test_okubo_and_matsumoto(self):
        props = _van_genuchten()
        k = props.hydraulic_conductivity(0.0, 20.0, RHO, "okubo_and_matsumoto")
        np.testing.assert_allclose(k, props.k_sat * 0.64)

    @pytest.mark.parametrize("model", ["clement", "okubo_and_matsumoto", "vandevivere"])
    def test_fully_clogged_pores_are_impermeable(self, model):
        props = _van_genuchten()
        assert props.hydraulic_conductivity(0.0, 150.0, RHO, model) == 0.0

    def test_biomass_above_water_saturation(self):
        """Total saturation is raised to the biomass saturation."""
        props = _van_genuchten()
        k = props.hydraulic_conductivity(-1000.0, 50.0, RHO, "soleimani")
        np.testing.assert_allclose(k, 0.0, atol=1e-15)

    def test_vectorised(self):
        props = _van_genuchten()
        h = np.linspace(-80.0, 0.0, 9)
        k = props.hydraulic_conductivity(h, np.zeros_like(h), RHO, "soleimani")
        assert k.shape == h.shape
        assert np.all(np.diff(k) >= 0.0)

    def test_unknown_relative_permeability_model(self):
        props = _van_genuchten()
        with pytest.raises(ConfigError, match="kozeny"):
            props.hydraulic_conductivity(0.0, 0.0, RHO, "kozeny")

    def test_unknown_hydraulic_model(self):
        with pytest.raises(ConfigError, match="brooks_corey"):
            HydraulicProperties(model="brooks_corey")


class TestMonodKinetics:
    def _kinetics(self, decay=0.0):
        return MonodKinetics(
            yield_coefficient=0.5,
            maximum_substrate_use_rate=1e-4,
            half_velocity_constant=10.0,
            decay_rate=decay,
        )

    def test_half_velocity_concentration_in_mg_per_cm3(self):
        assert self._kinetics().half_velocity_concentration == pytest.approx(0.01)

    def test_growth_without_substrate_is_decay(self):
        k = self._kinetics(decay=1e-6)
        np.testing.assert_allclose(k.growth_rate(0.0, 1.0), -1e-6)

    def test_grow_exponential(self):
        k = self._kinetics()
        # S_f S = K_s gives half the maximum rate
        b = k.grow(2.0, 0.01, 1.0, 100.0)
        np.testing.assert_allclose(b, 2.0 * np.exp(0.5 * 1e-4 * 0.5 * 100.0))

    def test_negative_substrate_treated_as_zero(self):
        k = self._kinetics()
        np.testing.assert_allclose(k.grow(1.0, -0.5, 1.0, 10.0), 1.0)

    def test_consumption_rate(self):
        k = self._kinetics()
        r = k.consumption_rate(2.0, 0.01, porosity=0.39)
        np.testing.assert_allclose(r, 0.39 * 2.0 * 1e-4 / 0.02)
