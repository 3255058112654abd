"""Hydraulic properties of a bio-clogged porous medium.

Maps pressure head and biomass concentration onto saturation, moisture
content, specific moisture capacity and hydraulic conductivity.

Classes
-------
HydraulicModel
    Retention/conductivity model family.
RelativePermeabilityModel
    Biomass-dependent relative permeability model.
HydraulicProperties
    Parameter set with vectorised evaluation methods.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

import numpy as np
from numpy.typing import ArrayLike

from pybioclog.core.exceptions import ConfigError

# Haverkamp et al. (1977) fitting constants
HAVERKAMP_RETENTION_A = 1.611e6
HAVERKAMP_RETENTION_BETA = 3.96
HAVERKAMP_CONDUCTIVITY_A = 1.175e6
HAVERKAMP_CONDUCTIVITY_GAMMA = 4.74

# van Genuchten capacity is evaluated at this head when h >= 0
SATURATED_CAPACITY_HEAD = -0.01

# Vandevivere et al. (1995) plug-formation parameters
VANDEVIVERE_PLUG_CONDUCTIVITY = 0.00025
VANDEVIVERE_CRITICAL_FRACTION = 0.1

# Clement et al. (1996) exponent, applied as an integer power
CLEMENT_EXPONENT = 3


class HydraulicModel(str, Enum):
    """Retention and unsaturated conductivity model family."""

    HAVERKAMP_1977 = "haverkamp_et_al_1977"
    VAN_GENUCHTEN_1980 = "van_genuchten_1980"


class RelativePermeabilityModel(str, Enum):
    """Relative permeability model accounting for biomass."""

    SOLEIMANI = "soleimani"
    CLEMENT = "clement"
    OKUBO_AND_MATSUMOTO = "okubo_and_matsumoto"
    VANDEVIVERE = "vandevivere"


def _as_model(enum_cls: type[Enum], value: object) -> Enum:
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigError(f"Unknown {enum_cls.__name__} {value!r}.") from None


# ------------------------------------------------------------------
# Relative permeability models
# ------------------------------------------------------------------

def _kr_soleimani(se: np.ndarray, se_b: np.ndarray, fraction: np.ndarray, m: float) -> np.ndarray:
    inner = (1.0 - se_b ** (1.0 / m)) ** m - (1.0 - se ** (1.0 / m)) ** m
    return se ** 0.5 * inner ** 2


def _kr_clement(se: np.ndarray, se_b: np.ndarray, fraction: np.ndarray, m: float) -> np.ndarray:
    remaining = np.clip(1.0 - fraction, 0.0, None)
    return np.where(fraction < 1.0, remaining ** CLEMENT_EXPONENT, 0.0)


def _kr_okubo_and_matsumoto(se: np.ndarray, se_b: np.ndarray, fraction: np.ndarray, m: float) -> np.ndarray:
    remaining = np.clip(1.0 - fraction, 0.0, None)
    return np.where(fraction < 1.0, remaining ** 2, 0.0)


def _kr_vandevivere(se: np.ndarray, se_b: np.ndarray, fraction: np.ndarray, m: float) -> np.ndarray:
    kp = VANDEVIVERE_PLUG_CONDUCTIVITY
    remaining = np.clip(1.0 - fraction, 0.0, None)
    phi = np.exp(-0.5 * (fraction / VANDEVIVERE_CRITICAL_FRACTION) ** 2)
    kr = phi * remaining ** 2 + (1.0 - phi) * kp / (kp + fraction * (1.0 - kp))
    return np.where(fraction < 1.0, kr, 0.0)


_RELATIVE_PERMEABILITY = {
    RelativePermeabilityModel.SOLEIMANI: _kr_soleimani,
    RelativePermeabilityModel.CLEMENT: _kr_clement,
    RelativePermeabilityModel.OKUBO_AND_MATSUMOTO: _kr_okubo_and_matsumoto,
    RelativePermeabilityModel.VANDEVIVERE: _kr_vandevivere,
}


@dataclass
class HydraulicProperties:
    """Hydraulic parameter set of a soil colonised by biomass.

    van Genuchten (1980)::

        Se(h) = [1 + (α|h|)^n]^(-m),  m = 1 - 1/n   (h < 0)
        Se(h) = 1                                    (h >= 0)

    Haverkamp et al. (1977)::

        Se(h) = A / (A + |h|^β)
        K(h)  = Ks B / (B + |h|^γ)

    Biomass occupies part of the pore space; the fraction left to water
    is the *free* saturation and the conductivity is reduced through a
    relative permeability model.

    Args:
        model: Retention model family.
        theta_r: Residual moisture content.
        theta_s: Saturated moisture content.
        k_sat: Saturated hydraulic conductivity (length/time).
        alpha: van Genuchten α (1/length).
        n: van Genuchten n (> 1).
    """

    model: HydraulicModel = HydraulicModel.VAN_GENUCHTEN_1980
    theta_r: float = 0.04
    theta_s: float = 0.39
    k_sat: float = 0.05
    alpha: float = 0.04
    n: float = 4.0

    def __post_init__(self) -> None:
        self.model = _as_model(HydraulicModel, self.model)

    @classmethod
    def from_config(cls, constitutive, equations) -> "HydraulicProperties":
        """Build from :class:`~pybioclog.core.config.ConstitutiveConfig` and
        :class:`~pybioclog.core.config.EquationConfig` groups."""
        return cls(
            model=equations.hydraulic_model,
            theta_r=constitutive.moisture_content_residual,
            theta_s=constitutive.moisture_content_saturation,
            k_sat=constitutive.saturated_hydraulic_conductivity,
            alpha=constitutive.van_genuchten_alpha,
            n=constitutive.van_genuchten_n,
        )

    @property
    def m(self) -> float:
        """van Genuchten m parameter: m = 1 - 1/n."""
        return 1.0 - 1.0 / self.n

    @property
    def residual_ratio(self) -> float:
        """θ_r / θ_s."""
        return self.theta_r / self.theta_s

    # ------------------------------------------------------------------
    # Water
    # ------------------------------------------------------------------

    def specific_moisture_capacity(self, h: ArrayLike) -> np.ndarray:
        """Specific moisture capacity C(h) = dθ/dh.

        For van Genuchten, heads at or above zero are clamped to
        ``-0.01`` so the capacity stays strictly positive.

        Args:
            h: Pressure head.

        Returns:
            C(h) array.
        """
        h_arr = np.asarray(h, dtype=float)
        d_theta = self.theta_s - self.theta_r
        if self.model is HydraulicModel.HAVERKAMP_1977:
            a = HAVERKAMP_RETENTION_A
            beta = HAVERKAMP_RETENTION_BETA
            abs_h = np.abs(h_arr)
            c = -a * d_theta * beta * h_arr * abs_h ** (beta - 2.0) / (a + abs_h ** beta) ** 2
            return np.where(h_arr < 0.0, c, 0.0)

        h_c = np.where(h_arr >= 0.0, SATURATED_CAPACITY_HEAD, h_arr)
        alpha_h = self.alpha * np.abs(h_c)
        return (
            -self.alpha * self.m * self.n * d_theta
            * alpha_h ** (self.n - 1.0)
            * (1.0 + alpha_h ** self.n) ** (-self.m - 1.0)
            * np.sign(h_c)
        )

    def effective_total_saturation(self, h: ArrayLike) -> np.ndarray:
        """Effective saturation Se(h) ∈ (0, 1], exactly 1 for h >= 0."""
        h_arr = np.asarray(h, dtype=float)
        abs_h = np.abs(h_arr)
        if self.model is HydraulicModel.HAVERKAMP_1977:
            a = HAVERKAMP_RETENTION_A
            unsat = a / (a + abs_h ** HAVERKAMP_RETENTION_BETA)
        else:
            unsat = (1.0 + (self.alpha * abs_h) ** self.n) ** (-self.m)
        return np.where(h_arr >= 0.0, 1.0, unsat)

    def actual_total_saturation(self, h: ArrayLike) -> np.ndarray:
        """Fraction of pore volume filled with water, θ/θ_s."""
        ratio = self.residual_ratio
        return ratio + (1.0 - ratio) * self.effective_total_saturation(h)

    def moisture_content_total(self, h: ArrayLike) -> np.ndarray:
        """Volumetric moisture content θ(h) ∈ [θ_r, θ_s]."""
        se = self.effective_total_saturation(h)
        return (self.theta_s - self.theta_r) * se + self.theta_r

    # ------------------------------------------------------------------
    # Biomass
    # ------------------------------------------------------------------

    def effective_biomass_saturation(
        self,
        biomass: ArrayLike,
        biomass_dry_density: float,
    ) -> np.ndarray:
        """Effective saturation of biomass, clamped to at most 1.

        Args:
            biomass: Biomass concentration (mass/volume).
            biomass_dry_density: Dry density of biomass (mass/volume).
        """
        fraction = np.asarray(biomass, dtype=float) / biomass_dry_density
        return np.minimum(fraction / (1.0 - self.residual_ratio), 1.0)

    def actual_biomass_saturation(
        self,
        biomass: ArrayLike,
        biomass_dry_density: float,
    ) -> np.ndarray:
        """Fraction of pore volume occupied by biomass."""
        se_b = self.effective_biomass_saturation(biomass, biomass_dry_density)
        return se_b * (1.0 - self.residual_ratio)

    def effective_free_saturation(
        self,
        h: ArrayLike,
        biomass: ArrayLike,
        biomass_dry_density: float,
    ) -> np.ndarray:
        """Effective saturation of mobile water, floored at 0."""
        se = self.effective_total_saturation(h)
        se_b = self.effective_biomass_saturation(biomass, biomass_dry_density)
        return np.maximum(se - se_b, 0.0)

    def moisture_content_free(
        self,
        h: ArrayLike,
        biomass: ArrayLike,
        biomass_dry_density: float,
    ) -> np.ndarray:
        """Moisture content of mobile water (total minus biomass)."""
        se_free = self.effective_free_saturation(h, biomass, biomass_dry_density)
        return (self.theta_s - self.theta_r) * se_free + self.theta_r

    # ------------------------------------------------------------------
    # Conductivity
    # ------------------------------------------------------------------

    def relative_permeability(
        self,
        h: ArrayLike,
        biomass: ArrayLike,
        biomass_dry_density: float,
        relative_permeability_model: RelativePermeabilityModel,
    ) -> np.ndarray:
        """Relative permeability for the van Genuchten family.

        Total saturation is raised to the biomass saturation where it is
        smaller.
        """
        rp_model = _as_model(RelativePermeabilityModel, relative_permeability_model)
        se = self.effective_total_saturation(h)
        se_b = self.effective_biomass_saturation(biomass, biomass_dry_density)
        se_b = np.broadcast_to(se_b, np.broadcast(se, se_b).shape)
        se = np.maximum(se, se_b)
        fraction = np.asarray(biomass, dtype=float) / biomass_dry_density
        return _RELATIVE_PERMEABILITY[rp_model](se, se_b, fraction, self.m)

    def hydraulic_conductivity(
        self,
        h: ArrayLike,
        biomass: ArrayLike,
        biomass_dry_density: float,
        relative_permeability_model: RelativePermeabilityModel,
    ) -> np.ndarray:
        """Hydraulic conductivity K = Ks · kr.

        Args:
            h: Pressure head.
            biomass: Biomass concentration.
            biomass_dry_density: Dry density of biomass.
            relative_permeability_model: Biomass relative permeability
                model (ignored by Haverkamp, which has no biomass term).

        Returns:
            Conductivity array.
        """
        h_arr = np.asarray(h, dtype=float)
        if self.model is HydraulicModel.HAVERKAMP_1977:
            b = HAVERKAMP_CONDUCTIVITY_A
            return self.k_sat * b / (b + np.abs(h_arr) ** HAVERKAMP_CONDUCTIVITY_GAMMA)
        kr = self.relative_permeability(
            h_arr, biomass, biomass_dry_density, relative_permeability_model
        )
        return self.k_sat * kr
