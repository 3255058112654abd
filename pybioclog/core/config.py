"""Run configuration.

Parameters are grouped into frozen dataclasses that mirror the sections
of a YAML (or JSON) parameter file::

    time_stepping:
      timestep_number_max: 100
      theta_richards: 1.0
    geometry:
      dim: 1
      domain_size: 100.0
      refinement_level: 5
    equations:
      formulation: head
      hydraulic_model: van_genuchten_1980
      relative_permeability: soleimani

Model identifiers are converted to enums when the file is loaded, so an
unknown name is rejected once, up front, with the offending string.

Classes
-------
Parameters
    Aggregate of all configuration groups.

Functions
---------
load_parameters
    Read a parameter file into :class:`Parameters`.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from pybioclog.core.exceptions import ConfigError
from pybioclog.materials.hydraulics import HydraulicModel, RelativePermeabilityModel


class FlowFormulation(str, Enum):
    """Form of Richards' equation."""

    HEAD = "head"
    MIXED = "mixed"


class InitialState(str, Enum):
    """Where a run starts.

    ``default`` and ``no_drying`` use homogeneous initial conditions, the
    others load the restart snapshot with the same name.
    """

    DEFAULT = "default"
    NO_DRYING = "no_drying"
    DRY = "dry"
    SATURATED = "saturated"
    FINAL = "final"

    @property
    def from_restart(self) -> bool:
        return self in (InitialState.DRY, InitialState.SATURATED, InitialState.FINAL)


class EntryPoint(str, Enum):
    """Boundary through which substrate enters the domain."""

    TOP = "top"
    BOTTOM = "bottom"


class ReactionMode(str, Enum):
    """Substrate consumption term in the transport equation."""

    NONE = "none"
    HOMOGENEOUS_DECAY = "homogeneous_decay"
    MONOD = "monod"


class OutputFormat(str, Enum):
    VTU = ".vtu"
    GNUPLOT = ".gp"


def parse_enum(enum_cls: type[Enum], value: Any, name: str) -> Any:
    """Convert *value* to a member of *enum_cls*.

    Raises:
        ConfigError: If *value* is not a recognised identifier.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(repr(m.value) for m in enum_cls)
        raise ConfigError(
            f"Unknown {name} {value!r}; expected one of {valid}."
        ) from None


def validate_positive(value: float, name: str) -> None:
    if not value > 0:
        raise ConfigError(f"{name} must be positive, got {value}.")


def validate_range(value: float, min_val: float, max_val: float, name: str) -> None:
    if not min_val <= value <= max_val:
        raise ConfigError(f"{name} must be in [{min_val}, {max_val}], got {value}.")


def _coerce(obj: Any, name: str, enum_cls: type[Enum]) -> None:
    object.__setattr__(obj, name, parse_enum(enum_cls, getattr(obj, name), name))


# ------------------------------------------------------------------
# Configuration groups
# ------------------------------------------------------------------

@dataclass(frozen=True)
class TimeSteppingConfig:
    """Time-stepping bounds and theta weights."""

    timestep_number_max: int = 100
    time_step: float = 1.0
    theta_richards: float = 1.0
    theta_transport: float = 0.5
    min_time_step: float = 1.0
    max_time_step_flow: float = 1.0
    max_time_step_transport: float = 60.0
    growth_iteration_threshold: int = 15
    picard_iterations_before_halving: int = 40
    max_time_step_halvings: int = 12
    max_picard_iterations_total: int = 1000

    def __post_init__(self) -> None:
        validate_positive(self.timestep_number_max, "timestep_number_max")
        validate_positive(self.time_step, "time_step")
        validate_range(self.theta_richards, 0.0, 1.0, "theta_richards")
        validate_range(self.theta_transport, 0.0, 1.0, "theta_transport")
        validate_positive(self.min_time_step, "min_time_step")
        if self.max_time_step_flow < self.min_time_step:
            raise ConfigError("max_time_step_flow must not be below min_time_step.")
        if self.max_time_step_transport < self.min_time_step:
            raise ConfigError("max_time_step_transport must not be below min_time_step.")
        validate_positive(self.picard_iterations_before_halving, "picard_iterations_before_halving")
        validate_positive(self.max_picard_iterations_total, "max_picard_iterations_total")


@dataclass(frozen=True)
class GeometryConfig:
    """Domain and mesh settings.

    The analytic domain spans ``[-domain_size, 0]`` vertically, divided
    into ``2**refinement_level`` cells per direction.
    """

    dim: int = 1
    domain_size: float = 100.0
    refinement_level: int = 5
    mesh_filename: str | None = None
    adaptive_refinement: bool = False
    refine_fraction: float = 0.49
    coarsen_fraction: float = 0.50
    min_refinement_level: int = 2
    max_refinement_level: int = 12
    max_cells: int = 20000

    def __post_init__(self) -> None:
        if self.dim not in (1, 2):
            raise ConfigError(f"dim must be 1 or 2, got {self.dim}.")
        validate_positive(self.domain_size, "domain_size")
        validate_range(self.refinement_level, 0, 20, "refinement_level")
        validate_range(self.refine_fraction, 0.0, 1.0, "refine_fraction")
        validate_range(self.coarsen_fraction, 0.0, 1.0, "coarsen_fraction")
        if self.refine_fraction + self.coarsen_fraction > 1.0:
            raise ConfigError("refine_fraction + coarsen_fraction must not exceed 1.")
        if self.min_refinement_level > self.max_refinement_level:
            raise ConfigError("min_refinement_level exceeds max_refinement_level.")
        if self.adaptive_refinement and self.dim != 1:
            raise ConfigError("Adaptive refinement is only available for 1-D columns.")


@dataclass(frozen=True)
class EquationConfig:
    """Equation forms and model selection."""

    formulation: FlowFormulation = FlowFormulation.HEAD
    hydraulic_model: HydraulicModel = HydraulicModel.VAN_GENUCHTEN_1980
    relative_permeability: RelativePermeabilityModel = RelativePermeabilityModel.SOLEIMANI
    lumped_mass: bool = False
    coupled_transport: bool = True
    test_function_transport: bool = False
    reaction: ReactionMode = ReactionMode.NONE

    def __post_init__(self) -> None:
        _coerce(self, "formulation", FlowFormulation)
        _coerce(self, "hydraulic_model", HydraulicModel)
        _coerce(self, "relative_permeability", RelativePermeabilityModel)
        _coerce(self, "reaction", ReactionMode)


@dataclass(frozen=True)
class InitialConditionConfig:
    """Initial state.

    ``substrate`` and ``bacteria`` are given in mg/L and converted to
    mg/cm³ when applied.
    """

    initial_state: InitialState = InitialState.DEFAULT
    pressure: float = 1.0
    substrate: float = 0.0
    bacteria: float = 0.0
    state_directory: str = "."

    def __post_init__(self) -> None:
        _coerce(self, "initial_state", InitialState)
        if self.substrate < 0 or self.bacteria < 0:
            raise ConfigError("Initial substrate and bacteria must be non-negative.")


@dataclass(frozen=True)
class BoundaryConfig:
    """Flow and transport boundary conditions."""

    richards_fixed_at_bottom: bool = True
    richards_bottom_fixed_value: float = 141.85
    richards_fixed_at_top: bool = True
    richards_top_fixed_value: float = 1.0
    richards_top_flow_value: float = 0.0
    transport_entry_point: EntryPoint = EntryPoint.BOTTOM
    transport_entry_value: float = 0.0
    transport_fixed_concentration: bool = False

    def __post_init__(self) -> None:
        _coerce(self, "transport_entry_point", EntryPoint)
        if self.transport_entry_value < 0:
            raise ConfigError("transport_entry_value must be non-negative.")


@dataclass(frozen=True)
class ConstitutiveConfig:
    """Soil hydraulic and dispersion parameters.

    ``conductivity_factors`` maps a cell tag to a multiplier of the
    saturated conductivity for heterogeneous columns.
    """

    van_genuchten_alpha: float = 0.04
    van_genuchten_n: float = 4.0
    moisture_content_residual: float = 0.04
    moisture_content_saturation: float = 0.39
    saturated_hydraulic_conductivity: float = 0.05
    dispersivity_longitudinal: float = 0.1
    effective_diffusion_coefficient: float = 1e-5
    biomass_dry_density: float = 100.0
    conductivity_factors: dict[int, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        validate_positive(self.van_genuchten_alpha, "van_genuchten_alpha")
        if not self.van_genuchten_n > 1.0:
            raise ConfigError(f"van_genuchten_n must exceed 1, got {self.van_genuchten_n}.")
        validate_range(self.moisture_content_residual, 0.0, 1.0, "moisture_content_residual")
        validate_range(self.moisture_content_saturation, 0.0, 1.0, "moisture_content_saturation")
        if self.moisture_content_residual >= self.moisture_content_saturation:
            raise ConfigError("moisture_content_residual must be below moisture_content_saturation.")
        validate_positive(self.saturated_hydraulic_conductivity, "saturated_hydraulic_conductivity")
        if self.dispersivity_longitudinal < 0 or self.effective_diffusion_coefficient < 0:
            raise ConfigError("Dispersivity and diffusion coefficient must be non-negative.")
        validate_positive(self.biomass_dry_density, "biomass_dry_density")
        object.__setattr__(
            self,
            "conductivity_factors",
            {int(tag): float(f) for tag, f in self.conductivity_factors.items()},
        )
        for tag, factor in self.conductivity_factors.items():
            validate_positive(factor, f"conductivity_factors[{tag}]")


@dataclass(frozen=True)
class ReactionConfig:
    """Biomass growth and substrate consumption kinetics.

    Rates are per second; ``half_velocity_constant`` is in mg/L.
    """

    decay_rate: float = 0.0
    yield_coefficient: float = 0.5
    maximum_substrate_use_rate: float = 1e-4
    half_velocity_constant: float = 10.0
    first_order_decay_factor: float = 0.0
    porosity: float | None = None

    def __post_init__(self) -> None:
        if self.decay_rate < 0 or self.first_order_decay_factor < 0:
            raise ConfigError("Decay rates must be non-negative.")
        if self.yield_coefficient < 0 or self.maximum_substrate_use_rate < 0:
            raise ConfigError("Yield and maximum substrate use rate must be non-negative.")
        validate_positive(self.half_velocity_constant, "half_velocity_constant")
        if self.porosity is not None:
            validate_range(self.porosity, 0.0, 1.0, "porosity")


@dataclass(frozen=True)
class OutputConfig:
    """Result files, summary table and restart snapshots."""

    write_results: bool = False
    output_directory: str = "output"
    output_format: OutputFormat = OutputFormat.VTU
    output_frequency: int = 1
    output_data_in_terminal: bool = True
    write_restart_states: bool = False
    sand_fraction: str = "0"

    def __post_init__(self) -> None:
        _coerce(self, "output_format", OutputFormat)
        validate_positive(self.output_frequency, "output_frequency")


# ------------------------------------------------------------------
# Aggregate
# ------------------------------------------------------------------

_GROUPS: dict[str, type] = {
    "time_stepping": TimeSteppingConfig,
    "geometry": GeometryConfig,
    "equations": EquationConfig,
    "initial_conditions": InitialConditionConfig,
    "boundary_conditions": BoundaryConfig,
    "constitutive": ConstitutiveConfig,
    "reaction": ReactionConfig,
    "output": OutputConfig,
}


@dataclass(frozen=True)
class Parameters:
    """Complete, immutable run configuration."""

    time_stepping: TimeSteppingConfig = field(default_factory=TimeSteppingConfig)
    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    equations: EquationConfig = field(default_factory=EquationConfig)
    initial_conditions: InitialConditionConfig = field(default_factory=InitialConditionConfig)
    boundary_conditions: BoundaryConfig = field(default_factory=BoundaryConfig)
    constitutive: ConstitutiveConfig = field(default_factory=ConstitutiveConfig)
    reaction: ReactionConfig = field(default_factory=ReactionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "Parameters":
        """Build parameters from a nested mapping.

        Args:
            data: Mapping of group name to a mapping of field values.
                Missing groups and fields keep their defaults.

        Raises:
            ConfigError: On unknown groups or fields, or invalid values.
        """
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("Parameter file must contain a mapping at the top level.")
        groups: dict[str, Any] = {}
        for group_name, values in data.items():
            if group_name not in _GROUPS:
                raise ConfigError(
                    f"Unknown parameter group {group_name!r}; "
                    f"expected one of {sorted(_GROUPS)}."
                )
            group_cls = _GROUPS[group_name]
            values = values or {}
            known = {f.name for f in fields(group_cls)}
            unknown = set(values) - known
            if unknown:
                raise ConfigError(
                    f"Unknown parameter(s) {sorted(unknown)} in group {group_name!r}."
                )
            try:
                groups[group_name] = group_cls(**values)
            except TypeError as exc:
                raise ConfigError(f"Invalid group {group_name!r}: {exc}") from exc
        return cls(**groups)

    def to_dict(self) -> dict[str, Any]:
        """Plain nested mapping, with enums replaced by their identifiers."""

        def _plain(value: Any) -> Any:
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, dict):
                return {k: _plain(v) for k, v in value.items()}
            return value

        return {name: _plain(group) for name, group in asdict(self).items()}


def load_parameters(path: str | Path) -> Parameters:
    """Read a YAML or JSON parameter file.

    Args:
        path: File path with suffix ``.yaml``, ``.yml`` or ``.json``.

    Returns:
        Validated :class:`Parameters`.

    Raises:
        ConfigError: If the file is missing, unreadable or invalid.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Parameter file not found: {path}")
    suffix = path.suffix.lower()
    with open(path, "r", encoding="utf-8") as f:
        try:
            if suffix == ".json":
                data = json.load(f)
            elif suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                raise ConfigError(f"Unsupported parameter file format: {suffix}")
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ConfigError(f"Cannot parse parameter file {path}: {exc}") from exc
    return Parameters.from_dict(data)
