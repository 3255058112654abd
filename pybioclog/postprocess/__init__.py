"""Post-processing: result files, summary table, restart snapshots."""

from pybioclog.postprocess.export import result_filename, summary_filename, write_results, write_summary
from pybioclog.postprocess.integrals import effective_hydraulic_conductivity, water_volume
from pybioclog.postprocess.restart import load_state, save_state

__all__ = [
    "result_filename",
    "summary_filename",
    "write_results",
    "write_summary",
    "effective_hydraulic_conductivity",
    "water_volume",
    "load_state",
    "save_state",
]
