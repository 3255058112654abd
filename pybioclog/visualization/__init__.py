"""Visualization: column profiles, 2-D fields and conductivity history."""

from pybioclog.visualization.plot import plot_conductivity_history, plot_field, plot_profile

__all__ = ["plot_profile", "plot_field", "plot_conductivity_history"]
