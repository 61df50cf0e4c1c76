"""devbridge device agent - answers tunnel requests from the control plane."""

__version__ = "0.1.0"
