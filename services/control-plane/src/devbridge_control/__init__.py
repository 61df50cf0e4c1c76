"""devbridge control plane - on-demand device tunnels."""

__version__ = "0.1.0"
