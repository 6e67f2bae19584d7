"""Energy accounting and prediction for compute clusters."""

__version__ = "0.1.0"
