"""Progressive image convergence benchmark."""

__version__ = "0.1.0"
