from .convergence import ConvergenceMetrics, Frame, Sample, analyze
from .similarity import similarity

__all__ = ["ConvergenceMetrics", "Frame", "Sample", "analyze", "similarity"]
