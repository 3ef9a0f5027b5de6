"""Search engine query commands."""

from .healthcheck_queries import AverageDateHistogramCommand

__all__ = ["AverageDateHistogramCommand"]
