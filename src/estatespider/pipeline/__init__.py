"""Run orchestration"""

from .runner import run_harvest, sort_newest_first

__all__ = ["run_harvest", "sort_newest_first"]
