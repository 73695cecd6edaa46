"""Per-turn artifacts passed between the collector, engines and controller."""

from .decision import Decision, DecisionProcessingResult

__all__ = ["Decision", "DecisionProcessingResult"]
