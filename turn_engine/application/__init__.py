"""Application layer - turn orchestration."""

from .turn_service import TurnController

__all__ = ["TurnController"]
