"""Constants and enums shared across ellipsoidfactor."""

from ellipsoidfactor.constants.constants import DegenerateFitReason, MemoryType, OrchestratorState, UNASSIGNED

__all__ = ["DegenerateFitReason", "MemoryType", "OrchestratorState", "UNASSIGNED"]
