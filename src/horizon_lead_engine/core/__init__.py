"""Core scoring engine for lead qualification."""

from .models import Lead, Interaction, InteractionType
from .scorer import LeadScorer, ScoreResult, ScoredLead, NextAction, ActionType
from .weights import Grade, Priority, ScoreCategory
from .config import EngineConfig, EngineConfigManager

__all__ = [
    "Lead",
    "Interaction",
    "InteractionType",
    "LeadScorer",
    "ScoreResult",
    "ScoredLead",
    "NextAction",
    "ActionType",
    "Grade",
    "Priority",
    "ScoreCategory",
    "EngineConfig",
    "EngineConfigManager",
]
