"""Repository layer for data access."""

from rulebook.repositories.base import BaseRepository
from rulebook.repositories.quality_profile import ActiveRuleRepository, QualityProfileRepository
from rulebook.repositories.rule import RuleRecord, RuleRepository

__all__ = [
    "BaseRepository",
    "ActiveRuleRepository",
    "QualityProfileRepository",
    "RuleRecord",
    "RuleRepository",
]
