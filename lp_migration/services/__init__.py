"""Service modules"""
from .analyzer import OpportunityAnalyzer
from .executor import PlanExecutor
from .migration import MigrationManager
from .planner import PlanBuilder

__all__ = ["OpportunityAnalyzer", "PlanBuilder", "PlanExecutor", "MigrationManager"]
