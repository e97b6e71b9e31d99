"""
templatef 核心模块
"""
from .executor import Executor
from .placeholder import PlaceholderSubstitutor, SubstitutionContext, collect_metadata
from .planner import CleanupPlanner, build_plan
from .restore import RestorationEngine
from .sanitizer import SanitizationPattern, Sanitizer
from .undo import UndoLogStore

__all__ = [
    'Executor',
    'PlaceholderSubstitutor',
    'SubstitutionContext',
    'collect_metadata',
    'CleanupPlanner',
    'build_plan',
    'RestorationEngine',
    'SanitizationPattern',
    'Sanitizer',
    'UndoLogStore',
]
