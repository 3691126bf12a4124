"""
Rule catalog and cross-field predicates.
"""

from .predicates import PREDICATE_REGISTRY, RecordView, RuleViolation, get_predicate, register_predicate
from .rule_catalog import (
    CHECK_REGISTRY,
    DEFAULT_SEVERITY_WEIGHTS,
    FormatRule,
    LogicalRule,
    RuleCatalog,
    RuleCatalogLoader,
    UniquenessRule,
    parse_catalog,
)

__all__ = [
    "PREDICATE_REGISTRY",
    "RecordView",
    "RuleViolation",
    "get_predicate",
    "register_predicate",
    "CHECK_REGISTRY",
    "DEFAULT_SEVERITY_WEIGHTS",
    "FormatRule",
    "LogicalRule",
    "RuleCatalog",
    "RuleCatalogLoader",
    "UniquenessRule",
    "parse_catalog",
]
