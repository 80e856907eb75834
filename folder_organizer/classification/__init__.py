"""Classification module for extension-based categorization."""

from .classifier import ExtensionClassifier, classify, as_rules

__all__ = [
    "ExtensionClassifier",
    "classify",
    "as_rules",
]
