"""
Extension Classifier
====================

Maps a file name to a category using the category rule source.
Classification is extension-only and never touches the filesystem.
"""

from pathlib import PurePath
from typing import Iterable, Mapping, Optional, Union

from folder_organizer.config.categories import CategoryRules, get_extension

RuleSource = Union[CategoryRules, Mapping[str, Iterable[str]], None]


def as_rules(rules: RuleSource) -> CategoryRules:
    """Accept either a CategoryRules object or a plain mapping.

    Plain mappings are indexed leniently: when two categories claim the
    same extension, the first in iteration order wins.
    """
    if isinstance(rules, CategoryRules):
        return rules
    return CategoryRules.from_mapping(rules, strict=False)


def classify(file_name: Union[str, PurePath], rules: RuleSource) -> Optional[str]:
    """Return the category for a file name, or None if nothing matches.

    Args:
        file_name: File name or path; only the final component is used.
        rules: Category rule source.

    Returns:
        Category name, or None for files without an extension or without
        a configured category.
    """
    name = PurePath(file_name).name
    extension = get_extension(name)
    if extension is None:
        return None
    return as_rules(rules).category_for_extension(extension)


class ExtensionClassifier:
    """Classifier bound to one rule set."""

    def __init__(self, rules: RuleSource):
        self.rules = as_rules(rules)

    def classify(self, file_name: Union[str, PurePath]) -> Optional[str]:
        return classify(file_name, self.rules)

    def is_known_extension(self, file_name: Union[str, PurePath]) -> bool:
        """True when the name's extension belongs to some category."""
        return self.rules.knows_extension(get_extension(PurePath(file_name).name))
