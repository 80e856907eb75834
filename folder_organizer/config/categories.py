"""
Category Definitions
====================

Defines the category rule source: a mapping of category name to the set of
lowercase, dot-prefixed extensions that belong to it, plus an inverse
extension index built once per rules object.
"""

from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Tuple

from folder_organizer.utils.exceptions import ConfigurationError


DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    "Images": [
        ".jpg", ".jpeg", ".png", ".gif", ".bmp", ".svg",
        ".webp", ".tiff", ".ico",
    ],
    "Documents": [
        ".pdf", ".doc", ".docx", ".txt", ".rtf", ".pages",
        ".odt", ".epub",
    ],
    "Spreadsheets": [".xls", ".xlsx", ".csv", ".numbers", ".ods"],
    "Presentations": [".ppt", ".pptx", ".key", ".odp"],
    "Audio": [".mp3", ".wav", ".aac", ".flac", ".m4a", ".ogg", ".wma"],
    "Video": [".mp4", ".avi", ".mov", ".mkv", ".wmv", ".flv", ".webm", ".m4v"],
    "Archives": [".zip", ".rar", ".7z", ".tar", ".gz", ".bz2", ".xz"],
    "Programs": [".dmg", ".pkg", ".app", ".exe", ".deb", ".rpm"],
    "Code": [
        ".py", ".js", ".html", ".css", ".java", ".cpp", ".c",
        ".php", ".rb", ".go", ".rs",
    ],
    "Fonts": [".ttf", ".otf", ".woff", ".woff2"],
}


def normalize_extension(extension: str) -> str:
    """Lowercase an extension and make sure it carries a leading dot."""
    ext = extension.strip().lower()
    if ext and not ext.startswith("."):
        ext = "." + ext
    return ext


def get_extension(file_name: str) -> Optional[str]:
    """Extract the lowercase, dot-prefixed extension of a file name.

    Leading dots mark hidden files rather than extensions, so ``.DS_Store``
    has none while ``.notes.txt`` has ``.txt``.

    Args:
        file_name: Bare file name (no directories).

    Returns:
        The extension, or None when the name has no extension.
    """
    name = file_name.lstrip(".")
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem or not ext:
        return None
    return "." + ext.lower()


def _validate_category_name(name: str) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError(
            "Category names must be non-empty strings",
            config_key="categories",
            expected_type="str",
        )
    if name in (".", "..") or "/" in name or "\\" in name:
        raise ConfigurationError(
            f"Category name is not a valid folder name: {name!r}",
            config_key=f"categories.{name}",
        )


class CategoryRules:
    """Read-only category rule source with an extension → category index.

    In strict mode an extension claimed by two categories is rejected with
    a ConfigurationError. In lenient mode the first category (in mapping
    iteration order) that claims an extension owns it.
    """

    def __init__(
        self,
        categories: Optional[Mapping[str, Iterable[str]]] = None,
        strict: bool = True
    ):
        """Build the rules and their inverse index.

        Args:
            categories: Mapping of category name to extensions. None or an
                empty mapping means no categories, so nothing matches.
            strict: Reject overlapping extensions.

        Raises:
            ConfigurationError: On malformed input, unsafe category names,
                or (strict mode) overlapping extensions.
        """
        self._categories: Dict[str, FrozenSet[str]] = {}
        self._index: Dict[str, str] = {}

        if categories is None:
            return
        if not isinstance(categories, Mapping):
            raise ConfigurationError(
                "Categories must be a mapping of name to extensions",
                config_key="categories",
                expected_type="mapping",
            )

        for name, extensions in categories.items():
            _validate_category_name(name)
            if extensions is None:
                extensions = []
            if isinstance(extensions, str) or not isinstance(extensions, Iterable):
                raise ConfigurationError(
                    f"Extensions for category {name!r} must be a list",
                    config_key=f"categories.{name}",
                    expected_type="list",
                )

            normalized = set()
            for ext in extensions:
                if not isinstance(ext, str):
                    raise ConfigurationError(
                        f"Extension {ext!r} in category {name!r} is not a string",
                        config_key=f"categories.{name}",
                        expected_type="str",
                    )
                ext = normalize_extension(ext)
                if not ext or ext == ".":
                    continue
                normalized.add(ext)

                owner = self._index.get(ext)
                if owner is None:
                    self._index[ext] = name
                elif owner != name and strict:
                    raise ConfigurationError(
                        f"Extension {ext} is claimed by both {owner!r} and {name!r}",
                        config_key=f"categories.{name}",
                        details={"extension": ext, "categories": [owner, name]},
                    )

            self._categories[name] = frozenset(normalized)

    @classmethod
    def from_mapping(
        cls,
        categories: Optional[Mapping[str, Iterable[str]]],
        strict: bool = True
    ) -> "CategoryRules":
        return cls(categories, strict=strict)

    @classmethod
    def defaults(cls) -> "CategoryRules":
        return cls(DEFAULT_CATEGORIES)

    def category_for_extension(self, extension: str) -> Optional[str]:
        """Look up the owning category of a dot-prefixed extension."""
        return self._index.get(normalize_extension(extension))

    def knows_extension(self, extension: Optional[str]) -> bool:
        return extension is not None and extension in self._index

    def extensions(self, category: str) -> FrozenSet[str]:
        return self._categories.get(category, frozenset())

    @property
    def names(self) -> List[str]:
        return list(self._categories)

    def items(self) -> Iterator[Tuple[str, FrozenSet[str]]]:
        return iter(self._categories.items())

    def to_dict(self) -> Dict[str, List[str]]:
        """Plain mapping with sorted extension lists, for YAML output."""
        return {name: sorted(exts) for name, exts in self._categories.items()}

    def __contains__(self, category: object) -> bool:
        return category in self._categories

    def __len__(self) -> int:
        return len(self._categories)

    def __repr__(self) -> str:
        return f"CategoryRules({len(self._categories)} categories, {len(self._index)} extensions)"
