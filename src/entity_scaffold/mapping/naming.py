"""
Naming Strategy
Derives class, attribute and module names from table and column names
"""
from __future__ import annotations

import keyword
import re
from typing import Iterable, Optional

import inflect

# Attribute names that clash with the declarative base class
RESERVED_ATTRIBUTES = frozenset({"metadata", "registry"})

_NON_WORD_RE = re.compile(r"[^0-9a-zA-Z_]+")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


class NamingStrategy:
    """
    Converts catalog names into Python names

    blog_post       -> BlogPost      (entity)
    post_id         -> post          (association field)
    class           -> class_        (field)
    BlogPost        -> blog_post     (module)
    """

    def __init__(self, singularize: bool = False):
        self.singularize = singularize
        self._inflect = inflect.engine()

    def singular(self, word: str) -> str:
        """Singular form of a word, or the word itself when already singular"""
        result = self._inflect.singular_noun(word)
        return result or word

    def plural(self, word: str) -> str:
        return self._inflect.plural_noun(word)

    def entity_name(self, table_name: str) -> str:
        """Class name for a table"""
        words = [w for w in _NON_WORD_RE.sub("_", table_name.lower()).split("_") if w]
        if not words:
            words = ["entity"]
        if self.singularize:
            words[-1] = self.singular(words[-1])

        name = "".join(word[:1].upper() + word[1:] for word in words)
        if name[0].isdigit():
            name = "T" + name
        return name

    def field_name(self, column_name: str) -> str:
        """Attribute name for a column"""
        name = _NON_WORD_RE.sub("_", column_name.strip().lower()).strip("_") or "column"
        if name[0].isdigit():
            name = "_" + name
        if keyword.iskeyword(name) or name in RESERVED_ATTRIBUTES:
            name += "_"
        return name

    def association_field_name(self, column_name: str, taken: Optional[Iterable[str]] = None) -> str:
        """Attribute name for a to-one association backed by ``column_name``"""
        base = column_name
        if base.lower().endswith("_id") and len(base) > 3:
            base = base[:-3]
        return self.unique_name(self.field_name(base), taken)

    def collection_field_name(self, column_name: str, taken: Optional[Iterable[str]] = None) -> str:
        """Attribute name for a many-to-many collection (``tag_id`` -> ``tags``)"""
        base = column_name
        if base.lower().endswith("_id") and len(base) > 3:
            base = base[:-3]
        name = self.field_name(base)
        return self.unique_name(self.field_name(self.plural(name)), taken)

    @staticmethod
    def unique_name(name: str, taken: Optional[Iterable[str]] = None) -> str:
        """Append a number until the name no longer collides (post -> post2)"""
        taken_set = set(taken or ())
        if name not in taken_set:
            return name
        counter = 2
        while f"{name}{counter}" in taken_set:
            counter += 1
        return f"{name}{counter}"

    @staticmethod
    def module_name(entity_name: str) -> str:
        """Module name for an entity class"""
        return _CAMEL_BOUNDARY_RE.sub("_", entity_name).lower()
