"""Shallow, position-indexed reconciliation of the rendered tree.

Each pass produces a fresh candidate tree. Rather than swapping the whole
view (which would throw away rendered diagrams and make the view flicker),
:func:`reconcile` walks old and candidate children side by side, by index:

- index only in the candidate: append a copy
- index only in the old tree: remove
- different node kind or tag: replace wholesale
- both text: update the text if it changed
- both elements: skip if they are equivalent (see below), otherwise replace
  wholesale when the serialized markup differs

Two elements are equivalent when their markup matches after every diagram
node in either one is reduced to its tag and fingerprint. A diagram that was
rendered (or failed) in the old tree therefore survives a candidate that
carries the same pending diagram, at the top level or nested inside a list
or quote, while any other change to the element still replaces it.

This is not a keyed diff. Inserting or deleting a node mid-document shifts
every later index and replaces those nodes; the workload it is built for
appends and rewrites at the tail.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass

from bs4 import NavigableString, PageElement, Tag

from rivulet.tree import fingerprint_of, is_sub_content


@dataclass(slots=True)
class PatchStats:
    """Counts of what one reconciliation did."""

    appended: int = 0
    removed: int = 0
    replaced: int = 0
    updated_text: int = 0
    preserved: int = 0

    @property
    def mutations(self) -> int:
        """Number of changes made to the live tree."""
        return self.appended + self.removed + self.replaced + self.updated_text


def _canonical(node: Tag) -> str:
    """Markup with every diagram reduced to its fingerprint."""
    if is_sub_content(node):
        return f'<{node.name} fingerprint="{fingerprint_of(node)}"/>'
    if not any(is_sub_content(d) for d in node.find_all(True)):
        return str(node)

    clone = copy.copy(node)
    for diagram in clone.find_all(is_sub_content):
        stub = Tag(name=diagram.name, attrs={"fingerprint": fingerprint_of(diagram) or ""})
        diagram.replace_with(stub)
    return str(clone)


def _equivalent(old: Tag, new: Tag) -> bool:
    if str(old) == str(new):
        return True
    return _canonical(old) == _canonical(new)


def _same_kind(old: PageElement, new: PageElement) -> bool:
    if type(old) is not type(new):
        return False
    if isinstance(old, Tag):
        return old.name == new.name  # type: ignore[union-attr]
    return True


def reconcile(root: Tag, candidates: list[PageElement]) -> PatchStats:
    """Patch ``root``'s children toward ``candidates``.

    Args:
        root: Container in the live tree
        candidates: Top-level nodes of this pass's candidate tree; they are
            copied, never moved, into the live tree

    Returns:
        What changed
    """
    stats = PatchStats()
    old_nodes = list(root.contents)

    for index in range(max(len(old_nodes), len(candidates))):
        old = old_nodes[index] if index < len(old_nodes) else None
        new = candidates[index] if index < len(candidates) else None

        if old is None:
            root.append(copy.copy(new))
            stats.appended += 1
            continue

        if new is None:
            old.extract()
            stats.removed += 1
            continue

        if not _same_kind(old, new):
            old.replace_with(copy.copy(new))
            stats.replaced += 1
            continue

        if isinstance(old, NavigableString):
            if str(old) != str(new):
                old.replace_with(copy.copy(new))
                stats.updated_text += 1
            continue

        assert isinstance(old, Tag) and isinstance(new, Tag)
        if _equivalent(old, new):
            if str(old) != str(new):
                stats.preserved += 1
            continue

        old.replace_with(copy.copy(new))
        stats.replaced += 1

    return stats
