"""
tags.py
-------

The global tag vocabulary. Trades carry their own tag membership; this
ledger only owns the list of tags a trade may be labelled with, in the
order the user created them.
"""

import logging
from typing import Iterable, Iterator, List, Optional

from .config import DEFAULT_TAGS

logger = logging.getLogger(__name__)


class TagLedger:
    def __init__(self, tags: Optional[Iterable[str]] = None) -> None:
        self._tags: List[str] = []
        for tag in DEFAULT_TAGS if tags is None else tags:
            self.create_tag(tag)

    def create_tag(self, text: str) -> bool:
        """Add a tag to the vocabulary. Blank or duplicate tags are ignored."""
        tag = (text or "").strip()
        if not tag or tag in self._tags:
            return False
        self._tags = [*self._tags, tag]
        logger.debug("tag created: %s", tag)
        return True

    def replace(self, tags: Iterable[str]) -> None:
        self._tags = []
        for tag in tags:
            self.create_tag(tag)

    def to_list(self) -> List[str]:
        return list(self._tags)

    def __contains__(self, tag: object) -> bool:
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._tags))

    def __len__(self) -> int:
        return len(self._tags)


def toggle_membership(tags: List[str], tag: str) -> List[str]:
    """Return a new tag list with `tag` removed if present, else appended."""
    if tag in tags:
        return [t for t in tags if t != tag]
    return [*tags, tag]
