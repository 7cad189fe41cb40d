from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional


@dataclass
class Span:
    line: int
    col: int


@dataclass
class Attribute:
    """One ``name value`` line with its indented children.

    ``block`` holds the raw lines of a ``name \\`` block, dedented.
    """

    name: str
    value: str = ""
    span: Span = field(default_factory=lambda: Span(0, 0))
    value_span: Optional[Span] = None
    children: List["Attribute"] = field(default_factory=list)
    block: Optional[List[str]] = None
    block_span: Optional[Span] = None

    def find(self, name: str) -> Optional["Attribute"]:
        for child in self.children:
            if child.name == name:
                return child
        return None

    def find_all(self, name: str) -> Iterator["Attribute"]:
        return (child for child in self.children if child.name == name)

    def add(self, name: str, value: object = "", children: Optional[List["Attribute"]] = None) -> "Attribute":
        child = Attribute(name, str(value), children=list(children or []))
        self.children.append(child)
        return child
