from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional

from svgrender_core.scene.matrix import Components


@dataclass(frozen=True)
class StyleDeclaration:
    name: str
    value: str
    priority: str = ""


@dataclass
class StyleSnapshotNode:
    """Resolved style and transform of one element at one clock instant."""

    styles: tuple[StyleDeclaration, ...] = ()
    ctm: Optional[Components] = None
    transform_anim: Optional[Components] = None
    attributes: tuple[tuple[str, str], ...] = ()
    children: list["StyleSnapshotNode"] = field(default_factory=list)

    def walk(self) -> Iterator["StyleSnapshotNode"]:
        yield self
        for child in self.children:
            yield from child.walk()

    def node_count(self) -> int:
        return sum(1 for _ in self.walk())
