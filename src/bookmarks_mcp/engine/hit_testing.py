"""The page's DOM contract, as plain values the drag controller can reason about.

The extension cannot hand us live DOM nodes, so every pointer event arrives with
the pieces of the page we need already serialized: the ancestor chain of the
event target, the chain under the pointer (``elementFromPoint``), the full stack
under the pointer (``elementsFromPoint``) and the geometry of every draggable
item. Chains are lists of ``{"tag", "classes", "data", "rect"}`` dicts ordered
from the element itself up to the document root; ``data`` holds the element's
``data-*`` attributes without the prefix.

Markup the engine understands:

- draggable item: ``data-bookmark-id`` (or ``data-id``), ``data-parent-id``,
  optional ``data-index``
- insertion point: class ``insertion-point`` + ``data-parent-id`` +
  ``data-insertion-index``
- folder header: class ``folder-header`` + ``data-folder-id`` (drop = prepend)
- folder container: any element with ``data-folder-id``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Mapping

from ..models import FolderTarget, InsertionPointTarget, InsertionTarget
from .index_resolver import RowBounds, insertion_index_for_pointer

INSERTION_POINT_CLASS = "insertion-point"
FOLDER_HEADER_CLASS = "folder-header"
ITEM_CLASSES = frozenset({"bookmark-item"})


@dataclass(frozen=True)
class Rect:
    left: float
    top: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height

    def contains(self, x: float, y: float) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> Rect | None:
        if not data:
            return None
        return cls(
            left=float(data.get("left", data.get("x", 0.0))),
            top=float(data.get("top", data.get("y", 0.0))),
            width=float(data.get("width", 0.0)),
            height=float(data.get("height", 0.0)),
        )


@dataclass(frozen=True)
class ElementInfo:
    """One serialized element with a link to its parent."""

    tag: str = "div"
    classes: frozenset[str] = frozenset()
    data: Mapping[str, str] = field(default_factory=dict)
    rect: Rect | None = None
    parent: ElementInfo | None = None

    @classmethod
    def from_chain(cls, chain: Iterable[Mapping[str, Any]] | None) -> ElementInfo | None:
        """Build the innermost element from a target → root list of dicts."""
        items = list(chain or [])
        parent: ElementInfo | None = None
        for raw in reversed(items):
            classes = raw.get("classes") or raw.get("className") or ()
            if isinstance(classes, str):
                classes = classes.split()
            parent = cls(
                tag=str(raw.get("tag", "div")).lower(),
                classes=frozenset(classes),
                data={str(k): str(v) for k, v in (raw.get("data") or {}).items()},
                rect=Rect.from_dict(raw.get("rect")),
                parent=parent,
            )
        return parent

    def ancestors(self) -> Iterator[ElementInfo]:
        """This element, then each parent up to the root."""
        current: ElementInfo | None = self
        while current is not None:
            yield current
            current = current.parent

    def closest(self, predicate: Callable[[ElementInfo], bool]) -> ElementInfo | None:
        for element in self.ancestors():
            if predicate(element):
                return element
        return None

    def has_class(self, name: str) -> bool:
        return name in self.classes

    @property
    def item_id(self) -> str | None:
        return self.data.get("bookmark-id") or self.data.get("id")

    @property
    def is_draggable_item(self) -> bool:
        return self.item_id is not None and (
            bool(self.classes & ITEM_CLASSES) or "parent-id" in self.data
        )


@dataclass(frozen=True)
class ItemGeometry:
    """Bounding box of one rendered draggable item."""

    item_id: str
    parent_id: str
    rect: Rect
    index: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ItemGeometry | None:
        rect = Rect.from_dict(data.get("rect"))
        item_id = data.get("id") or data.get("bookmarkId")
        parent_id = data.get("parentId")
        if rect is None or not item_id or not parent_id:
            return None
        index = data.get("index")
        return cls(str(item_id), str(parent_id), rect, int(index) if index is not None else None)


@dataclass(frozen=True)
class PointerSnapshot:
    """What was under the pointer when the event fired."""

    element_at_point: ElementInfo | None = None
    elements_at_point: tuple[ElementInfo, ...] = ()
    items: tuple[ItemGeometry, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> PointerSnapshot:
        data = data or {}
        stack = tuple(
            element
            for element in (ElementInfo.from_chain(chain) for chain in data.get("elementsAtPoint") or [])
            if element is not None
        )
        items = tuple(
            geometry
            for geometry in (ItemGeometry.from_dict(raw) for raw in data.get("items") or [])
            if geometry is not None
        )
        return cls(
            element_at_point=ElementInfo.from_chain(data.get("elementAtPoint")),
            elements_at_point=stack,
            items=items,
        )

    def item_at(self, x: float, y: float) -> ItemGeometry | None:
        for item in self.items:
            if item.rect.contains(x, y):
                return item
        return None

    def rows_for(self, parent_id: str) -> list[RowBounds]:
        return [
            RowBounds(key=item.item_id, top=item.rect.top, height=item.rect.height)
            for item in self.items
            if item.parent_id == parent_id
        ]


@dataclass(frozen=True)
class PointerEvent:
    """A pointer, mouse or native drag event from one listener layer."""

    kind: str
    x: float
    y: float
    layer: str = "pointer"
    target: ElementInfo | None = None
    hits: PointerSnapshot = field(default_factory=PointerSnapshot)

    @classmethod
    def from_message(cls, message: Mapping[str, Any]) -> PointerEvent:
        return cls(
            kind=str(message.get("action", "")),
            x=float(message.get("x", 0.0)),
            y=float(message.get("y", 0.0)),
            layer=str(message.get("layer", "pointer")),
            target=ElementInfo.from_chain(message.get("target")),
            hits=PointerSnapshot.from_dict(message.get("hits")),
        )


# ---------------------------------------------------------------------------
# Element -> drop target
# ---------------------------------------------------------------------------


def target_for_element(
    element: ElementInfo | None,
    pointer_y: float,
    hits: PointerSnapshot,
) -> InsertionTarget | None:
    """Map the nearest droppable ancestor of ``element`` to an insertion target.

    The innermost match wins: a gap marker inside a folder beats the folder,
    a header beats its container. A container drop picks the insertion point
    from item geometry when there is any, otherwise it appends.
    """
    if element is None:
        return None

    for candidate in element.ancestors():
        if candidate.has_class(INSERTION_POINT_CLASS):
            parent_id = candidate.data.get("parent-id") or candidate.data.get("folder-id")
            raw_index = candidate.data.get("insertion-index")
            if parent_id and raw_index is not None:
                try:
                    return InsertionPointTarget(parent_id=parent_id, insertion_index=int(raw_index))
                except ValueError:
                    return None

        folder_id = candidate.data.get("folder-id")
        if not folder_id:
            continue

        if candidate.has_class(FOLDER_HEADER_CLASS):
            return FolderTarget(folder_id=folder_id, at_header=True)

        rows = hits.rows_for(folder_id)
        if rows:
            return InsertionPointTarget(
                parent_id=folder_id,
                insertion_index=insertion_index_for_pointer(rows, pointer_y),
            )
        return FolderTarget(folder_id=folder_id, at_header=False)

    return None


def resolve_drop_target(event: PointerEvent) -> InsertionTarget | None:
    """Find the drop target for a release event.

    Tries, in order: the event target's ancestors, the element at the release
    point, then every element stacked under the release point (overlays and
    drag images can sit on top of the real container).
    """
    target = target_for_element(event.target, event.y, event.hits)
    if target is not None:
        return target

    target = target_for_element(event.hits.element_at_point, event.y, event.hits)
    if target is not None:
        return target

    for element in event.hits.elements_at_point:
        target = target_for_element(element, event.y, event.hits)
        if target is not None:
            return target

    return None
