"""
Live document wrapper with structural mutation reporting.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Union

from bs4 import BeautifulSoup, PageElement, Tag

from shared.logging import get_logger


@dataclass
class MutationRecord:
    """One structural change under `target`."""
    target: Tag
    added_nodes: List[PageElement] = field(default_factory=list)
    removed_nodes: List[PageElement] = field(default_factory=list)


MutationListener = Callable[[List[MutationRecord]], None]


class LiveDocument:
    """BeautifulSoup tree shared between the host and the engine.

    The host mutates structure through the methods below; each call is
    reported to observers as a batch of `MutationRecord` (or collected
    into one batch inside `batch()`). Attribute writes made directly on
    nodes are not reported.
    """

    def __init__(
        self,
        markup: str = "",
        parser: str = "html.parser",
        scope_selectors: Sequence[str] = (".mes_text",),
        message_selector: str = ".mes",
        message_id_attribute: str = "mesid",
        marker_tag: str = "br",
    ):
        self.parser = parser
        self.soup = BeautifulSoup(markup, parser)
        self.scope_selector = ", ".join(scope_selectors)
        self.message_selector = message_selector
        self.message_id_attribute = message_id_attribute
        self.marker_tag = marker_tag
        self.logger = get_logger("visibility.document")
        self._observers: List[MutationListener] = []
        self._pending: Optional[List[MutationRecord]] = None
        self._batch_depth = 0

    @classmethod
    def from_config(cls, config, markup: str = "") -> "LiveDocument":
        return cls(
            markup,
            scope_selectors=config.scope_selectors,
            message_selector=config.message_selector,
            message_id_attribute=config.message_id_attribute,
            marker_tag=config.marker_tag,
        )

    @property
    def root(self) -> Tag:
        """The document body, or the whole tree for body-less fragments."""
        return self.soup.body or self.soup

    # Queries

    def find_scopes(self) -> List[Tag]:
        return self.root.select(self.scope_selector)

    def markers_in(self, scope: Tag) -> List[Tag]:
        return scope.find_all(self.marker_tag)

    def is_scope(self, node) -> bool:
        return isinstance(node, Tag) and node.css.match(self.scope_selector)

    def looks_like_scope(self, node) -> bool:
        """True for a scope, a message container, or anything holding one."""
        if not isinstance(node, Tag):
            return False
        if self.is_scope(node) or node.css.match(self.message_selector):
            return True
        return node.select_one(self.scope_selector) is not None

    def scope_for(self, node) -> Optional[Tag]:
        """Scope containing `node`, falling back to its message container."""
        element = node if isinstance(node, Tag) else getattr(node, "parent", None)
        if element is None:
            return None
        if self.is_scope(element):
            return element
        scope = element.css.closest(self.scope_selector)
        if scope is not None:
            return scope
        container = element.css.closest(self.message_selector)
        if container is None and element.css.match(self.message_selector):
            container = element
        if container is not None:
            return container.select_one(self.scope_selector)
        return None

    def scope_by_message_id(self, message_id: Union[int, str]) -> Optional[Tag]:
        for container in self.root.select(self.message_selector):
            if container.get(self.message_id_attribute) == str(message_id):
                return container.select_one(self.scope_selector)
        return None

    def contains(self, node) -> bool:
        parent = node.parent
        while parent is not None:
            if parent is self.soup:
                return True
            parent = parent.parent
        return node is self.soup

    def serialize(self) -> str:
        return str(self.soup)

    # Structural mutations

    def parse_fragment(self, html: str) -> List[PageElement]:
        return list(BeautifulSoup(html, self.parser).contents)

    def append_html(self, parent: Tag, html: str) -> List[PageElement]:
        nodes = self.parse_fragment(html)
        for node in nodes:
            parent.append(node)
        self._record(MutationRecord(target=parent, added_nodes=nodes))
        return nodes

    def insert_html(self, parent: Tag, index: int, html: str) -> List[PageElement]:
        nodes = self.parse_fragment(html)
        for offset, node in enumerate(nodes):
            parent.insert(index + offset, node)
        self._record(MutationRecord(target=parent, added_nodes=nodes))
        return nodes

    def replace_children(self, parent: Tag, html: str) -> List[PageElement]:
        removed = [node.extract() for node in list(parent.contents)]
        nodes = self.parse_fragment(html)
        for node in nodes:
            parent.append(node)
        self._record(MutationRecord(target=parent, added_nodes=nodes, removed_nodes=removed))
        return nodes

    def remove(self, node: PageElement) -> None:
        parent = node.parent
        if parent is None:
            return
        node.extract()
        self._record(MutationRecord(target=parent, removed_nodes=[node]))

    # Observation

    def observe(self, listener: MutationListener) -> None:
        if listener not in self._observers:
            self._observers.append(listener)

    def disconnect(self, listener: MutationListener) -> None:
        if listener in self._observers:
            self._observers.remove(listener)

    @contextmanager
    def batch(self) -> Iterator[None]:
        """Deliver every mutation made inside the block as a single batch."""
        if self._batch_depth == 0:
            self._pending = []
        self._batch_depth += 1
        try:
            yield
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                records, self._pending = self._pending, None
                if records:
                    self._deliver(records)

    def _record(self, record: MutationRecord) -> None:
        if self._pending is not None:
            self._pending.append(record)
        else:
            self._deliver([record])

    def _deliver(self, records: List[MutationRecord]) -> None:
        for listener in list(self._observers):
            listener(records)
