"""
Node predicates and inline-style helpers.
"""

from typing import Dict, Optional

from bs4 import Comment, NavigableString, Tag


# Inline, text-bearing elements. A marker flanked by these reads as a
# break inside running text.
INLINE_TEXT_TAGS = frozenset({
    "a", "abbr", "b", "bdi", "bdo", "cite", "code", "data", "del", "dfn",
    "em", "font", "i", "ins", "kbd", "label", "mark", "q", "s", "samp",
    "small", "span", "strong", "sub", "sup", "time", "u", "var",
})

# Ancestors that give a marker a block context ("wrapped" markers).
BLOCK_CONTEXT_TAGS = frozenset({
    "p", "div", "li", "dd", "dt", "blockquote", "pre", "td", "th",
    "h1", "h2", "h3", "h4", "h5", "h6", "figcaption", "summary",
})

DISPLAY = "display"
HIDDEN_DISPLAY = "none"


def is_marker(node, marker_tag: str = "br") -> bool:
    return isinstance(node, Tag) and node.name == marker_tag


def is_insignificant(node) -> bool:
    """Whitespace-only text and comments do not count as content."""
    if isinstance(node, Comment):
        return True
    return isinstance(node, NavigableString) and not node.strip()


def is_text(node) -> bool:
    return (
        isinstance(node, NavigableString)
        and not isinstance(node, Comment)
        and bool(node.strip())
    )


def is_textual(node, marker_tag: str = "br") -> bool:
    """Non-empty text, or an inline element that actually carries text."""
    if is_text(node):
        return True
    if isinstance(node, Tag) and node.name != marker_tag and node.name in INLINE_TEXT_TAGS:
        return bool(node.get_text().strip())
    return False


def next_significant_sibling(node):
    sibling = node.next_sibling
    while sibling is not None and is_insignificant(sibling):
        sibling = sibling.next_sibling
    return sibling


def previous_significant_sibling(node):
    sibling = node.previous_sibling
    while sibling is not None and is_insignificant(sibling):
        sibling = sibling.previous_sibling
    return sibling


def is_inside(node, ancestor: Tag) -> bool:
    parent = node.parent
    while parent is not None:
        if parent is ancestor:
            return True
        parent = parent.parent
    return False


def parse_style(style: Optional[str]) -> Dict[str, str]:
    declarations: Dict[str, str] = {}
    if not style:
        return declarations
    for chunk in style.split(";"):
        name, sep, value = chunk.partition(":")
        if sep and name.strip():
            declarations[name.strip().lower()] = value.strip()
    return declarations


def format_style(declarations: Dict[str, str]) -> str:
    return "; ".join(f"{name}: {value}" for name, value in declarations.items())


def get_display(tag: Tag) -> Optional[str]:
    return parse_style(tag.get("style")).get(DISPLAY)


def set_display(tag: Tag, value: Optional[str]) -> None:
    """Set or clear the inline display value; drop `style` once it is empty."""
    declarations = parse_style(tag.get("style"))
    if value is None:
        declarations.pop(DISPLAY, None)
    else:
        declarations[DISPLAY] = value
    if declarations:
        tag["style"] = format_style(declarations)
    elif tag.has_attr("style"):
        del tag["style"]
