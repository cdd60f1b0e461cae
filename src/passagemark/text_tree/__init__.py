"""Tree capability shared by the offset mapper and the reconciler."""

from passagemark.text_tree.lexbor import LexborTree, document_root, parse_document
from passagemark.text_tree.plain import Element, PlainTree, TextNode, element
from passagemark.text_tree.protocol import (
    MARK_CLASS,
    MARK_ID_ATTR,
    MARK_IDS_ATTR,
    SKIP_TAGS,
    Mark,
    TextTree,
    is_mark,
)

__all__ = [
    "MARK_CLASS",
    "MARK_IDS_ATTR",
    "MARK_ID_ATTR",
    "SKIP_TAGS",
    "Element",
    "LexborTree",
    "Mark",
    "PlainTree",
    "TextNode",
    "TextTree",
    "document_root",
    "element",
    "is_mark",
    "parse_document",
]
