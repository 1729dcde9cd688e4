"""Structural fingerprint of fetched markup for drift detection."""
import hashlib
from typing import List

from bs4 import BeautifulSoup, Tag

IGNORED_TAGS = {'script', 'style', 'noscript', 'template'}
# Cells are kept one by one so the column count stays part of the skeleton
UNCOLLAPSED_PARENTS = {'tr'}


def generate_structure_hash(html: str) -> str:
    """
    Fingerprint the element skeleton of an HTML document.

    Tag names, class names and attribute names go into the skeleton; text and
    attribute values do not, so routine content changes keep the hash stable.
    Runs of identical sibling skeletons (table rows, list items, posts)
    collapse into one, so the number of listings does not matter either;
    the cells of a table row are the exception.
    A template redesign changes the hash.

    Args:
        html: Document markup

    Returns:
        64-character SHA-256 hex digest
    """
    soup = BeautifulSoup(html or '', 'html.parser')
    root = soup.body or soup
    skeleton = '\n'.join(_children_skeleton(root, depth=0))
    return hashlib.sha256(skeleton.encode('utf-8')).hexdigest()


def _element_skeleton(element: Tag, depth: int) -> List[str]:
    classes = ' '.join(sorted(element.get('class') or []))
    attributes = ','.join(sorted(name for name in element.attrs if name != 'class'))
    lines = [f"{'  ' * depth}{element.name}[{classes}]({attributes})"]
    lines.extend(_children_skeleton(element, depth + 1))
    return lines


def _children_skeleton(parent: Tag, depth: int) -> List[str]:
    lines = []
    previous = None
    for child in parent.children:
        if not isinstance(child, Tag) or child.name in IGNORED_TAGS:
            continue
        child_lines = _element_skeleton(child, depth)
        if child_lines == previous and parent.name not in UNCOLLAPSED_PARENTS:
            continue
        lines.extend(child_lines)
        previous = child_lines
    return lines
