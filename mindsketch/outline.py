"""Markdown outline of a mind map."""

from typing import List

from mindsketch.model import MindMap, Node


def outline_lines(mind_map: MindMap, include_descriptions: bool = True) -> List[str]:
    """Markdown outline: root as H1, first two levels as headings, then bullets."""
    root = mind_map.root
    lines = ["---", f"title: {mind_map.title}"]
    if mind_map.description:
        lines.append(f"description: {mind_map.description}")
    lines += ["---", "", f"# {root.title}", ""]

    def add_node(node: Node, depth: int):
        for child in mind_map.children_of(node.id):
            if depth == 1:
                lines.append(f"## {child.title}")
            elif depth == 2:
                lines.append(f"### {child.title}")
            else:
                indent = "  " * (depth - 3)
                lines.append(f"{indent}- {child.title}")

            if include_descriptions and child.description and child.description.strip():
                note_indent = "  " * (depth - 2) if depth > 2 else ""
                for note_line in child.description.strip().split("\n"):
                    lines.append(f"{note_indent}> {note_line}")
                lines.append("")

            add_node(child, depth + 1)

    add_node(root, 1)
    return lines
