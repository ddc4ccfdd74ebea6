"""Pathway forest builder.

Turns flat course and pathway rows into one tree per immersive course, for
display. Pure: no store access, the same input always yields the same forest.
A course reachable along several routes appears under each of them; a course
already on the current descent path is skipped, so stored cycles terminate.
Trees are built with an explicit stack, so deep stored chains do not hit the
recursion limit.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from coursepath.graph import IMMERSIVE, PathwaySnapshot, get_descendants


@dataclass
class PathwayNode:
    """One course in a pathway tree.

    Attributes:
        course: The course row.
        order: Order of the edge leading here, None at a root.
        depth: Distance from the root (0 at a root).
        next_steps: Child nodes, by ascending edge order.
    """

    course: dict[str, Any]
    order: int | None = None
    depth: int = 0
    next_steps: list[PathwayNode] = field(default_factory=list)


def build_pathway_forest(
    courses: Iterable[Mapping[str, Any]], pathways: Iterable[Mapping[str, Any]]
) -> list[PathwayNode]:
    """Build the pathway forest rooted at each immersive course.

    Args:
        courses: Course rows.
        pathways: Pathway rows.

    Returns:
        Root nodes, by ascending course id.
    """
    course_map = {c["id"]: dict(c) for c in courses}

    children: dict[int, list[Mapping[str, Any]]] = {}
    for edge in sorted(pathways, key=lambda p: p["id"]):
        children.setdefault(edge["prerequisite_course_id"], []).append(edge)
    for edges in children.values():
        # stable: equal orders keep insertion order
        edges.sort(key=lambda p: p["order"])

    forest: list[PathwayNode] = []
    for root in sorted(
        (c for c in course_map.values() if c["course_type"] == IMMERSIVE),
        key=lambda c: c["id"],
    ):
        root_node = PathwayNode(course=root)
        forest.append(root_node)
        # explicit stack of (node, courses on its descent path)
        stack: list[tuple[PathwayNode, frozenset[int]]] = [(root_node, frozenset({root["id"]}))]
        while stack:
            node, path = stack.pop()
            for edge in children.get(node.course["id"], []):
                child = course_map.get(edge["next_course_id"])
                if child is None or child["id"] in path:
                    continue
                child_node = PathwayNode(course=child, order=edge["order"], depth=node.depth + 1)
                node.next_steps.append(child_node)
                stack.append((child_node, path | {child["id"]}))

    return forest


def forest_to_dict(forest: list[PathwayNode]) -> list[dict[str, Any]]:
    """Convert a forest to nested dicts for JSON output."""

    def convert(node: PathwayNode) -> dict[str, Any]:
        return {
            "id": node.course["id"],
            "course_id": node.course.get("course_id"),
            "course_name": node.course["course_name"],
            "course_type": node.course["course_type"],
            "order": node.order,
            "depth": node.depth,
            "next_steps": [],
        }

    result = []
    stack: list[tuple[PathwayNode, dict[str, Any]]] = []
    for root in forest:
        converted = convert(root)
        result.append(converted)
        stack.append((root, converted))
    while stack:
        node, converted = stack.pop()
        for child in node.next_steps:
            child_dict = convert(child)
            converted["next_steps"].append(child_dict)
            stack.append((child, child_dict))
    return result


def pathway_stats(
    courses: Iterable[Mapping[str, Any]], pathways: Iterable[Mapping[str, Any]]
) -> list[dict[str, Any]]:
    """Summarize each immersive course's pathway.

    Returns:
        One dict per immersive course (ascending id) with ``total_courses``
        (distinct courses reachable, root included), ``direct_next_steps``
        and ``course_types`` (sorted, root type included).
    """
    course_rows = list(courses)
    snapshot = PathwaySnapshot.from_rows(course_rows, list(pathways))

    stats = []
    for course_id in sorted(snapshot.courses):
        root = snapshot.courses[course_id]
        if not root.is_immersive:
            continue
        reachable = {course_id} | get_descendants(snapshot, course_id)
        types = {snapshot.courses[c].course_type for c in reachable if c in snapshot.courses}
        stats.append(
            {
                "id": root.id,
                "course_id": root.course_key,
                "course_name": root.course_name,
                "total_courses": len(reachable),
                "direct_next_steps": len(snapshot.outgoing.get(course_id, ())),
                "course_types": sorted(types),
            }
        )
    return stats
