"""Pathway graph invariants over an immutable snapshot of the catalog.

Provides functions for:
- Snapshot construction (one upfront fetch, adjacency maps built once)
- Traversal (prerequisite ancestors, descendants, depth, reachability)
- Mutation checks (new edge validation, edge removal safety)
- Impact and integrity analysis (touching edges, orphans, stored cycles)

Design decisions:
- Every function is pure: it takes a PathwaySnapshot and never touches the store
- Closure walks are iterative so deep or malformed graphs cannot overflow the stack
- Every walk carries a visited set, so cyclic stored data terminates
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from coursepath.errors import ConflictError, InvalidOperationError, NotFoundError

IMMERSIVE = "immersive"
DEFAULT_MAX_DEPTH = 10


@dataclass(frozen=True)
class CourseNode:
    """A course as seen by the graph engine."""

    id: int
    course_name: str
    course_type: str
    course_key: str | None = None

    @property
    def is_immersive(self) -> bool:
        return self.course_type == IMMERSIVE


@dataclass(frozen=True)
class PathwayEdge:
    """A prerequisite -> next course edge."""

    id: int
    prerequisite_course_id: int
    next_course_id: int
    order: int = 1
    created_by: str = ""


@dataclass(frozen=True)
class PathwaySnapshot:
    """Immutable copy of all courses and pathway edges.

    Attributes:
        courses: Course nodes by id.
        edges: All edges in insertion (id) order.
        outgoing: Edges leaving each course, in insertion order.
        incoming: Edges entering each course, in insertion order.
    """

    courses: Mapping[int, CourseNode]
    edges: tuple[PathwayEdge, ...]
    outgoing: Mapping[int, tuple[PathwayEdge, ...]] = field(default_factory=dict)
    incoming: Mapping[int, tuple[PathwayEdge, ...]] = field(default_factory=dict)

    @classmethod
    def build(cls, courses: Iterable[CourseNode], edges: Iterable[PathwayEdge]) -> PathwaySnapshot:
        """Build a snapshot and its adjacency maps from nodes and edges."""
        course_map = {c.id: c for c in courses}
        ordered = tuple(sorted(edges, key=lambda e: e.id))

        outgoing: dict[int, list[PathwayEdge]] = {}
        incoming: dict[int, list[PathwayEdge]] = {}
        for edge in ordered:
            outgoing.setdefault(edge.prerequisite_course_id, []).append(edge)
            incoming.setdefault(edge.next_course_id, []).append(edge)

        return cls(
            courses=course_map,
            edges=ordered,
            outgoing={k: tuple(v) for k, v in outgoing.items()},
            incoming={k: tuple(v) for k, v in incoming.items()},
        )

    @classmethod
    def from_rows(
        cls, courses: Iterable[Mapping[str, Any]], pathways: Iterable[Mapping[str, Any]]
    ) -> PathwaySnapshot:
        """Build a snapshot from course and pathway row dicts (as returned by crud)."""
        nodes = [
            CourseNode(
                id=row["id"],
                course_name=row["course_name"],
                course_type=row["course_type"],
                course_key=row.get("course_id"),
            )
            for row in courses
        ]
        edges = [
            PathwayEdge(
                id=row["id"],
                prerequisite_course_id=row["prerequisite_course_id"],
                next_course_id=row["next_course_id"],
                order=row.get("order", 1),
                created_by=row.get("created_by", ""),
            )
            for row in pathways
        ]
        return cls.build(nodes, edges)

    def course(self, course_id: int) -> CourseNode | None:
        return self.courses.get(course_id)

    def edge(self, pathway_id: int) -> PathwayEdge | None:
        for edge in self.edges:
            if edge.id == pathway_id:
                return edge
        return None

    def course_name(self, course_id: int) -> str:
        """Readable name of a course, falling back to its id when absent."""
        course = self.courses.get(course_id)
        return course.course_name if course is not None else f"Course ID {course_id}"


# Descriptions


def describe_edge(snapshot: PathwaySnapshot, edge: PathwayEdge) -> str:
    """Readable edge description, e.g. ``"Intro" → "Advanced"``."""
    prereq = snapshot.course_name(edge.prerequisite_course_id)
    nxt = snapshot.course_name(edge.next_course_id)
    return f'"{prereq}" → "{nxt}"'


def edge_label(snapshot: PathwaySnapshot, edge: PathwayEdge) -> str:
    """Unquoted edge label used as an audit entity name."""
    prereq = snapshot.course_name(edge.prerequisite_course_id)
    nxt = snapshot.course_name(edge.next_course_id)
    return f"{prereq} → {nxt}"


# Traversal Functions


def get_ancestors(snapshot: PathwaySnapshot, course_id: int) -> set[int]:
    """Get every course in the prerequisite chain of a course.

    Walks incoming edges backward. Does not include course_id itself unless
    the stored graph has a cycle through it.
    """
    visited: set[int] = set()
    to_visit = [e.prerequisite_course_id for e in snapshot.incoming.get(course_id, ())]

    while to_visit:
        current = to_visit.pop()
        if current in visited:
            continue
        visited.add(current)
        for edge in snapshot.incoming.get(current, ()):
            if edge.prerequisite_course_id not in visited:
                to_visit.append(edge.prerequisite_course_id)

    return visited


def get_descendants(snapshot: PathwaySnapshot, course_id: int) -> set[int]:
    """Get every course reachable forward from a course through outgoing edges."""
    visited: set[int] = set()
    to_visit = [e.next_course_id for e in snapshot.outgoing.get(course_id, ())]

    while to_visit:
        current = to_visit.pop()
        if current in visited:
            continue
        visited.add(current)
        for edge in snapshot.outgoing.get(current, ()):
            if edge.next_course_id not in visited:
                to_visit.append(edge.next_course_id)

    return visited


def is_in_prerequisite_chain(snapshot: PathwaySnapshot, course_id: int, target_id: int) -> bool:
    """Check whether target_id is course_id itself or one of its prerequisite ancestors."""
    if course_id == target_id:
        return True
    return target_id in get_ancestors(snapshot, course_id)


def has_path_to_immersive(snapshot: PathwaySnapshot, course_id: int) -> bool:
    """Check whether a course is immersive or traces back to an immersive course.

    Returns False for unknown courses.
    """
    if course_id not in snapshot.courses:
        return False

    visited: set[int] = set()
    to_visit = [course_id]
    while to_visit:
        current = to_visit.pop()
        if current in visited:
            continue
        visited.add(current)
        course = snapshot.courses.get(current)
        if course is None:
            continue
        if course.is_immersive:
            return True
        for edge in snapshot.incoming.get(current, ()):
            if edge.prerequisite_course_id not in visited:
                to_visit.append(edge.prerequisite_course_id)

    return False


def get_pathway_depth(
    snapshot: PathwaySnapshot, course_id: int, cache: dict[int, int] | None = None
) -> int:
    """Get the longest backward chain from a course to its root.

    Depth is 0 for immersive courses, unknown courses and courses without
    prerequisites; otherwise one more than the deepest prerequisite. A
    course reached twice on the same descent path counts as 0 there, so
    cyclic stored data terminates.

    Args:
        snapshot: Graph to walk.
        course_id: Course to measure.
        cache: Optional depth memo shared across calls on the same snapshot.
            Courses on a stored cycle are never stored, so a cached depth is
            the same from any starting course.

    Returns:
        Depth of the course.
    """
    memo = cache if cache is not None else {}
    # frame: [pending prerequisite ids, course id, best depth, lowest path index revisited]
    stack: list[list[Any]] = []
    on_path: dict[int, int] = {}

    def enter(node: int) -> int | None:
        if node in on_path:
            stack[-1][3] = min(stack[-1][3], on_path[node])
            return 0
        if node in memo:
            return memo[node]
        course = snapshot.courses.get(node)
        if course is None or course.is_immersive:
            return 0
        parents = [e.prerequisite_course_id for e in snapshot.incoming.get(node, ())]
        if not parents:
            return 0
        on_path[node] = len(stack)
        stack.append([iter(parents), node, 0, len(stack) + 1])
        return None

    value = enter(course_id)
    while stack:
        frame = stack[-1]
        if value is not None:
            frame[2] = max(frame[2], value)
            value = None
        parent = next(frame[0], None)
        if parent is None:
            stack.pop()
            node = frame[1]
            index = on_path.pop(node)
            value = frame[2] + 1
            if frame[3] > index:
                memo[node] = value
            elif stack:
                stack[-1][3] = min(stack[-1][3], frame[3])
            continue
        value = enter(parent)

    return value if value is not None else 0


# Mutation Checks


def find_duplicate(
    snapshot: PathwaySnapshot, prerequisite_course_id: int, next_course_id: int
) -> PathwayEdge | None:
    """Find an existing edge with the same (prerequisite, next) pair."""
    for edge in snapshot.outgoing.get(prerequisite_course_id, ()):
        if edge.next_course_id == next_course_id:
            return edge
    return None


def validate_new_pathway(
    snapshot: PathwaySnapshot,
    prerequisite_course_id: int,
    next_course_id: int,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> tuple[CourseNode, CourseNode]:
    """Check that adding prerequisite -> next keeps every pathway invariant.

    Checks run in order: both courses exist, no duplicate pair, the next
    course is not immersive, no cycle, the prerequisite is not already at
    the depth limit, and the prerequisite traces back to an immersive course.

    Returns:
        The (prerequisite, next) course nodes.

    Raises:
        NotFoundError: If either course is unknown.
        ConflictError: If the edge already exists.
        InvalidOperationError: If any graph invariant would break.
    """
    prereq = snapshot.course(prerequisite_course_id)
    nxt = snapshot.course(next_course_id)
    if prereq is None or nxt is None:
        missing = prerequisite_course_id if prereq is None else next_course_id
        raise NotFoundError(f"Course not found: {missing}")

    duplicate = find_duplicate(snapshot, prerequisite_course_id, next_course_id)
    if duplicate is not None:
        raise ConflictError(
            f'This pathway already exists: "{prereq.course_name}" → "{nxt.course_name}" '
            f"(order: {duplicate.order}). Cannot create duplicate pathways."
        )

    if nxt.is_immersive:
        raise InvalidOperationError(
            f'Cannot add "{nxt.course_name}" as a next step. Immersive courses can only be '
            "entry points in a pathway."
        )

    if is_in_prerequisite_chain(snapshot, prerequisite_course_id, next_course_id):
        raise InvalidOperationError(
            f'Cannot create pathway: "{nxt.course_name}" is already in the prerequisite chain '
            f'for "{prereq.course_name}". This would create a circular dependency.'
        )

    depth = get_pathway_depth(snapshot, prerequisite_course_id)
    if depth >= max_depth:
        raise InvalidOperationError(
            "Cannot create pathway: This would exceed the maximum pathway depth of "
            f"{max_depth} levels. Consider restructuring your pathway to avoid overly deep chains."
        )

    if not nxt.is_immersive and not has_path_to_immersive(snapshot, prerequisite_course_id):
        raise InvalidOperationError(
            f'Cannot create pathway: "{prereq.course_name}" does not have a path to an '
            "immersive course. All career accelerator courses must eventually trace back "
            "to an immersive entry point."
        )

    return prereq, nxt


def check_pathway_removal(snapshot: PathwaySnapshot, pathway_id: int) -> PathwayEdge:
    """Check that an edge can be removed without stranding dependent courses.

    Removal is allowed when the next course has no outgoing edges, or when
    another edge still leads into it.

    Returns:
        The edge being removed.

    Raises:
        NotFoundError: If the edge doesn't exist.
        InvalidOperationError: If the next course has dependents and no alternate prerequisite.
    """
    edge = snapshot.edge(pathway_id)
    if edge is None:
        raise NotFoundError(f"Pathway not found: {pathway_id}")

    downstream = snapshot.outgoing.get(edge.next_course_id, ())
    if not downstream:
        return edge

    alternatives = [e for e in snapshot.incoming.get(edge.next_course_id, ()) if e.id != edge.id]
    if alternatives:
        return edge

    target = snapshot.course_name(edge.next_course_id)
    dependents = ", ".join(f'"{snapshot.course_name(e.next_course_id)}"' for e in downstream)
    raise InvalidOperationError(
        f'Cannot delete this pathway: "{target}" is a prerequisite for other courses '
        f"({dependents}) and has no alternative incoming pathways. Remove those pathways "
        "first or add an alternative pathway."
    )


# Impact Analysis


def find_touching_pathways(snapshot: PathwaySnapshot, course_id: int) -> list[PathwayEdge]:
    """Get every edge with the course at either end, in id order."""
    return [
        e
        for e in snapshot.edges
        if e.prerequisite_course_id == course_id or e.next_course_id == course_id
    ]


def find_orphaned_courses(snapshot: PathwaySnapshot, course_id: int) -> list[CourseNode]:
    """Get courses that would become unreachable if a course were deleted.

    Every non-immersive course downstream of the course is checked against a
    snapshot without the course and its edges; it is reported when it reaches
    an immersive course now but would not afterwards.
    """
    downstream = get_descendants(snapshot, course_id) - {course_id}
    if not downstream:
        return []

    remaining = PathwaySnapshot.build(
        (c for c in snapshot.courses.values() if c.id != course_id),
        (
            e
            for e in snapshot.edges
            if e.prerequisite_course_id != course_id and e.next_course_id != course_id
        ),
    )

    orphaned: list[CourseNode] = []
    for next_id in sorted(downstream):
        nxt = snapshot.course(next_id)
        if nxt is None or nxt.is_immersive:
            continue
        if has_path_to_immersive(snapshot, next_id) and not has_path_to_immersive(
            remaining, next_id
        ):
            orphaned.append(nxt)

    return orphaned


# Integrity Analysis


def detect_cycles(snapshot: PathwaySnapshot) -> list[list[int]]:
    """Find all circular prerequisite chains in the stored graph.

    Uses Tarjan's algorithm to find strongly connected components (SCCs)
    with more than one node, which represent cycles. Self-loops are also
    reported.

    Returns:
        List of cycles, each a sorted list of course ids.
    """
    nodes = sorted(
        set(snapshot.courses)
        | {e.prerequisite_course_id for e in snapshot.edges}
        | {e.next_course_id for e in snapshot.edges}
    )
    if not nodes:
        return []

    index_counter = [0]
    stack: list[int] = []
    lowlinks: dict[int, int] = {}
    index: dict[int, int] = {}
    on_stack: dict[int, bool] = {}
    sccs: list[list[int]] = []

    def strongconnect(node: int) -> None:
        index[node] = index_counter[0]
        lowlinks[node] = index_counter[0]
        index_counter[0] += 1
        stack.append(node)
        on_stack[node] = True

        for edge in snapshot.outgoing.get(node, ()):
            successor = edge.next_course_id
            if successor not in index:
                strongconnect(successor)
                lowlinks[node] = min(lowlinks[node], lowlinks[successor])
            elif on_stack.get(successor, False):
                lowlinks[node] = min(lowlinks[node], index[successor])

        if lowlinks[node] == index[node]:
            scc: list[int] = []
            while True:
                successor = stack.pop()
                on_stack[successor] = False
                scc.append(successor)
                if successor == node:
                    break
            if len(scc) > 1:
                sccs.append(sorted(scc))
            elif any(e.next_course_id == node for e in snapshot.outgoing.get(node, ())):
                sccs.append(scc)

    for node in nodes:
        if node not in index:
            strongconnect(node)

    return sorted(sccs, key=lambda x: (len(x), x[0]))


@dataclass
class IntegrityReport:
    """Findings of a whole-graph integrity check.

    Attributes:
        cycles: Circular prerequisite chains (course ids).
        immersive_targets: Edges pointing into an immersive course.
        unreachable_courses: Non-immersive courses with prerequisites but no
            backward path to an immersive course.
        too_deep_courses: Courses whose depth exceeds the limit, with their depth.
        duplicate_edges: Edges repeating an earlier (prerequisite, next) pair.
        dangling_edges: Edges referencing a course that doesn't exist.
    """

    cycles: list[list[int]] = field(default_factory=list)
    immersive_targets: list[PathwayEdge] = field(default_factory=list)
    unreachable_courses: list[CourseNode] = field(default_factory=list)
    too_deep_courses: list[tuple[CourseNode, int]] = field(default_factory=list)
    duplicate_edges: list[PathwayEdge] = field(default_factory=list)
    dangling_edges: list[PathwayEdge] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.cycles
            or self.immersive_targets
            or self.unreachable_courses
            or self.too_deep_courses
            or self.duplicate_edges
            or self.dangling_edges
        )


def check_integrity(
    snapshot: PathwaySnapshot, max_depth: int = DEFAULT_MAX_DEPTH
) -> IntegrityReport:
    """Check stored data against every pathway invariant.

    Useful for data written before the checks existed or by tools that
    bypass the engine. Read only.
    """
    report = IntegrityReport(cycles=detect_cycles(snapshot))

    seen_pairs: set[tuple[int, int]] = set()
    for edge in snapshot.edges:
        if edge.prerequisite_course_id not in snapshot.courses or (
            edge.next_course_id not in snapshot.courses
        ):
            report.dangling_edges.append(edge)
            continue
        pair = (edge.prerequisite_course_id, edge.next_course_id)
        if pair in seen_pairs:
            report.duplicate_edges.append(edge)
        seen_pairs.add(pair)
        if snapshot.courses[edge.next_course_id].is_immersive:
            report.immersive_targets.append(edge)

    depths: dict[int, int] = {}
    for course_id in sorted(snapshot.courses):
        course = snapshot.courses[course_id]
        if course.is_immersive or not snapshot.incoming.get(course_id):
            continue
        if not has_path_to_immersive(snapshot, course_id):
            report.unreachable_courses.append(course)
        depth = get_pathway_depth(snapshot, course_id, depths)
        if depth > max_depth:
            report.too_deep_courses.append((course, depth))

    return report
