"""Reference resolution for OpenAPI documents.

This module provides the ReferenceResolver class: it resolves ``$ref``
references into canonical schemas, memoizes the results per normalized
reference path, and analyses the reference graph so that cycles stay
references instead of being expanded.
"""

import logging
import threading
from collections.abc import Iterable

from reefgen.codegen.cache import WriteOnceCache
from reefgen.codegen.composer import SchemaComposer
from reefgen.codegen.diagnostics import Diagnostic, DiagnosticKind, Outcome
from reefgen.codegen.document import Document, DocumentNode, normalize_ref
from reefgen.codegen.ir import Ref, SchemaRef, Slot, Unknown, iter_refs
from reefgen.config import GeneratorConfig
from reefgen.exceptions import CycleDetected, ResolutionError

logger = logging.getLogger(__name__)


class ReferenceResolver:
    """Resolves references and tracks the reference graph of one document.

    Named results are cached write-once: concurrent requests for one path
    block until the first finishes and then read its result.

    Example:
        >>> resolver = ReferenceResolver(document, GeneratorConfig())
        >>> outcome = resolver.resolve(SchemaRef.named('#/components/schemas/Pet'))
        >>> resolver.is_recursive('#/components/schemas/Node')
        True
    """

    def __init__(self, document: Document, config: GeneratorConfig):
        """Initialize the reference resolver.

        Args:
            document: The document references resolve against.
            config: The generator configuration of the run.
        """
        self.document = document
        self.config = config
        self.composer = SchemaComposer(self, config)
        self._cache: WriteOnceCache[str, Outcome[Slot]] = WriteOnceCache('resolution')
        self._graph_lock = threading.RLock()
        self._edges: dict[str, list[Ref]] = {}
        self._components: dict[str, int] = {}
        self._component_members: list[tuple[str, ...]] = []
        self._self_loops: set[str] = set()

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, ref: SchemaRef) -> Outcome[Slot]:
        """Resolve a schema reference into a canonical slot.

        Raises:
            Unresolved: If a named reference points to a path with no node.
            ResolutionError: If a named reference is not a local reference.
        """
        if ref.is_named:
            return self.resolve_path(ref.path)
        return self.composer.compose(ref.node)

    def resolve_path(self, path: str) -> Outcome[Slot]:
        normalized = normalize_ref(path)
        return self._cache.get_or_compute(normalized, lambda: self._resolve_uncached(normalized))

    def _resolve_uncached(self, path: str) -> Outcome[Slot]:
        node = self.document.lookup(path)
        logger.debug(f'Resolving {path}')
        return self.composer.compose(node)

    def follow(self, path: str) -> tuple[str, Outcome[Slot]]:
        """Resolve ``path`` and follow alias references to the final named schema.

        Nullability anywhere along the chain is carried to the result. A chain
        that loops back onto itself degrades to ``Unknown``.

        Returns:
            The final path of the chain and its resolved slot.
        """
        seen: list[str] = []
        diagnostics: list[Diagnostic] = []
        nullable = False
        current = normalize_ref(path)
        while True:
            if current in seen:
                diagnostic = Diagnostic.warning(
                    DiagnosticKind.UNSUPPORTED_CONSTRUCT,
                    f'Reference cycle without a concrete schema: {" -> ".join(seen + [current])}',
                    current,
                )
                diagnostics.append(diagnostic)
                return current, Outcome(Slot(Unknown(reason='alias cycle', diagnostic=diagnostic)), tuple(diagnostics))
            seen.append(current)
            outcome = self.resolve_path(current)
            diagnostics.extend(outcome.diagnostics)
            slot = outcome.value
            nullable = nullable or slot.nullable
            if isinstance(slot.schema, Ref):
                current = slot.schema.path
                continue
            return current, Outcome(slot.as_nullable(nullable), tuple(diagnostics))

    def deref(self, node: DocumentNode) -> DocumentNode:
        """Follow ``$ref`` on a non-schema object (parameter, response, request body).

        Raises:
            Unresolved: If a reference in the chain points nowhere.
            ResolutionError: If the chain loops.
        """
        seen: list[str] = []
        while node.ref is not None:
            path = normalize_ref(node.ref)
            if path in seen:
                raise ResolutionError(path, 'reference cycle')
            seen.append(path)
            node = self.document.lookup(path)
        return node

    def resolved_paths(self) -> list[str]:
        return self._cache.keys()

    # -------------------------------------------------------------------------
    # Reference graph
    # -------------------------------------------------------------------------

    def analyze(self, roots: Iterable[tuple[str, str]]) -> list[Diagnostic]:
        """Resolve everything reachable from ``roots`` and compute reference cycles.

        Args:
            roots: ``(path, pointer)`` pairs; the pointer locates where the
                reference was written and is used for diagnostics.

        Returns:
            An ``Unresolved`` error diagnostic for every missing target.
        """
        diagnostics: list[Diagnostic] = []
        with self._graph_lock:
            pending = list(roots)
            while pending:
                path, pointer = pending.pop(0)
                try:
                    path = normalize_ref(path)
                except ResolutionError as e:
                    diagnostics.append(Diagnostic.from_exception(DiagnosticKind.UNRESOLVED, e, pointer))
                    continue
                if path in self._edges:
                    continue
                try:
                    outcome = self.resolve_path(path)
                except CycleDetected:
                    continue
                except ResolutionError as e:
                    self._edges[path] = []
                    diagnostics.append(Diagnostic.from_exception(DiagnosticKind.UNRESOLVED, e, pointer))
                    continue
                refs = list(iter_refs(outcome.value.schema))
                self._edges[path] = refs
                pending.extend((ref.path, ref.pointer or path) for ref in refs)
            self._compute_components()
        return diagnostics

    def _compute_components(self) -> None:
        """Tarjan's strongly connected components, iteratively."""
        index_of: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        on_stack: set[str] = set()
        stack: list[str] = []
        components: list[tuple[str, ...]] = []
        counter = 0

        for start in self._edges:
            if start in index_of:
                continue
            work = [(start, 0)]
            while work:
                node, child = work.pop()
                if child == 0:
                    index_of[node] = lowlink[node] = counter
                    counter += 1
                    stack.append(node)
                    on_stack.add(node)
                targets = [ref.path for ref in self._edges.get(node, ())]
                for position in range(child, len(targets)):
                    target = targets[position]
                    if target not in self._edges:
                        continue
                    if target not in index_of:
                        work.append((node, position + 1))
                        work.append((target, 0))
                        break
                    if target in on_stack:
                        lowlink[node] = min(lowlink[node], index_of[target])
                else:
                    if lowlink[node] == index_of[node]:
                        members = []
                        while True:
                            member = stack.pop()
                            on_stack.discard(member)
                            members.append(member)
                            if member == node:
                                break
                        components.append(tuple(sorted(members)))
                    if work:
                        parent = work[-1][0]
                        lowlink[parent] = min(lowlink[parent], lowlink[node])

        self._component_members = components
        self._components = {member: i for i, members in enumerate(components) for member in members}
        self._self_loops = {
            path for path, refs in self._edges.items() if any(ref.path == path for ref in refs)
        }

    def _ensure_analyzed(self, *paths: str) -> None:
        with self._graph_lock:
            missing = [(path, path) for path in paths if path not in self._edges]
            if missing:
                self.analyze(missing)

    def is_recursive(self, path: str) -> bool:
        """Whether ``path`` can reach itself through references."""
        path = normalize_ref(path)
        self._ensure_analyzed(path)
        index = self._components.get(path)
        if index is None:
            return False
        return len(self._component_members[index]) > 1 or path in self._self_loops

    def in_same_cycle(self, first: str, second: str) -> bool:
        first, second = normalize_ref(first), normalize_ref(second)
        self._ensure_analyzed(first, second)
        if first == second:
            return self.is_recursive(first)
        index = self._components.get(first)
        return index is not None and index == self._components.get(second)

    def cycles(self) -> list[tuple[str, ...]]:
        """All reference cycles found so far, each as a sorted tuple of paths."""
        with self._graph_lock:
            return [
                members
                for members in self._component_members
                if len(members) > 1 or members[0] in self._self_loops
            ]
