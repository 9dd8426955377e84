"""Parameter graph contract: nodes, transitions and the arena that owns them.

A graph is built at runtime into a :class:`NodeArena`. Transitions name their
target by node key; :meth:`NodeArena.freeze` resolves keys to integer ids once
every node exists, so tables can reference nodes declared later and several
graph variants can coexist without sharing nodes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from ..errors import InternalConsistency

if TYPE_CHECKING:  # pragma: no cover
    from ..host import HostContext
    from .walker import Traversal

__all__ = [
    "DEFAULT_TRANSITION",
    "ParamFlag",
    "ValType",
    "Transition",
    "ParamNode",
    "NodeArena",
    "EntryPoint",
]

DEFAULT_TRANSITION = "default"

TransFunc = Callable[["HostContext", Optional["ParamNode"], "Traversal"], None]


class ParamFlag(IntFlag):
    NONE = 0
    ECHO_INPUT = 0x01
    MASK_OUTPUT = 0x02
    NO_VALUE = 0x04
    STDIN_REQUIRED = 0x08
    VERIFY_VALUE = 0x10


class ValType(str, Enum):
    STR = "str"


@dataclass
class Transition:
    """Edge out of a node.

    ``val`` is matched against the node value; ``"default"`` is the catch-all
    and ``None`` accepts any value. ``next_key`` of ``None`` ends the branch.
    """

    val: Optional[str]
    pretty_val: Optional[str] = None
    next_key: Optional[str] = None
    trans_func: Optional[TransFunc] = None
    next_id: Optional[int] = None


@dataclass
class ParamNode:
    key: str
    mnt_opt_names: Tuple[str, ...]
    prompt: str
    val_type: ValType = ValType.STR
    default_val: Optional[str] = None
    suggested_val: Optional[str] = None
    display_opts: Optional[str] = None
    flags: ParamFlag = ParamFlag.NONE
    transitions: List[Transition] = field(default_factory=list)
    id: int = -1

    @property
    def name(self) -> str:
        return self.mnt_opt_names[0]

    @property
    def free_form(self) -> bool:
        """Echoed input (a path, say) is data; it never names a transition."""
        return bool(self.flags & ParamFlag.ECHO_INPUT)

    def choices(self) -> List[Tuple[str, str]]:
        """Named transitions as ``(val, pretty_val)`` pairs, for menus."""
        return [(t.val, t.pretty_val or t.val) for t in self.transitions if t.val]


class NodeArena:
    def __init__(self, name: str):
        self.name = name
        self._nodes: List[ParamNode] = []
        self._index: Dict[str, int] = {}
        self._frozen = False

    def add(self, node: ParamNode) -> int:
        if self._frozen:
            raise InternalConsistency(f"graph {self.name} is frozen")
        if node.key in self._index:
            raise InternalConsistency(f"duplicate node key {node.key!r} in graph {self.name}")
        node.id = len(self._nodes)
        self._nodes.append(node)
        self._index[node.key] = node.id
        return node.id

    def freeze(self) -> "NodeArena":
        for node in self._nodes:
            for t in node.transitions:
                t.next_id = self.resolve(t.next_key)
        self._frozen = True
        return self

    def resolve(self, key: Optional[str]) -> Optional[int]:
        if key is None:
            return None
        try:
            return self._index[key]
        except KeyError:
            raise InternalConsistency(f"graph {self.name} has no node {key!r}") from None

    def get(self, node_id: Optional[int]) -> Optional[ParamNode]:
        if node_id is None:
            return None
        return self._nodes[node_id]

    def __getitem__(self, key: str) -> ParamNode:
        return self._nodes[self._index[key]]

    def __iter__(self):
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def entry(
        self,
        val: str,
        next_key: str,
        trans_func: Optional[TransFunc] = None,
        pretty_val: Optional[str] = None,
    ) -> "EntryPoint":
        t = Transition(val=val, pretty_val=pretty_val, next_key=next_key, trans_func=trans_func)
        t.next_id = self.resolve(next_key)
        return EntryPoint(transition=t, arena=self)


@dataclass
class EntryPoint:
    """Transition into a module subgraph, as handed to the host."""

    transition: Transition
    arena: NodeArena

    @property
    def root(self) -> ParamNode:
        node = self.arena.get(self.transition.next_id)
        if node is None:
            raise InternalConsistency(f"entry into graph {self.arena.name} has no target node")
        return node
