"""Reference walker for module parameter graphs.

Hosts normally bring their own traversal engine; this one implements the same
contract so a module can be driven end to end (CLI, tests):

1. The entry transition's handler runs with the module alias as value.
2. For each node, the value comes from the supplied options (any of the
   node's option names), else the node default for no-value nodes, else the
   host prompt, else the node default.
3. The transition taken is, in order: the one whose ``val`` equals a supplied
   value; one whose target node has an option present in the supplied
   options; the one matching the node default; ``"default"``; one with
   ``val=None``. Values of free-form (echoed) nodes are data and never match
   a ``val``, and their prompts carry no menu. No match raises InvalidTransition.
4. A transition without a next node ends the walk.

Per-walk state lives on :class:`Traversal`; its subgraph context is released
exactly once, on the terminal transition or when the walk aborts.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Iterable, List, Mapping, Optional, Protocol, TypeVar, Union

from ..errors import InvalidTransition
from ..obs.prom import TRAVERSALS
from ..utils.ct import ct_eq, wipe
from ..utils.logging import get_logger
from .model import DEFAULT_TRANSITION, EntryPoint, NodeArena, ParamFlag, ParamNode, Transition

log = get_logger()

Options = Union[str, Mapping[str, Any], Iterable[str], None]


class SubgraphState(Protocol):
    def destroy(self) -> None: ...


C = TypeVar("C", bound=SubgraphState)


def parse_mount_options(options: Options) -> Dict[str, Any]:
    """Accept ``"a=1,b=2"``, ``["a=1", "b=2"]`` or a mapping; bare names map to ``""``."""
    if options is None:
        return {}
    if isinstance(options, Mapping):
        return dict(options)
    items = options.split(",") if isinstance(options, str) else list(options)
    out: Dict[str, Any] = {}
    for item in items:
        item = item.strip()
        if not item:
            continue
        name, _, value = item.partition("=")
        out[name.strip()] = value
    return out


@dataclass
class Traversal(Generic[C]):
    options: Dict[str, Any]
    mnt_params: List[str] = field(default_factory=list)
    subgraph: Optional[C] = None
    val: Any = None
    flow: str = "unknown"

    def take_val(self) -> Any:
        """Hand the current node value to the caller; the traversal drops its reference."""
        v, self.val = self.val, None
        return v

    def release(self) -> None:
        if self.subgraph is not None:
            sub, self.subgraph = self.subgraph, None
            sub.destroy()


def _prompt_value(host, node: ParamNode) -> Any:
    echo = bool(node.flags & ParamFlag.ECHO_INPUT) and not node.flags & ParamFlag.MASK_OUTPUT
    text = node.prompt
    choices = [] if node.free_form else node.choices()
    if len(choices) > 1:
        text += " (" + ", ".join(f"{v}: {p}" for v, p in choices) + ")"
    if node.suggested_val:
        text += f" [{node.suggested_val}]"
    value = host.prompt(text, echo)
    if node.flags & ParamFlag.VERIFY_VALUE:
        again = host.prompt(f"{node.prompt} (again)", echo)
        a = value.encode() if isinstance(value, str) else bytes(value)
        b = again.encode() if isinstance(again, str) else bytes(again)
        matched = ct_eq(a, b)
        wipe(again)
        if not matched:
            wipe(value)
            raise InvalidTransition(f"values entered for {node.name} did not match")
    if not value and node.suggested_val:
        return node.suggested_val
    return value


def node_value(host, node: ParamNode, options: Dict[str, Any]) -> Any:
    for name in node.mnt_opt_names:
        if name in options:
            value = options.pop(name)
            # a bare stdin option asks for the value interactively
            if value == "" and node.flags & ParamFlag.STDIN_REQUIRED and host.prompt is not None:
                return _prompt_value(host, node)
            return value
    if node.flags & ParamFlag.NO_VALUE:
        return node.default_val
    if host.prompt is not None:
        return _prompt_value(host, node)
    if node.default_val is not None:
        return node.default_val
    if node.flags & ParamFlag.STDIN_REQUIRED:
        raise InvalidTransition(f"{node.name} must be supplied or entered interactively")
    raise InvalidTransition(f"no value supplied for {node.name}")


def _exact(node: ParamNode, value: Any) -> Optional[Transition]:
    if isinstance(value, str) and not node.free_form:
        for t in node.transitions:
            if t.val is not None and t.val == value:
                return t
    return None


def select_transition(
    arena: NodeArena, node: ParamNode, value: Any, options: Dict[str, Any], *, supplied: bool = True
) -> Transition:
    """Pick the outgoing transition. An unsupplied default never outranks an option naming a target node."""
    t = _exact(node, value) if supplied else None
    if t is not None:
        return t
    for t in node.transitions:
        target = arena.get(t.next_id)
        if target is not None and any(n in options for n in target.mnt_opt_names):
            return t
    t = _exact(node, value)
    if t is not None:
        return t
    for t in node.transitions:
        if t.val == DEFAULT_TRANSITION:
            return t
    for t in node.transitions:
        if t.val is None:
            return t
    raise InvalidTransition(f"value supplied for {node.name} matches no transition")


def walk(host, entry: EntryPoint, options: Options = None, *, selector: Optional[str] = None, flow: str = "unknown") -> List[str]:
    """Run one subgraph traversal; return the mount options the module emitted."""
    trav: Traversal = Traversal(options=parse_mount_options(options), flow=flow)
    arena = entry.arena
    try:
        trav.val = selector if selector is not None else entry.transition.val
        if entry.transition.trans_func is not None:
            entry.transition.trans_func(host, None, trav)
        node = arena.get(entry.transition.next_id)
        while node is not None:
            supplied = any(n in trav.options for n in node.mnt_opt_names)
            trav.val = node_value(host, node, trav.options)
            t = select_transition(arena, node, trav.val, trav.options, supplied=supplied)
            log.debug("node [%s] -> transition [%s]", node.name, t.val)
            if t.trans_func is not None:
                t.trans_func(host, node, trav)
            node = arena.get(t.next_id)
    except Exception as e:
        TRAVERSALS.labels(flow=flow, result="error").inc()
        log.error("traversal of [%s] aborted: %s", arena.name, type(e).__name__)
        raise
    finally:
        wipe(trav.take_val())
        trav.release()
    TRAVERSALS.labels(flow=flow, result="ok").inc()
    return trav.mnt_params
