"""Loop detection over the input relation of a clock schematic."""

from typing import Dict, List

from .errors import GraphError
from .schematic import OFF, ClockSchematic


def successor_map(schematic: ClockSchematic) -> Dict[str, List[str]]:
    """For every declared output, the sorted names of the components fed by it."""
    nxt = {name: [] for name in schematic.list_outputs()}
    for group in (schematic.multiplexers, schematic.dividers, schematic.multipliers, schematic.taps):
        for name, c in group.items():
            for i in schematic.inputs_of(c):
                if i != OFF and i in nxt:
                    nxt[i].append(name)
    for names in nxt.values():
        names.sort()
    return nxt


def find_loops(schematic: ClockSchematic) -> List[List[str]]:
    """Depth-first search for loops.

    The search starts at every oscillator in name order, then at any node not
    reached from an oscillator, also in name order. Successors are visited in
    name order. Every edge back onto the current path yields one loop, listed
    from the node it returns to, with that node repeated at the end.
    """
    nxt = successor_map(schematic)
    roots = sorted(schematic.oscillators) + sorted(n for n in nxt if n not in schematic.oscillators)
    visited = set()
    loops = []

    for root in roots:
        if root in visited:
            continue
        visited.add(root)
        path = [root]
        on_path = {root}
        stack = [iter(nxt[root])]
        while stack:
            node = next(stack[-1], None)
            if node is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if node in on_path:
                loops.append(path[path.index(node):] + [node])
            elif node not in visited:
                visited.add(node)
                path.append(node)
                on_path.add(node)
                stack.append(iter(nxt[node]))
    return loops


def check_no_loops(schematic: ClockSchematic):
    descriptions = sorted({" -> ".join(lp) for lp in find_loops(schematic)})
    if descriptions:
        raise GraphError(f"Loop(s) detected: {', '.join(descriptions)}")
