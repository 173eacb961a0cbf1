"""Validation of clock schematics.

Checks run in a fixed order, cheapest and most local first, and the first
failing check raises. Each check may rely on the ones before it having
passed, so the loop search never meets a dangling reference.

  valid_names         names use only a-z, 0-9 and _
  no_duplicate_names  no output is declared twice
  all_inputs_exist    inputs refer to non-terminal outputs or "off"
  all_outputs_used    non-terminal outputs feed something
  defaults_exist      mux/divider/multiplier defaults are declared options
  no_loops            the input relation has no loop

With a register catalog, two more checks follow:

  field_paths_exist   every field reference is in the catalog
  field_values_fit    every fixed bit value fits its field
"""

import logging
import re
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

from .cycles import check_no_loops
from .errors import NamingError, UnresolvedReferenceError
from .fields import check_bit_fit
from .parser import parse_schematic
from .schematic import OFF, ClockSchematic, OutputSelection

logger = logging.getLogger(__name__)

_INVALID_CHAR = re.compile(r'[^a-z0-9_]')


def check_valid_names(sch: ClockSchematic):
    names = sorted(set(sch.list_inputs()) | set(sch.list_outputs()))
    for name in names:
        m = _INVALID_CHAR.search(name)
        if m:
            raise NamingError(f"Name '{name}' contains invalid character: '{m.group(0)}'")
        if not name:
            raise NamingError("Empty name")
    if OFF in sch.list_outputs():
        raise NamingError(f"Name '{OFF}' is reserved for unconnected inputs")


def check_no_duplicate_names(sch: ClockSchematic):
    for name, components in sorted(sch.components().items()):
        if len(components) > 1:
            raise NamingError(f"Duplicate name: {name}")


def check_all_inputs_exist(sch: ClockSchematic):
    outputs = set(sch.list_outputs(OutputSelection.EVERYTHING_EXCEPT_TERMINAL_TAPS))
    missing = [i for i in sch.list_inputs() if i != OFF and i not in outputs]
    if missing:
        raise UnresolvedReferenceError(
            f"Nonexistent inputs: {', '.join(missing)} (maybe these are terminal taps?)")


def check_all_outputs_used(sch: ClockSchematic):
    inputs = set(sch.list_inputs())
    unused = sorted({o for o in sch.list_outputs(OutputSelection.EVERYTHING_EXCEPT_TERMINAL_TAPS)
                     if o not in inputs})
    if unused:
        raise UnresolvedReferenceError(
            f"Unused outputs: {', '.join(unused)} (maybe these are non-terminal taps?)")


def check_defaults_exist(sch: ClockSchematic):
    bad = sorted(n for n, m in sch.multiplexers.items() if m.default not in m.inputs)
    if bad:
        raise UnresolvedReferenceError(
            f"Multiplexers have default inputs not in their input lists: {', '.join(bad)}")
    for kind, group in (("Dividers", sch.dividers), ("Multipliers", sch.multipliers)):
        unswitched = sorted(n for n, c in group.items() if c.values and c.fixed_ratio)
        if unswitched:
            raise UnresolvedReferenceError(
                f"{kind} have selectable values but no field path: {', '.join(unswitched)}")
        bad = sorted(n for n, c in group.items() if c.values and c.default not in c.ratios())
        if bad:
            raise UnresolvedReferenceError(
                f"{kind} have default values not in their value lists: {', '.join(bad)}")


GRAPH_CHECKS: List[Tuple[str, Callable]] = [
    ('valid_names', check_valid_names),
    ('no_duplicate_names', check_no_duplicate_names),
    ('all_inputs_exist', check_all_inputs_exist),
    ('all_outputs_used', check_all_outputs_used),
    ('defaults_exist', check_defaults_exist),
    ('no_loops', check_no_loops),
]


def field_references(sch: ClockSchematic) -> Iterator[Tuple[str, str]]:
    """Every (field path, owning component) referenced by the schematic."""
    for name in sorted(sch.multiplexers):
        yield sch.multiplexers[name].path, name
    for group in (sch.dividers, sch.multipliers):
        for name in sorted(group):
            if not group[name].fixed_ratio:
                yield group[name].path, name
    yield sch.flash_latency.path, 'flash_latency'
    if sch.pll:
        yield sch.pll.power, 'pll'
        yield sch.pll.ready, 'pll'


def field_values(sch: ClockSchematic) -> Iterator[Tuple[str, int, str]]:
    """Every (field path, fixed bit value, owning component) in the schematic."""
    for name in sorted(sch.multiplexers):
        m = sch.multiplexers[name]
        for i in m.inputs.values():
            yield m.path, i.bit_value, name
    for group in (sch.dividers, sch.multipliers):
        for name in sorted(group):
            c = group[name]
            for o in c.values.values():
                yield c.path, o.bit_value, name
    for r in sch.flash_latency.ranges.values():
        yield sch.flash_latency.path, r.bit_value, 'flash_latency'


def check_field_paths_exist(sch: ClockSchematic, catalog):
    for path, _ in field_references(sch):
        catalog.get_field(path)


def check_field_values_fit(sch: ClockSchematic, catalog):
    for path, value, component in field_values(sch):
        check_bit_fit(catalog, path, value, component)


CATALOG_CHECKS: List[Tuple[str, Callable]] = [
    ('field_paths_exist', check_field_paths_exist),
    ('field_values_fit', check_field_values_fit),
]


def validate_schematic(sch: ClockSchematic, catalog=None) -> ClockSchematic:
    """Run all checks in order; the first failure raises. Returns `sch` unchanged."""
    for name, check in GRAPH_CHECKS:
        logger.debug("check %s", name)
        check(sch)
    if catalog is not None:
        for name, check in CATALOG_CHECKS:
            logger.debug("check %s", name)
            check(sch, catalog)
    return sch


def load_schematic(text: str, catalog=None, schema_path=None) -> ClockSchematic:
    """Parse, resolve and validate a schematic.

    With a register catalog the field references are checked as well.
    """
    return validate_schematic(parse_schematic(text, schema_path), catalog)


def load_schematic_file(filename, catalog=None, schema_path: Optional[Path] = None) -> ClockSchematic:
    logger.debug("loading schematic %s", filename)
    return load_schematic(Path(filename).read_text(encoding="utf-8"), catalog, schema_path)
