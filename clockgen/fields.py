"""Resolve symbolic field operations into bit-level instructions.

Operations name a field by its catalog path:

  Set(path, value)                 write value into the field
  SetBit(path) / ClearBit(path)    set or clear a 1-bit field
  Reset(path)                      write the register's reset value back
  ReadVal(path)                    read the field, shifted down to bit 0
  WaitForVal(path, value, n)       poll until the field equals value
  WaitForSet(path, n)              poll until a 1-bit field is set
  WaitForClear(path, n)            poll until a 1-bit field is cleared
  Block([...])                     write operations that run with interrupts off

`resolve` looks the field up in a register catalog and returns a
`Resolution`: the instruction plus any non-fatal warnings (missing reset
metadata). Structural problems raise.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, NamedTuple, Optional, Tuple, Union

from .errors import ParseError, SizeError, UsageError
from .parser import read_yaml

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10000

# ═══════════════════════════════════════════════════════════════════════════
# OPERATIONS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Set:
    path: str
    value: int


@dataclass(frozen=True)
class SetBit:
    path: str


@dataclass(frozen=True)
class ClearBit:
    path: str


@dataclass(frozen=True)
class Reset:
    path: str


@dataclass(frozen=True)
class ReadVal:
    path: str


@dataclass(frozen=True)
class WaitForVal:
    path: str
    value: int
    max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass(frozen=True)
class WaitForSet:
    path: str
    max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass(frozen=True)
class WaitForClear:
    path: str
    max_iterations: int = DEFAULT_MAX_ITERATIONS


@dataclass(frozen=True)
class Block:
    operations: Tuple = ()

    def __post_init__(self):
        object.__setattr__(self, 'operations', tuple(self.operations))


Operation = Union[Set, SetBit, ClearBit, Reset, ReadVal, WaitForVal, WaitForSet, WaitForClear, Block]
WRITE_OPERATIONS = (Set, SetBit, ClearBit, Reset)

# ═══════════════════════════════════════════════════════════════════════════
# INSTRUCTIONS
# ═══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FieldWrite:
    """Read-modify-write of a field: (reg & ~mask) | ((value << offset) & mask)."""
    path: str
    address: int
    mask: int
    inverse_mask: int
    offset: int
    value: int

    def apply(self, register: int) -> int:
        return (register & self.inverse_mask) | ((self.value << self.offset) & self.mask)

    def render(self) -> str:
        return f"write_val({self.address}, {self.mask}, {self.inverse_mask}, {self.offset}, {self.value});"


@dataclass(frozen=True)
class BitWrite:
    path: str
    address: int
    mask: int
    inverse_mask: int
    set: bool

    def apply(self, register: int) -> int:
        return register | self.mask if self.set else register & self.inverse_mask

    def render(self) -> str:
        if self.set:
            return f"set_bit({self.address}, {self.mask});"
        return f"clear_bit({self.address}, {self.inverse_mask});"


@dataclass(frozen=True)
class FieldRead:
    path: str
    address: int
    mask: int
    offset: int

    def apply(self, register: int) -> int:
        return (register & self.mask) >> self.offset

    def render(self) -> str:
        return f"read_val({self.address}, {self.mask}, {self.offset})"


@dataclass(frozen=True)
class FieldWait:
    """Busy-poll until the field holds `value`, giving up after `max_iterations` reads."""
    path: str
    address: int
    mask: int
    offset: int
    value: int
    max_iterations: int

    def matches(self, register: int) -> bool:
        return (register & self.mask) >> self.offset == self.value

    def poll(self, read: Callable[[], int]) -> bool:
        """Poll `read` for the register contents. False means the wait timed out."""
        for _ in range(self.max_iterations):
            if self.matches(read()):
                return True
        return False

    def render(self) -> str:
        return (f"wait_for_val({self.address}, {self.mask}, {self.offset}, {self.value}, "
                f"{self.max_iterations})?;")


@dataclass(frozen=True)
class CriticalSection:
    """Writes that must run without interruption."""
    instructions: Tuple = field(default_factory=tuple)

    def apply(self, registers: Dict[int, int]) -> Dict[int, int]:
        """Apply all writes to a copy of an address -> contents map."""
        result = dict(registers)
        for i in self.instructions:
            result[i.address] = i.apply(result.get(i.address, 0))
        return result

    def render(self) -> str:
        body = "\n  ".join(i.render() for i in self.instructions)
        return f"cortex_m::interrupt::free(|_| {{\n  {body}\n}});"


Instruction = Union[FieldWrite, BitWrite, FieldRead, FieldWait, CriticalSection]


class Resolution(NamedTuple):
    instruction: Instruction
    warnings: Tuple[str, ...] = ()


def render(instructions) -> str:
    """Render a sequence of instructions (or resolutions), one per line."""
    return "\n".join(getattr(i, 'instruction', i).render() for i in instructions)

# ═══════════════════════════════════════════════════════════════════════════
# RESOLVER
# ═══════════════════════════════════════════════════════════════════════════

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def check_bit_fit(catalog, path: str, value: int, component: Optional[str] = None):
    """Raise SizeError unless `value` is representable in the field at `path`."""
    if not _is_int(value):
        raise UsageError(f"Field value for '{path}' must be an integer, got {value!r}")
    f = catalog.get_field(path)
    if value < 0 or value > f.max_value:
        owner = f" ({component})" if component else ""
        raise SizeError(f"Bit value '{value}' does not fit in {f.width}-bit field '{path}'{owner}",
                        value, f.width, path, component)
    return f


class FieldResolver:
    """Maps operation types to the functions that resolve them against one catalog."""

    def __init__(self, catalog):
        self.catalog = catalog
        self._handlers: Dict[type, Callable] = {}
        self._register_builtin_handlers()

    def _register_builtin_handlers(self):
        self.register(Set, self._resolve_set)
        self.register(SetBit, self._resolve_set_bit)
        self.register(ClearBit, self._resolve_clear_bit)
        self.register(Reset, self._resolve_reset)
        self.register(ReadVal, self._resolve_read)
        self.register(WaitForVal, self._resolve_wait)
        self.register(WaitForSet, self._resolve_wait_set)
        self.register(WaitForClear, self._resolve_wait_clear)
        self.register(Block, self._resolve_block)

    def register(self, op_type: type, func: Callable) -> None:
        if op_type in self._handlers:
            raise ValueError(f"Operation '{op_type.__name__}' already registered")
        self._handlers[op_type] = func

    def resolve(self, operation) -> Resolution:
        handler = self._handlers.get(type(operation))
        if handler is None:
            raise UsageError(f"Unknown field operation: {operation!r}")
        return handler(operation)

    def resolve_all(self, operations) -> List[Resolution]:
        return [self.resolve(op) for op in operations]

    def _single_bit(self, path: str, action: str):
        f = self.catalog.get_field(path)
        if f.width != 1:
            raise UsageError(f"Cannot {action} single bit for a multi-bit field '{path}' ({f.width} bits)")
        return f

    def _resolve_set(self, op: Set) -> Resolution:
        f = check_bit_fit(self.catalog, op.path, op.value)
        return Resolution(FieldWrite(op.path, f.address, f.mask, f.inverse_mask, f.offset, op.value))

    def _resolve_set_bit(self, op: SetBit) -> Resolution:
        f = self._single_bit(op.path, "set")
        return Resolution(BitWrite(op.path, f.address, f.mask, f.inverse_mask, True))

    def _resolve_clear_bit(self, op: ClearBit) -> Resolution:
        f = self._single_bit(op.path, "clear")
        return Resolution(BitWrite(op.path, f.address, f.mask, f.inverse_mask, False))

    def _resolve_reset(self, op: Reset) -> Resolution:
        f = self.catalog.get_field(op.path)
        register = self.catalog.get_register(f.parent_path)
        warnings = []
        reset_value, reset_mask = register.reset_value, register.reset_mask
        if reset_value is None:
            warnings.append(f"Register '{register.path}' has no reset value, using 0 for '{op.path}'")
            reset_value = 0
        if reset_mask is None:
            warnings.append(f"Register '{register.path}' has no reset mask, using all ones for '{op.path}'")
            reset_mask = (1 << register.size) - 1
        value = (reset_value & reset_mask & f.mask) >> f.offset
        for w in warnings:
            logger.debug(w)
        return Resolution(FieldWrite(op.path, f.address, f.mask, f.inverse_mask, f.offset, value), tuple(warnings))

    def _resolve_read(self, op: ReadVal) -> Resolution:
        f = self.catalog.get_field(op.path)
        return Resolution(FieldRead(op.path, f.address, f.mask, f.offset))

    def _wait(self, path: str, value: int, max_iterations: int, fld) -> Resolution:
        if not _is_int(max_iterations) or max_iterations < 1:
            raise UsageError(f"Wait on '{path}' needs a positive iteration limit, got {max_iterations!r}")
        return Resolution(FieldWait(path, fld.address, fld.mask, fld.offset,
                                    value, max_iterations))

    def _resolve_wait(self, op: WaitForVal) -> Resolution:
        f = check_bit_fit(self.catalog, op.path, op.value)
        return self._wait(op.path, op.value, op.max_iterations, f)

    def _resolve_wait_set(self, op: WaitForSet) -> Resolution:
        return self._wait(op.path, 1, op.max_iterations, self._single_bit(op.path, "wait for"))

    def _resolve_wait_clear(self, op: WaitForClear) -> Resolution:
        return self._wait(op.path, 0, op.max_iterations, self._single_bit(op.path, "wait for"))

    def _resolve_block(self, op: Block) -> Resolution:
        instructions, warnings = [], []
        for inner in op.operations:
            if not isinstance(inner, WRITE_OPERATIONS):
                raise UsageError(f"Only write operations can be grouped in a block, got {type(inner).__name__}")
            res = self.resolve(inner)
            instructions.append(res.instruction)
            warnings.extend(res.warnings)
        return Resolution(CriticalSection(tuple(instructions)), tuple(warnings))


def resolve(operation, catalog) -> Resolution:
    """Resolve one operation against a register catalog."""
    return FieldResolver(catalog).resolve(operation)

# ═══════════════════════════════════════════════════════════════════════════
# OPERATION LISTS
# ═══════════════════════════════════════════════════════════════════════════

def _build_operation(entry):
    if not isinstance(entry, dict) or len(entry) != 1:
        raise ParseError(f"Operation must be a single-key mapping, got {entry!r}")
    (kind, args), = entry.items()
    if kind == 'block':
        if not isinstance(args, list):
            raise ParseError(f"Block expects a list of operations, got {args!r}")
        return Block(tuple(_build_operation(e) for e in args))
    factory = _OPERATION_KINDS.get(kind)
    if factory is None:
        raise ParseError(f"Unknown operation '{kind}'")
    if not isinstance(args, list):
        args = [args]
    # first argument is the field path, any further ones are integers
    if not args or not isinstance(args[0], str) or not all(_is_int(a) for a in args[1:]):
        raise ParseError(f"Bad arguments for '{kind}': {args!r}")
    try:
        return factory(*args)
    except TypeError as ex:
        raise ParseError(f"Bad arguments for '{kind}': {args!r}") from ex


_OPERATION_KINDS = {
    'set': Set,
    'set_bit': SetBit,
    'clear_bit': ClearBit,
    'reset': Reset,
    'read_val': ReadVal,
    'wait_for_val': WaitForVal,
    'wait_for_set': WaitForSet,
    'wait_for_clear': WaitForClear,
}


def load_operations(text: str) -> List[Operation]:
    """Parse a YAML list of operations.

    Each entry is a one-key mapping from the operation name to its
    arguments, e.g.

        - set: [timer0.cr.en, 1]
        - block:
          - set: [timer1.cr.en, 1]
          - set_bit: timer1.cr.rst
        - wait_for_set: [rcc.cr.pllrdy, 500]
    """
    data = read_yaml(text)
    if data is None:
        return []
    if not isinstance(data, list):
        raise ParseError("Operation list must be a YAML sequence")
    return [_build_operation(e) for e in data]
