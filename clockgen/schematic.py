"""Clock schematic data model.

A schematic is a set of named components wired together by their inputs:

  Oscillator   root with a fixed frequency, no input
  Multiplexer  selects one of several inputs through a register field
  Divider      divides its input by a selectable or fixed ratio
  Multiplier   multiplies its input by a selectable or fixed ratio
  Tap          named observation point; terminal taps are network sinks

Components are keyed by name. The name "off" is reserved as the input that
connects nothing. Instances are built by `clockgen.parser` and are not
modified after validation.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

from .errors import UnresolvedReferenceError

OFF = 'off'


class OutputSelection(Enum):
    TERMINAL_TAPS_ONLY = 1
    EVERYTHING_EXCEPT_TERMINAL_TAPS = 2
    EVERYTHING = 3


@dataclass(frozen=True)
class Oscillator:
    name: str
    frequency: int


@dataclass(frozen=True)
class MultiplexerInput:
    name: str
    bit_value: int
    alias: Optional[str] = None


@dataclass(frozen=True)
class Multiplexer:
    name: str
    path: str
    inputs: Mapping[str, MultiplexerInput]
    default: str
    is_sys_clk_mux: bool = False


@dataclass(frozen=True)
class DividerOption:
    name: str
    bit_value: int
    divisor: float


@dataclass(frozen=True)
class Divider:
    name: str
    input: str
    default: float
    path: Optional[str] = None
    values: Mapping[str, DividerOption] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def fixed_ratio(self) -> bool:
        return not self.path

    def ratios(self) -> List[float]:
        return [o.divisor for o in self.values.values()]


@dataclass(frozen=True)
class MultiplierOption:
    name: str
    bit_value: int
    factor: float


@dataclass(frozen=True)
class Multiplier:
    name: str
    input: str
    default: float
    path: Optional[str] = None
    values: Mapping[str, MultiplierOption] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def fixed_ratio(self) -> bool:
        return not self.path

    def ratios(self) -> List[float]:
        return [o.factor for o in self.values.values()]


@dataclass(frozen=True)
class Tap:
    name: str
    input: str
    max: int
    terminal: bool = False


@dataclass(frozen=True)
class FlashLatencyRange:
    name: str
    bit_value: int
    min: Optional[int] = None
    max: Optional[int] = None

    def contains(self, frequency: float) -> bool:
        if self.min is not None and frequency < self.min:
            return False
        if self.max is not None and frequency > self.max:
            return False
        return True


@dataclass(frozen=True)
class FlashLatency:
    path: str
    ranges: Mapping[str, FlashLatencyRange]

    def range_for(self, frequency: float) -> FlashLatencyRange:
        """First range, in declaration order, that contains `frequency`."""
        for r in self.ranges.values():
            if r.contains(frequency):
                return r
        raise UnresolvedReferenceError(f"No flash latency range covers {frequency} Hz")


@dataclass(frozen=True)
class Pll:
    power: str
    ready: str


Component = Union[Oscillator, Multiplexer, Divider, Multiplier, Tap]


@dataclass(frozen=True)
class ClockSchematic:
    sys_clk_mux: str
    flash_latency: FlashLatency
    oscillators: Mapping[str, Oscillator]
    multiplexers: Mapping[str, Multiplexer]
    dividers: Mapping[str, Divider]
    multipliers: Mapping[str, Multiplier]
    taps: Mapping[str, Tap]
    pll: Optional[Pll] = None

    @property
    def sys_clk_mux_component(self) -> Multiplexer:
        """The multiplexer driving the system clock."""
        for m in self.multiplexers.values():
            if m.is_sys_clk_mux:
                return m
        raise UnresolvedReferenceError(f"No multiplexer named '{self.sys_clk_mux}' for the system clock")

    def components(self) -> Dict[str, List[Component]]:
        """All components by name. A valid schematic has exactly one per name."""
        found: Dict[str, List[Component]] = {}
        for group in (self.oscillators, self.multiplexers, self.dividers, self.multipliers, self.taps):
            for name, c in group.items():
                found.setdefault(name, []).append(c)
        return found

    def get_component(self, name: str) -> Optional[Component]:
        for group in (self.oscillators, self.multiplexers, self.dividers, self.multipliers, self.taps):
            if name in group:
                return group[name]
        return None

    def inputs_of(self, component: Component) -> List[str]:
        if isinstance(component, Oscillator):
            return []
        if isinstance(component, Multiplexer):
            return list(component.inputs)
        return [component.input]

    def successors(self, name: str) -> List[str]:
        """Names of the components that take `name` as an input, sorted."""
        nxt = []
        for group in (self.multiplexers, self.dividers, self.multipliers, self.taps):
            nxt.extend(n for n, c in group.items() if name in self.inputs_of(c))
        return sorted(nxt)

    def list_outputs(self, selection: OutputSelection = OutputSelection.EVERYTHING) -> List[str]:
        """Declared output names. Duplicates across kinds are kept."""
        terminal = [n for n, t in self.taps.items() if t.terminal]
        if selection == OutputSelection.TERMINAL_TAPS_ONLY:
            return terminal
        rest = (list(self.oscillators) + list(self.multiplexers) + list(self.dividers)
                + list(self.multipliers) + [n for n, t in self.taps.items() if not t.terminal])
        if selection == OutputSelection.EVERYTHING_EXCEPT_TERMINAL_TAPS:
            return rest
        return terminal + rest

    def list_inputs(self) -> List[str]:
        """Every referenced input name, sorted and de-duplicated."""
        inputs = set()
        for group in (self.multiplexers, self.dividers, self.multipliers, self.taps):
            for c in group.values():
                inputs.update(self.inputs_of(c))
        return sorted(inputs)

    def default_frequencies(self) -> Dict[str, float]:
        """Frequency of every component with all selections at their defaults.

        Muxes follow their default input, dividers and multipliers use their
        default ratio. The "off" input yields 0. Must only be called on a
        validated (loop free) schematic.
        """
        freqs: Dict[str, float] = {OFF: 0}

        def frequency(name):
            if name not in freqs:
                c = self.get_component(name)
                if isinstance(c, Oscillator):
                    freqs[name] = c.frequency
                elif isinstance(c, Multiplexer):
                    freqs[name] = frequency(c.default)
                elif isinstance(c, Divider):
                    freqs[name] = frequency(c.input) / c.default
                elif isinstance(c, Multiplier):
                    freqs[name] = frequency(c.input) * c.default
                elif isinstance(c, Tap):
                    freqs[name] = frequency(c.input)
                else:
                    raise UnresolvedReferenceError(f"Unknown component '{name}'")
            return freqs[name]

        for name in self.list_outputs():
            frequency(name)
        del freqs[OFF]
        return freqs
