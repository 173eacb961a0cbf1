"""Read clock schematic source text and resolve entity names.

The source is YAML. Entities are stored in maps keyed by their name, and the
name is not repeated inside the entity body:

    sys_clk_mux: sys_clk_mux
    flash_latency:
      path: flash.acr.latency
      ranges:
        zero_wait: { max: 24000000, bit_value: 0 }
        one_wait:  { min: 24000001, bit_value: 1 }
    oscillators:
      hse: { frequency: 8000000 }
    multiplexers:
      sys_clk_mux:
        path: rcc.cfgr.sw
        inputs:
          hse: { bit_value: 1 }
        default: hse
    taps:
      sys_clk: { input: sys_clk_mux, max: 72000000, terminal: true }

The text is read with ruamel.yaml (YAML 1.2, so ``off`` stays a string and
duplicate keys are rejected) and its shape is checked against a JSON schema
before any entity is built.
"""

import logging
from pathlib import Path
from types import MappingProxyType

import yaml  # PyYAML
from jsonschema import Draft202012Validator
from ruamel.yaml import YAML
from ruamel.yaml.error import MarkedYAMLError, YAMLError

from .errors import ParseError
from .schematic import (ClockSchematic, Divider, DividerOption, FlashLatency, FlashLatencyRange,
                        Multiplexer, MultiplexerInput, Multiplier, MultiplierOption, Oscillator,
                        Pll, Tap)

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / 'schemas' / 'clock_schematic.schema.yaml'

_validators = {}


def load_schema(path=SCHEMA_PATH) -> Draft202012Validator:
    """Load a JSON schema written in YAML and return a validator for it."""
    path = Path(path)
    if path not in _validators:
        schema = yaml.safe_load(path.read_text(encoding="utf-8"))
        Draft202012Validator.check_schema(schema)
        _validators[path] = Draft202012Validator(schema)
    return _validators[path]


def read_yaml(text: str):
    """Parse YAML text into plain Python data, raising ParseError on failure."""
    reader = YAML(typ='safe', pure=True)
    try:
        return reader.load(text)
    except MarkedYAMLError as ex:
        mark = ex.problem_mark or ex.context_mark
        line = mark.line + 1 if mark else None
        column = mark.column + 1 if mark else None
        problem = ex.problem or ex.context or 'malformed YAML'
        where = f" at line {line}, column {column}" if mark else ""
        raise ParseError(f"{problem}{where}", line=line, column=column) from ex
    except YAMLError as ex:
        raise ParseError(str(ex)) from ex


def check_shape(data, validator: Draft202012Validator):
    """Raise ParseError for the first schema violation, ordered by location."""
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    if errors:
        e = errors[0]
        loc = "/".join([str(p) for p in e.path]) or "(root)"
        raise ParseError(f"at {loc}: {e.message}", location=loc)


def parse_raw(text: str, schema_path=None) -> dict:
    """Read source text into a raw schematic: nested dicts, shape-checked."""
    data = read_yaml(text)
    if data is None:
        data = {}
    check_shape(data, load_schema(schema_path or SCHEMA_PATH))
    return data


def _opt_int(value):
    return None if value is None else int(value)


def resolve_names(raw: dict) -> ClockSchematic:
    """Build the schematic entities, taking each entity's name from its map key.

    Integer-typed properties are stored as ``int``; the schema also admits
    integral floats such as ``1.0``.
    """
    sys_clk_mux = raw['sys_clk_mux']

    def frozen(d):
        return MappingProxyType(dict(d))

    oscillators = {
        name: Oscillator(name, int(o['frequency']))
        for name, o in (raw.get('oscillators') or {}).items()
    }
    multiplexers = {
        name: Multiplexer(
            name,
            m['path'],
            frozen({i: MultiplexerInput(i, int(v['bit_value']), v.get('alias')) for i, v in m['inputs'].items()}),
            m['default'],
            is_sys_clk_mux=(name == sys_clk_mux),
        )
        for name, m in (raw.get('multiplexers') or {}).items()
    }
    dividers = {
        name: Divider(
            name, d['input'], d['default'], d.get('path') or None,
            frozen({o: DividerOption(o, int(v['bit_value']), v['divisor']) for o, v in (d.get('values') or {}).items()}),
        )
        for name, d in (raw.get('dividers') or {}).items()
    }
    multipliers = {
        name: Multiplier(
            name, m['input'], m['default'], m.get('path') or None,
            frozen({o: MultiplierOption(o, int(v['bit_value']), v['factor']) for o, v in (m.get('values') or {}).items()}),
        )
        for name, m in (raw.get('multipliers') or {}).items()
    }
    taps = {
        name: Tap(name, t['input'], int(t['max']), t.get('terminal', False))
        for name, t in (raw.get('taps') or {}).items()
    }
    fl = raw['flash_latency']
    flash_latency = FlashLatency(
        fl['path'],
        frozen({r: FlashLatencyRange(r, int(v['bit_value']), _opt_int(v.get('min')), _opt_int(v.get('max'))) for r, v in (fl['ranges'] or {}).items()}),
    )
    pll = Pll(raw['pll']['power'], raw['pll']['ready']) if raw.get('pll') else None

    logger.debug("resolved %d oscillators, %d multiplexers, %d dividers, %d multipliers, %d taps",
                 len(oscillators), len(multiplexers), len(dividers), len(multipliers), len(taps))
    return ClockSchematic(
        sys_clk_mux, flash_latency,
        frozen(oscillators), frozen(multiplexers), frozen(dividers), frozen(multipliers), frozen(taps),
        pll,
    )


def parse_schematic(text: str, schema_path=None) -> ClockSchematic:
    """Parse source text and resolve names. The result is not yet validated."""
    return resolve_names(parse_raw(text, schema_path))
