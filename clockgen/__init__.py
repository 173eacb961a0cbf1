"""Clock schematic compiler front end: parse, validate, resolve register fields."""

from .catalog import Field, Register, RegisterCatalog
from .errors import (CatalogLookupError, ClockgenError, GraphError, NamingError, ParseError,
                     SizeError, UnresolvedReferenceError, UsageError)
from .fields import (Block, ClearBit, ReadVal, Reset, Resolution, Set, SetBit, WaitForClear,
                     WaitForSet, WaitForVal, load_operations, render, resolve)
from .parser import parse_schematic
from .schematic import ClockSchematic, OutputSelection
from .validate import load_schematic, load_schematic_file, validate_schematic

__version__ = "0.1.0"
