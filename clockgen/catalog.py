"""Register catalog: dotted-path lookup of fields and registers of a device.

Paths have the form ``peripheral.register.field`` (registers inside clusters
use ``peripheral.cluster.register.field``) and are matched case-insensitively.
The catalog is built once from a collated SVD device and is read-only
afterwards.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from . import svd
from .errors import CatalogLookupError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Register:
    path: str
    address: int
    size: int = 32
    reset_value: Optional[int] = None
    reset_mask: Optional[int] = None


@dataclass(frozen=True)
class Field:
    # reset_value and reset_mask are those of the owning register, unshifted
    path: str
    address: int
    offset: int
    width: int
    register_size: int = 32
    reset_value: Optional[int] = None
    reset_mask: Optional[int] = None

    @property
    def mask(self) -> int:
        return ((1 << self.width) - 1) << self.offset

    @property
    def inverse_mask(self) -> int:
        return ~self.mask & ((1 << self.register_size) - 1)

    @property
    def max_value(self) -> int:
        return (1 << self.width) - 1

    @property
    def parent_path(self) -> str:
        """Path of the register that owns this field."""
        return self.path.rsplit('.', 1)[0]


class RegisterCatalog:
    """Lookup service over the fields and registers of one device."""

    def __init__(self, name: str, registers: Dict[str, Register], fields: Dict[str, Field]):
        self.name = name
        self._registers = registers
        self._fields = fields

    @classmethod
    def from_device(cls, device: dict) -> 'RegisterCatalog':
        """Build a catalog from a device collated by `svd.collateDevice`."""
        registers, fields = {}, {}
        for per in device['peripherals']:
            _add_registers(registers, fields, per['name'].lower(), per['baseAddress'], per['registers'])
        logger.debug("catalog %s: %d registers, %d fields", device.get('name'), len(registers), len(fields))
        return cls(device.get('name', ''), registers, fields)

    @classmethod
    def from_xml(cls, text: str) -> 'RegisterCatalog':
        return cls.from_device(svd.collateDevice(svd.parseString(text)))

    @classmethod
    def from_file(cls, filename) -> 'RegisterCatalog':
        logger.debug("loading SVD file %s", filename)
        return cls.from_device(svd.collateDevice(svd.parse(filename)))

    def try_get_field(self, path: str) -> Optional[Field]:
        if not isinstance(path, str):
            return None
        return self._fields.get(path.lower())

    def get_field(self, path: str) -> Field:
        field = self.try_get_field(path)
        if field is None:
            raise CatalogLookupError(f"No field named '{path}' in SVD spec", path)
        return field

    def try_get_register(self, path: str) -> Optional[Register]:
        return self._registers.get(path.lower())

    def get_register(self, path: str) -> Register:
        register = self.try_get_register(path)
        if register is None:
            raise CatalogLookupError(f"No register named '{path}' in SVD spec", path)
        return register

    def field_paths(self):
        """All field paths, sorted."""
        return sorted(self._fields)

    def __contains__(self, path: str) -> bool:
        return path.lower() in self._fields or path.lower() in self._registers


def _add_registers(registers: dict, fields: dict, prefix: str, base: int, entries: list):
    for r in entries:
        path = f"{prefix}.{r['name'].lower()}"
        address = base + r['addressOffset']
        if 'registers' in r:        # cluster
            _add_registers(registers, fields, path, address, r['registers'])
            continue
        size = r.get('size', 32)
        registers[path] = Register(path, address, size, r.get('resetValue'), r.get('resetMask'))
        for f in r['fields']:
            fpath = f"{path}.{f['name'].lower()}"
            fields[fpath] = Field(fpath, address, f['bitOffset'], f['bitWidth'], size,
                                  r.get('resetValue'), r.get('resetMask'))
