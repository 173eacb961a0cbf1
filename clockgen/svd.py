# Convert an SVD file into the flat data structure behind the register catalog.
# (C) 2024 Stefan Heinzmann

import logging
import re
from xml.parsers.expat import ExpatError

import xmltodict

from .errors import ParseError

logger = logging.getLogger(__name__)

# register properties that are inherited from device to peripheral to register
INHERITED = [ "size", "resetValue", "resetMask" ]

def _safe_int(s, base=0):
    """Parse integer string, handling leading zeros that Python 3 int(base=0) rejects."""
    if isinstance(s, int):
        return s
    try:
        return int(s, base=base)
    except ValueError:
        # Strip leading zeros from bare decimal values (e.g. '072', '00000010')
        return int(s.lstrip('0') or '0')

def parse(filename:str):
    """ read an SVD file into nested dicts and lists """
    with open(filename, 'r') as file:
        return parseString(file.read())

def parseString(text:str):
    """ like parse, for SVD text already in memory """
    try:
        return xmltodict.parse(text)
    except ExpatError as ex:
        raise ParseError(f"Malformed SVD: {ex}", line=ex.lineno, column=ex.offset + 1) from ex

def toNumber(tbl:dict, keys:list):
    """ convert the named entries of tbl to int, in place; SVD "#" binary literals included """
    for k in keys:
        if k in tbl and isinstance(tbl[k], str):
            v = re.sub(r'^#', '0b', tbl[k].strip().lower())
            tbl[k] = _safe_int(v)

def asArray(tbl):
    """ xmltodict yields a dict for a single child element and a list for several; always give a list """
    return tbl if isinstance(tbl, list) else ([ tbl ] if tbl else [])

def findNamedEntry(array:list, name:str):
    """ first entry of array whose name matches, or None """
    for e in array:
        if e.get('name') == name:
            return e

def collateFields(fields:dict):
    """ list of the fields of a register, ordered by bitOffset.
        bitRange and lsb/msb notations are both rewritten to bitOffset/bitWidth. """
    fld = asArray((fields or {}).get('field'))
    flds = []
    for f in fld:
        if f.get('bitRange'):
            m = re.match(r'\[([^:]+):([^\]]+)\]', f['bitRange'])
            f['msb'], f['lsb'] = m.group(1,2)
            del f['bitRange']
        if f.get('msb') is not None and f.get('lsb') is not None:
            f['bitOffset'] = f['lsb']
            f['bitWidth'] = _safe_int(f['msb']) - _safe_int(f['lsb']) + 1
            del f['msb']
            del f['lsb']
        if f.get('bitWidth'):
            f['bitWidth'] = _safe_int(f['bitWidth'])
        else:
            f['bitWidth'] = 1
        toNumber(f, [ "bitOffset" ])
        flds.append(f)
    flds.sort(key=lambda x: x['bitOffset'])
    return flds

def expandDim(entry:dict):
    """ Expand an entry carrying "dim" into its individual instances.
        The instance names substitute the index for "%s" (with or without brackets). """
    if 'dim' not in entry:
        return [ entry ]
    count = entry['dim']
    increment = entry.get('dimIncrement', 0)
    indices = entry.get('dimIndex')
    indices = indices.split(',') if indices else [ str(i) for i in range(count) ]
    expanded = []
    for i, index in enumerate(indices[:count]):
        e = dict(entry)
        del e['dim']
        e['name'] = re.sub(r'\[?%s\]?', index.strip(), entry['name'])
        e['addressOffset'] = entry['addressOffset'] + i * increment
        expanded.append(e)
    return expanded

def collateRegisters(cluster:dict, defaults:dict):
    """ flatten a cluster (a peripheral's registers section is one) into a list sorted by
        addressOffset. Nested clusters stay in the list, recognisable by their own
        "registers" entry. Missing size/reset properties are taken from `defaults`. """
    cluster = cluster or {}
    reg, clu = asArray(cluster.get('register')), asArray(cluster.get('cluster'))
    regs = []
    ints = [ "addressOffset", "size", "resetMask", "resetValue", "dim", "dimIncrement" ]
    for r in reg:
        toNumber(r, ints)
        for k in INHERITED:
            if k not in r and k in defaults:
                r[k] = defaults[k]
        r['fields'] = collateFields(r.get('fields'))
        regs.extend(expandDim(r))
    for c in clu:
        toNumber(c, ints)
        inner = dict(defaults)
        inner.update({ k: c[k] for k in INHERITED if k in c })
        c['registers'] = collateRegisters(c, inner)
        regs.extend(expandDim(c))
    regs.sort(key=lambda x: x['addressOffset'])
    return regs

def collatePeripherals(device:dict):
    """ turn device["peripherals"] into a list with collated registers, in place.
        A peripheral with derivedFrom and no registers of its own gets those of its base. """
    per = device.get('peripherals') or {}
    device['peripherals'] = asArray(per.get('peripheral'))
    ints = [ "baseAddress", "size", "resetMask", "resetValue" ]
    for p in device['peripherals']:
        toNumber(p, ints)
        if '@derivedFrom' in p and not p.get('registers'):
            p.pop('registers', None)
            continue
        defaults = { k: p.get(k, device.get(k)) for k in INHERITED if p.get(k, device.get(k)) is not None }
        p['registers'] = collateRegisters(p.get('registers'), defaults)
    for p in device['peripherals']:
        base, seen = p, set()
        while 'registers' not in base:
            seen.add(base['name'])
            parent = findNamedEntry(device['peripherals'], base['@derivedFrom'])
            if parent is None or parent['name'] in seen:
                raise ParseError(f"Peripheral '{base['name']}' derives from unknown peripheral '{base['@derivedFrom']}'")
            base = parent
        p['registers'] = base['registers']

def collateDevice(root:dict):
    """ collate a parsed SVD document and return its device dict (modified in place) """
    if not root or 'device' not in root:
        raise ParseError("Malformed SVD: no <device> element")
    device = root['device']
    toNumber(device, [ "addressUnitBits", "width", "size", "resetMask", "resetValue" ])
    collatePeripherals(device)
    logger.debug("collated %d peripherals of device %s", len(device['peripherals']), device.get('name'))
    return device
