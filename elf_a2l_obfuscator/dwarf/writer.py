"""
Serialise an EntryGraph into .debug_info and .debug_abbrev.

Units are written in the 32-bit DWARF format with their original version
and address size. All units share one abbreviation table at offset 0 and all
strings are written inline, so no .debug_str is produced.
"""
import logging
import struct
from typing import Dict, List, Tuple

from elftools.dwarf.enums import ENUM_DW_AT, ENUM_DW_FORM, ENUM_DW_TAG

from .graph import DebugEntry, EntryGraph, OutputUnit
from .values import (Address, AttributeValue, Block, Constant, DebugInfoRef, Exprloc, Flag,
                     String, UnitRef)

logger = logging.getLogger(__name__)

DW_UT_compile = 0x01
DW_UT_partial = 0x03

_FIXED_CONSTANT_SIZES = {
    'DW_FORM_data1': 1,
    'DW_FORM_data2': 2,
    'DW_FORM_data4': 4,
    'DW_FORM_data8': 8,
}

_UNSIGNED_FMT = {1: 'B', 2: 'H', 4: 'I', 8: 'Q'}


def encode_uleb128(value: int) -> bytes:
    if value < 0:
        raise ValueError(f"negative value for ULEB128: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7f
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def encode_sleb128(value: int) -> bytes:
    out = bytearray()
    while True:
        byte = value & 0x7f
        value >>= 7
        done = (value == 0 and not byte & 0x40) or (value == -1 and byte & 0x40)
        out.append(byte if done else byte | 0x80)
        if done:
            return bytes(out)


def _code(enum: Dict[str, int], name) -> int:
    if isinstance(name, int):
        return name
    try:
        return enum[name]
    except KeyError:
        raise ValueError(f"Unknown DWARF constant: {name}")


class DwarfWriter:
    """Writes the output graph as DWARF sections."""

    def __init__(self, graph: EntryGraph, little_endian: bool = True):
        """
        Initialize the writer.

        Args:
            graph: Graph to serialise
            little_endian: Byte order of the target
        """
        self.graph = graph
        self.endian = '<' if little_endian else '>'
        self._abbrevs: Dict[Tuple, int] = {}
        self._entry_offsets: Dict[int, Dict[int, int]] = {}

    def write(self) -> Dict[str, bytes]:
        """
        Serialise all units.

        Returns:
            dict: Section name to content for .debug_info and .debug_abbrev
        """
        self._abbrevs = {}
        self._entry_offsets = {}
        sizes = []
        unit_offsets = []
        section_offset = 0
        for unit in self.graph.units:
            entry_offsets, size = self._layout_unit(unit)
            self._entry_offsets[unit.unit_id] = entry_offsets
            sizes.append(size)
            unit_offsets.append(section_offset)
            section_offset += size

        info = bytearray()
        for unit, size in zip(self.graph.units, sizes):
            info += self._emit_unit(unit, size, unit_offsets)

        logger.debug(f"Serialised {len(self.graph.units)} units, {len(info)} bytes of debug info")
        return {
            '.debug_info': bytes(info),
            '.debug_abbrev': self._emit_abbrevs() if self.graph.units else b'',
        }

    # ------------------------------------------------------------------ layout

    def _header_size(self, unit: OutputUnit) -> int:
        # unit_length, version, abbrev offset, address size (+ unit type in v5)
        return 4 + 2 + 4 + 1 + (1 if unit.version >= 5 else 0)

    def _attribute_form(self, unit: OutputUnit, value: AttributeValue) -> str:
        if isinstance(value, Address):
            return 'DW_FORM_addr'
        if isinstance(value, Block):
            return 'DW_FORM_block'
        if isinstance(value, Constant):
            return value.form
        if isinstance(value, Flag):
            return 'DW_FORM_flag'
        if isinstance(value, String):
            return 'DW_FORM_string'
        if isinstance(value, UnitRef):
            return 'DW_FORM_ref4'
        if isinstance(value, DebugInfoRef):
            return 'DW_FORM_ref_addr'
        if isinstance(value, Exprloc):
            return 'DW_FORM_exprloc' if unit.version >= 4 else 'DW_FORM_block'
        raise TypeError(f"Unsupported attribute value: {value!r}")

    def _ref_addr_size(self, unit: OutputUnit) -> int:
        return unit.address_size if unit.version == 2 else 4

    def _value_size(self, unit: OutputUnit, value: AttributeValue, form: str) -> int:
        if form == 'DW_FORM_addr':
            return unit.address_size
        if form in _FIXED_CONSTANT_SIZES:
            return _FIXED_CONSTANT_SIZES[form]
        if form == 'DW_FORM_udata':
            return len(encode_uleb128(value.value))
        if form == 'DW_FORM_sdata':
            return len(encode_sleb128(value.value))
        if form == 'DW_FORM_flag':
            return 1
        if form == 'DW_FORM_string':
            return len(value.value) + 1
        if form == 'DW_FORM_ref4':
            return 4
        if form == 'DW_FORM_ref_addr':
            return self._ref_addr_size(unit)
        data = value.data
        return len(encode_uleb128(len(data))) + len(data)

    def _abbrev_code(self, unit: OutputUnit, entry: DebugEntry) -> Tuple[int, List[str]]:
        forms = [self._attribute_form(unit, value) for _, value in entry.attributes]
        key = (
            _code(ENUM_DW_TAG, entry.tag),
            bool(entry.children),
            tuple((_code(ENUM_DW_AT, name), _code(ENUM_DW_FORM, form))
                  for (name, _), form in zip(entry.attributes, forms)),
        )
        code = self._abbrevs.get(key)
        if code is None:
            code = len(self._abbrevs) + 1
            self._abbrevs[key] = code
        return code, forms

    def _walk(self, unit: OutputUnit):
        """Yield (entry, closing) in DFS order; closing marks a null entry after children."""
        if unit.root is None:
            return
        stack = [(unit.root, False)]
        while stack:
            entry, closing = stack.pop()
            yield entry, closing
            if closing or not entry.children:
                continue
            stack.append((entry, True))
            for child in reversed(entry.children):
                stack.append((unit.get(child), False))

    def _layout_unit(self, unit: OutputUnit):
        offset = self._header_size(unit)
        entry_offsets: Dict[int, int] = {}
        for entry, closing in self._walk(unit):
            if closing:
                offset += 1
                continue
            entry_offsets[entry.handle] = offset
            code, forms = self._abbrev_code(unit, entry)
            offset += len(encode_uleb128(code))
            for (_, value), form in zip(entry.attributes, forms):
                offset += self._value_size(unit, value, form)
        return entry_offsets, offset

    # ------------------------------------------------------------------ emit

    def _pack(self, size: int, value: int) -> bytes:
        return struct.pack(self.endian + _UNSIGNED_FMT[size], value & ((1 << (8 * size)) - 1))

    def _emit_unit(self, unit: OutputUnit, size: int, unit_offsets: List[int]) -> bytes:
        out = bytearray()
        out += self._pack(4, size - 4)
        out += self._pack(2, unit.version)
        if unit.version >= 5:
            unit_type = DW_UT_partial if unit.root.tag == 'DW_TAG_partial_unit' else DW_UT_compile
            out += bytes([unit_type, unit.address_size])
            out += self._pack(4, 0)
        else:
            out += self._pack(4, 0)
            out += bytes([unit.address_size])

        for entry, closing in self._walk(unit):
            if closing:
                out.append(0)
                continue
            code, forms = self._abbrev_code(unit, entry)
            out += encode_uleb128(code)
            for (_, value), form in zip(entry.attributes, forms):
                out += self._emit_value(unit, value, form, unit_offsets)

        if len(out) != size:
            raise AssertionError(f"unit {unit.unit_id} layout mismatch: {len(out)} != {size}")
        return bytes(out)

    def _emit_value(self, unit: OutputUnit, value: AttributeValue, form: str,
                    unit_offsets: List[int]) -> bytes:
        if form == 'DW_FORM_addr':
            return self._pack(unit.address_size, value.value)
        if form in _FIXED_CONSTANT_SIZES:
            return self._pack(_FIXED_CONSTANT_SIZES[form], value.value)
        if form == 'DW_FORM_udata':
            return encode_uleb128(value.value)
        if form == 'DW_FORM_sdata':
            return encode_sleb128(value.value)
        if form == 'DW_FORM_flag':
            return bytes([1 if value.value else 0])
        if form == 'DW_FORM_string':
            return value.value + b'\0'
        if form == 'DW_FORM_ref4':
            return self._pack(4, self._entry_offsets[unit.unit_id][value.entry])
        if form == 'DW_FORM_ref_addr':
            target = unit_offsets[value.unit] + self._entry_offsets[value.unit][value.entry]
            return self._pack(self._ref_addr_size(unit), target)
        data = value.data
        return encode_uleb128(len(data)) + data

    def _emit_abbrevs(self) -> bytes:
        out = bytearray()
        for (tag, has_children, specs), code in self._abbrevs.items():
            out += encode_uleb128(code)
            out += encode_uleb128(tag)
            out.append(1 if has_children else 0)
            for at, form in specs:
                out += encode_uleb128(at)
                out += encode_uleb128(form)
            out += b'\0\0'
        out.append(0)
        return bytes(out)
