"""
Second pass: copy, drop or transform every attribute of every entry.
"""
import logging
from collections import Counter
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
from elftools.dwarf.dwarf_expr import DWARFExprParser
from elftools.dwarf.structs import DWARFStructs

from ..pseudonym import mask_address
from .expression import (UnsupportedExpression, encode_address_expression,
                         evaluate_location, is_address_bearing)
from .graph import OffsetMaps, OutputUnit
from .strings import StringObfuscationTable
from .values import (Address, AttributeValue, Block, Constant, CONSTANT_FORMS,
                     DebugInfoRef, Exprloc, Flag, String, UnitRef)

logger = logging.getLogger(__name__)

NAME_ATTRIBUTE = 'DW_AT_name'

# build provenance: dropped entirely
PROVENANCE_ATTRIBUTES = ('DW_AT_comp_dir', 'DW_AT_producer')

# attributes whose block value is a location expression
LOCATION_ATTRIBUTES = (
    'DW_AT_location',
    'DW_AT_data_member_location',
    'DW_AT_frame_base',
    'DW_AT_string_length',
    'DW_AT_return_addr',
    'DW_AT_segment',
    'DW_AT_static_link',
    'DW_AT_use_location',
    'DW_AT_vtable_elem_location',
    'DW_AT_data_location',
)

# attributes that hold section offsets when encoded as data4/data8 before DWARF 4
SECTION_POINTER_ATTRIBUTES = LOCATION_ATTRIBUTES + (
    'DW_AT_stmt_list',
    'DW_AT_ranges',
    'DW_AT_macro_info',
    'DW_AT_start_scope',
)

BLOCK_FORMS = ('DW_FORM_block1', 'DW_FORM_block2', 'DW_FORM_block4', 'DW_FORM_block')
UNIT_REF_FORMS = ('DW_FORM_ref1', 'DW_FORM_ref2', 'DW_FORM_ref4', 'DW_FORM_ref8',
                  'DW_FORM_ref_udata')
STRING_FORMS = ('DW_FORM_string', 'DW_FORM_strp')

# forms this pass does not translate, grouped by the reason they are dropped
DROPPED_FORMS = {
    'DW_FORM_sec_offset': 'section_offset',
    'DW_FORM_line_strp': 'line_string',
    'DW_FORM_strx': 'indexed_string',
    'DW_FORM_strx1': 'indexed_string',
    'DW_FORM_strx2': 'indexed_string',
    'DW_FORM_strx3': 'indexed_string',
    'DW_FORM_strx4': 'indexed_string',
    'DW_FORM_GNU_str_index': 'indexed_string',
    'DW_FORM_addrx': 'indexed_address',
    'DW_FORM_addrx1': 'indexed_address',
    'DW_FORM_addrx2': 'indexed_address',
    'DW_FORM_addrx3': 'indexed_address',
    'DW_FORM_addrx4': 'indexed_address',
    'DW_FORM_GNU_addr_index': 'indexed_address',
    'DW_FORM_loclistx': 'indexed_list',
    'DW_FORM_rnglistx': 'indexed_list',
    'DW_FORM_strp_sup': 'supplementary',
    'DW_FORM_GNU_strp_alt': 'supplementary',
    'DW_FORM_ref_sup4': 'supplementary',
    'DW_FORM_ref_sup8': 'supplementary',
    'DW_FORM_GNU_ref_alt': 'supplementary',
    'DW_FORM_ref_sig8': 'type_unit_ref',
    'DW_FORM_data16': 'wide_constant',
}

# dropped kinds which are not implemented rather than deliberately removed
UNIMPLEMENTED_KINDS = ('indexed_string', 'indexed_address', 'indexed_list', 'supplementary',
                       'type_unit_ref', 'wide_constant', 'unknown_form')


class TransformStats:
    """Counters for what happened to the attributes of one run."""

    def __init__(self):
        self.kept = Counter()
        self.dropped = Counter()
        self.obfuscated_names = 0
        self.masked_addresses = 0
        self.plain_strings = 0

    def drop(self, reason: str):
        self.dropped[reason] += 1

    def log_summary(self):
        logger.info(f"Obfuscated {self.obfuscated_names} names, masked {self.masked_addresses} addresses")
        if self.plain_strings:
            logger.info(f"{self.plain_strings} non-name string attributes were copied unchanged")
        for reason, count in sorted(self.dropped.items()):
            logger.info(f"Dropped {count} attributes: {reason}")


class UnitContext:
    """Encoding parameters of the input unit being transformed."""

    def __init__(self, version: int, address_size: int, little_endian: bool = True,
                 structs: Optional[DWARFStructs] = None):
        self.version = version
        self.address_size = address_size
        self.little_endian = little_endian
        if structs is None:
            structs = DWARFStructs(little_endian=little_endian, dwarf_format=32,
                                   address_size=address_size, dwarf_version=version)
        self.expr_parser = DWARFExprParser(structs)

    @classmethod
    def from_cu(cls, cu, little_endian: bool) -> 'UnitContext':
        return cls(cu['version'], cu['address_size'], little_endian, cu.structs)


class AttributeTransformer:
    """
    Translates input attribute values into output graph values.

    Reference attributes are redirected through the offset maps built in
    pass 1, names go through the string table and fixed addresses in location
    expressions are masked. Everything that cannot be translated is dropped.
    """

    def __init__(self, string_table: StringObfuscationTable, offsets: OffsetMaps,
                 rng: np.random.Generator, keep_bits: int = 8, max_iterations: int = 100,
                 stats: Optional[TransformStats] = None):
        """
        Initialize the transformer.

        Args:
            string_table: Table receiving the name pseudonyms
            offsets: Offset maps from pass 1 (all units)
            rng: Random generator for masked addresses
            keep_bits: Low address bits preserved by masking
            max_iterations: Bound on evaluated expression operations
            stats: Counters to update (a fresh object if None)
        """
        self.string_table = string_table
        self.offsets = offsets
        self.rng = rng
        self.keep_bits = keep_bits
        self.max_iterations = max_iterations
        self.stats = stats or TransformStats()
        self._warned = set()

    def transform_unit(self, output_unit: OutputUnit, records: Iterable[Tuple[int, object]],
                       unit_offset: int, context: UnitContext):
        """
        Add the transformed attributes of every input entry to its output entry.

        Args:
            output_unit: Unit populated by pass 1
            records: (depth delta, DIE) sequence of the same input unit
            unit_offset: Section offset of the input unit header
            context: Encoding of the input unit
        """
        unit_offsets = self.offsets.local(output_unit.unit_id)
        self._warned = set()
        for _, die in records:
            handle = unit_offsets[die.offset - unit_offset]
            output_entry = output_unit.get(handle)
            for attr in die.attributes.values():
                value = self.transform_attribute(output_unit.unit_id, attr, context)
                if value is not None:
                    output_entry.set(attr.name, value)

    def transform_attribute(self, unit_id: int, attr, context: UnitContext) -> Optional[AttributeValue]:
        """
        Translate one attribute.

        Args:
            unit_id: Output unit the attribute belongs to
            attr: elftools AttributeValue (name, form, value, raw_value)
            context: Encoding of the input unit

        Returns:
            The output value, or None if the attribute is dropped
        """
        name, form, value = attr.name, attr.form, attr.value

        if form in DROPPED_FORMS:
            return self._drop(DROPPED_FORMS[form], name, form)

        if form == 'DW_FORM_addr':
            return self._keep(Address(value))

        if form in CONSTANT_FORMS or form == 'DW_FORM_implicit_const':
            if context.version < 4 and form in ('DW_FORM_data4', 'DW_FORM_data8') \
                    and name in SECTION_POINTER_ATTRIBUTES:
                return self._drop('section_offset', name, form)
            if form == 'DW_FORM_implicit_const':
                return self._keep(Constant(value, 'DW_FORM_sdata'))
            return self._keep(Constant(value, form))

        if form == 'DW_FORM_flag':
            return self._keep(Flag(bool(value)))
        if form == 'DW_FORM_flag_present':
            return self._keep(Flag(True))

        if form == 'DW_FORM_exprloc':
            return self._transform_expression(name, bytes(value), context)

        if form in BLOCK_FORMS:
            if name in LOCATION_ATTRIBUTES:
                return self._transform_expression(name, bytes(value), context)
            return self._keep(Block(bytes(value)))

        if form in UNIT_REF_FORMS:
            entry = self.offsets.local(unit_id).get(attr.raw_value)
            if entry is None:
                logger.warning(f"UnitRef {attr.raw_value:#x} not found in unit offsets, dropping {name}")
                return self._drop('unresolved_reference', name, form, warn=False)
            return self._keep(UnitRef(entry))

        if form == 'DW_FORM_ref_addr':
            target = self.offsets.section.get(attr.raw_value)
            if target is None:
                logger.warning(f"DebugInfoRef {attr.raw_value:#x} not found in debug info offsets, dropping {name}")
                return self._drop('unresolved_reference', name, form, warn=False)
            return self._keep(DebugInfoRef(*target))

        if form in STRING_FORMS:
            return self._transform_string(name, value)

        return self._drop('unknown_form', name, form)

    def _transform_string(self, name, value) -> Optional[String]:
        try:
            text = value.decode('utf-8') if isinstance(value, bytes) else str(value)
        except UnicodeDecodeError:
            return self._drop('undecodable_string', name, 'string')

        if name == NAME_ATTRIBUTE:
            self.stats.obfuscated_names += 1
            return String(self.string_table.obfuscate(text).encode('utf-8'))
        if name in PROVENANCE_ATTRIBUTES:
            self.stats.drop('build_provenance')
            return None

        # known residual leak: other strings are not names of program objects
        logger.debug(f"non-obfuscated string: {text!r} for {name}")
        self.stats.plain_strings += 1
        return String(text.encode('utf-8'))

    def _transform_expression(self, name, data: bytes, context: UnitContext) -> Optional[AttributeValue]:
        try:
            ops = context.expr_parser.parse_expr(list(data))
        except Exception as e:  # elftools raises plain exceptions for unknown opcodes
            logger.debug(f"cannot decode expression of {name}: {e}")
            return self._drop('unsupported_expression', name, 'expression', warn=False)

        if not is_address_bearing(ops):
            return self._keep(Exprloc(data))

        try:
            address = evaluate_location(ops, context.address_size, self.max_iterations)
        except UnsupportedExpression as e:
            logger.debug(f"dropping {name}: {e}")
            return self._drop('unsupported_expression', name, 'expression', warn=False)

        masked = mask_address(address, self.rng, context.address_size, self.keep_bits)
        self.stats.masked_addresses += 1
        return Exprloc(encode_address_expression(masked, context.address_size, context.little_endian))

    def _keep(self, value: AttributeValue) -> AttributeValue:
        self.stats.kept[type(value).__name__] += 1
        return value

    def _drop(self, reason: str, name, form, warn: bool = True) -> None:
        self.stats.drop(reason)
        if warn and reason in UNIMPLEMENTED_KINDS and (reason, form) not in self._warned:
            self._warned.add((reason, form))
            logger.warning(f"{form} is not handled ({reason}), dropping {name} attributes")
        return None
