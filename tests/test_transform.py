import logging
import struct
from collections import namedtuple

import pytest

from elf_a2l_obfuscator.dwarf.graph import OffsetMaps
from elf_a2l_obfuscator.dwarf.strings import StringObfuscationTable
from elf_a2l_obfuscator.dwarf.transform import AttributeTransformer, UnitContext
from elf_a2l_obfuscator.dwarf.values import (Address, Block, Constant, DebugInfoRef, Exprloc, Flag,
                                             String, UnitRef)

Attr = namedtuple('Attr', 'name form value raw_value')


def attr(name, form, value, raw_value=None):
    return Attr(name, form, value, value if raw_value is None else raw_value)


@pytest.fixture
def offsets():
    maps = OffsetMaps()
    maps.insert(0, 0x0b, 0x0b, 0)
    maps.insert(0, 0x20, 0x20, 1)
    maps.insert(1, 0x0b, 0x40, 0)
    maps.insert(1, 0x1c, 0x51, 1)
    return maps


@pytest.fixture
def transformer(rng, offsets):
    return AttributeTransformer(StringObfuscationTable(rng), offsets, rng)


@pytest.fixture
def v4():
    return UnitContext(version=4, address_size=4)


def test_constants_and_flags_are_copied(transformer, v4):
    assert transformer.transform_attribute(0, attr('DW_AT_byte_size', 'DW_FORM_data1', 4), v4) == \
        Constant(4, 'DW_FORM_data1')
    assert transformer.transform_attribute(0, attr('DW_AT_const_value', 'DW_FORM_sdata', -3), v4) == \
        Constant(-3, 'DW_FORM_sdata')
    assert transformer.transform_attribute(0, attr('DW_AT_external', 'DW_FORM_flag_present', True), v4) == \
        Flag(True)
    assert transformer.transform_attribute(0, attr('DW_AT_declaration', 'DW_FORM_flag', 1), v4) == \
        Flag(True)
    assert transformer.transform_attribute(0, attr('DW_AT_low_pc', 'DW_FORM_addr', 0x8000), v4) == \
        Address(0x8000)


def test_blocks_are_copied(transformer, v4):
    value = transformer.transform_attribute(0, attr('DW_AT_const_value', 'DW_FORM_block1', [1, 2, 3]), v4)
    assert value == Block(b'\x01\x02\x03')


def test_unit_reference_is_redirected(transformer, v4):
    value = transformer.transform_attribute(0, attr('DW_AT_type', 'DW_FORM_ref4', 0x2b, raw_value=0x20), v4)
    assert value == UnitRef(1)


def test_dangling_unit_reference_is_dropped(transformer, v4, caplog):
    with caplog.at_level(logging.WARNING):
        value = transformer.transform_attribute(0, attr('DW_AT_type', 'DW_FORM_ref4', 0x99), v4)
    assert value is None
    assert transformer.stats.dropped['unresolved_reference'] == 1
    assert "not found in unit offsets" in caplog.text


def test_section_reference_crosses_units(transformer, v4):
    value = transformer.transform_attribute(0, attr('DW_AT_type', 'DW_FORM_ref_addr', 0x51), v4)
    assert value == DebugInfoRef(1, 1)
    assert transformer.transform_attribute(0, attr('DW_AT_type', 'DW_FORM_ref_addr', 0x52), v4) is None


def test_names_are_obfuscated_consistently(transformer, v4):
    first = transformer.transform_attribute(0, attr('DW_AT_name', 'DW_FORM_string', b'engineSpeed'), v4)
    second = transformer.transform_attribute(1, attr('DW_AT_name', 'DW_FORM_strp', b'engineSpeed'), v4)
    assert isinstance(first, String)
    assert first == second
    assert first.text != 'engineSpeed'
    assert len(first.text) == len('engineSpeed')
    assert transformer.string_table.get('engineSpeed') == first.text


def test_provenance_is_dropped(transformer, v4):
    assert transformer.transform_attribute(0, attr('DW_AT_producer', 'DW_FORM_strp', b'GNU C17'), v4) is None
    assert transformer.transform_attribute(0, attr('DW_AT_comp_dir', 'DW_FORM_string', b'/home'), v4) is None


def test_other_strings_pass_through(transformer, v4):
    value = transformer.transform_attribute(0, attr('DW_AT_linkage_name', 'DW_FORM_string', b'_Z3foov'), v4)
    assert value == String(b'_Z3foov')
    assert transformer.stats.plain_strings == 1


def test_fixed_address_is_masked(transformer, v4):
    expr = list(b'\x03' + struct.pack('<I', 0x10000040))
    value = transformer.transform_attribute(0, attr('DW_AT_location', 'DW_FORM_exprloc', expr), v4)
    assert isinstance(value, Exprloc)
    assert value.data[0] == 0x03
    masked = struct.unpack('<I', value.data[1:])[0]
    assert masked & 0xff == 0x40


def test_v3_location_block_is_masked(transformer):
    v3 = UnitContext(version=3, address_size=4)
    expr = list(b'\x03' + struct.pack('<I', 0x200001a4))
    value = transformer.transform_attribute(0, attr('DW_AT_location', 'DW_FORM_block1', expr), v3)
    assert isinstance(value, Exprloc)
    assert struct.unpack('<I', value.data[1:])[0] & 0xff == 0xa4


def test_frame_based_location_is_kept(transformer, v4):
    value = transformer.transform_attribute(0, attr('DW_AT_location', 'DW_FORM_exprloc', [0x91, 0x7c]), v4)
    assert value == Exprloc(b'\x91\x7c')


def test_composite_location_is_dropped(transformer, v4):
    # DW_OP_addr 0x1000; DW_OP_piece 4
    expr = list(b'\x03' + struct.pack('<I', 0x1000) + b'\x93\x04')
    assert transformer.transform_attribute(0, attr('DW_AT_location', 'DW_FORM_exprloc', expr), v4) is None
    assert transformer.stats.dropped['unsupported_expression'] == 1


def test_section_offsets_are_dropped(transformer, v4):
    assert transformer.transform_attribute(0, attr('DW_AT_stmt_list', 'DW_FORM_sec_offset', 0), v4) is None
    v2 = UnitContext(version=2, address_size=4)
    assert transformer.transform_attribute(0, attr('DW_AT_location', 'DW_FORM_data4', 0x40), v2) is None
    assert transformer.stats.dropped['section_offset'] == 2


def test_unimplemented_forms_warn_once(transformer, v4, caplog):
    with caplog.at_level(logging.WARNING):
        for _ in range(3):
            assert transformer.transform_attribute(0, attr('DW_AT_name', 'DW_FORM_strx1', 2), v4) is None
    assert caplog.text.count("DW_FORM_strx1") == 1
    assert transformer.stats.dropped['indexed_string'] == 3
