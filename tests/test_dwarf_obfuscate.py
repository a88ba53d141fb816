import io
import struct

import pytest
from elftools.elf.elffile import ELFFile

from elf_a2l_obfuscator.config import ObfuscatorConfig
from elf_a2l_obfuscator.dwarf.graph import iter_dfs
from elf_a2l_obfuscator.dwarf.obfuscate import load_dwarf_info, obfuscate_debug_info, obfuscate_dwarf
from elf_a2l_obfuscator.dwarf.values import DebugInfoRef, UnitRef
from elf_a2l_obfuscator.elf.container import ElfContainer
from elf_a2l_obfuscator.errors import ElfFormatError, MissingDebugInfoError

from conftest import (ENGINE_SPEED_ADDRESS, SENSORS_ADDRESS, SHF_ALLOC, SHF_EXECINSTR, ImageSection,
                      build_elf_image, build_gcc_style_elf_bytes)


def shape(dwarfinfo):
    """(tag, number of children) of every DIE, in DFS order."""
    result = []
    for cu in dwarfinfo.iter_CUs():
        for _, die in iter_dfs(cu.get_top_DIE()):
            result.append((die.tag, len(list(die.iter_children()))))
    return result


def variables(dwarfinfo):
    cu = next(dwarfinfo.iter_CUs())
    return [die for die in cu.get_top_DIE().iter_children() if die.tag == 'DW_TAG_variable']


@pytest.fixture
def obfuscated(elf_bytes, rng):
    container = ElfContainer.from_bytes(elf_bytes)
    table = obfuscate_debug_info(container, elf_bytes, rng, ObfuscatorConfig())
    output = container.to_bytes()
    return output, table


def test_graph_structure_is_conserved(elf_bytes, rng):
    dwarfinfo = load_dwarf_info(elf_bytes)
    graph, _ = obfuscate_dwarf(dwarfinfo, rng)
    assert graph.entry_count() == len(shape(dwarfinfo))

    expected = shape(dwarfinfo)
    actual = []
    for unit in graph.units:
        stack = [unit.root.handle]
        while stack:
            entry = unit.get(stack.pop())
            actual.append((entry.tag, len(entry.children)))
            stack.extend(reversed(entry.children))
    assert actual == expected


def test_references_resolve_to_existing_entries(elf_bytes, rng):
    graph, _ = obfuscate_dwarf(load_dwarf_info(elf_bytes), rng)
    references = 0
    for unit, entry in graph.iter_entries():
        for _, value in entry.attributes:
            if isinstance(value, UnitRef):
                assert value.entry in unit
                references += 1
            elif isinstance(value, DebugInfoRef):
                assert value.entry in graph.units[value.unit]
                references += 1
    assert references == 7


def test_output_is_readable_and_obfuscated(obfuscated, elf_bytes):
    output, table = obfuscated
    before = load_dwarf_info(elf_bytes)
    after = ELFFile(io.BytesIO(output)).get_dwarf_info()
    assert shape(after) == shape(before)

    top = next(after.iter_CUs()).get_top_DIE()
    assert 'DW_AT_producer' not in top.attributes
    assert 'DW_AT_comp_dir' not in top.attributes
    assert top.attributes['DW_AT_name'].value.decode() == table.get('engine.c')

    names = [die.attributes['DW_AT_name'].value.decode() for die in variables(after)]
    assert names == [table.get('engineSpeed'), table.get('sensors'), table.get('counter')]
    assert 'engineSpeed' not in names


def test_output_keeps_only_debug_sections(obfuscated):
    output, _ = obfuscated
    container = ElfContainer.from_bytes(output)
    assert sorted(s.name for s in container.sections) == ['.debug_abbrev', '.debug_info', '.shstrtab']


def test_addresses_are_masked(obfuscated):
    output, _ = obfuscated
    engine_speed, sensors, counter = variables(ELFFile(io.BytesIO(output)).get_dwarf_info())

    for die, original in ((engine_speed, ENGINE_SPEED_ADDRESS), (sensors, SENSORS_ADDRESS)):
        expr = bytes(die.attributes['DW_AT_location'].value)
        assert expr[0] == 0x03
        address = struct.unpack('<I', expr[1:5])[0]
        assert address & 0xff == original & 0xff

    assert bytes(counter.attributes['DW_AT_location'].value) == b'\x91\x7c'


def test_table_is_frozen(obfuscated):
    _, table = obfuscated
    assert table.frozen
    assert len(table.get('engineSpeed')) == len('engineSpeed')


def test_missing_debug_info(rng):
    data = build_elf_image([ImageSection('.text', b'\x00' * 4, flags=SHF_ALLOC | SHF_EXECINSTR)])
    with pytest.raises(MissingDebugInfoError):
        obfuscate_debug_info(ElfContainer.from_bytes(data), data, rng)


def test_corrupt_debug_info(rng):
    data = build_elf_image([
        ImageSection('.text', b'\x00' * 4, flags=SHF_ALLOC | SHF_EXECINSTR),
        ImageSection('.debug_info', b'\x40\x00\x00\x00\x04\x00\x00'),
        ImageSection('.debug_abbrev', b'\x00'),
    ])
    with pytest.raises(ElfFormatError):
        obfuscate_debug_info(ElfContainer.from_bytes(data), data, rng)


def test_compiler_style_dwarf5_unit(rng):
    data = build_gcc_style_elf_bytes()
    container = ElfContainer.from_bytes(data)
    table = obfuscate_debug_info(container, data, rng, ObfuscatorConfig())

    output = container.to_bytes()
    reparsed = ElfContainer.from_bytes(output)
    sections = reparsed.sections
    assert sorted(s.name for s in sections) == ['.debug_abbrev', '.debug_info', '.shstrtab']

    cu = next(ELFFile(io.BytesIO(output)).get_dwarf_info().iter_CUs())
    assert cu['version'] == 5
    top = cu.get_top_DIE()
    # line_strp names and the sec_offset line table pointer cannot be carried over
    for name in ('DW_AT_name', 'DW_AT_producer', 'DW_AT_comp_dir', 'DW_AT_stmt_list'):
        assert name not in top.attributes

    base_type, variable = top.iter_children()
    assert base_type.attributes['DW_AT_name'].value.decode() == table.get('unsigned int')
    assert variable.attributes['DW_AT_name'].value.decode() == table.get('engineSpeed')
    assert variable.attributes['DW_AT_external'].value
    assert variable.get_DIE_from_attribute('DW_AT_type').offset == base_type.offset

    expr = bytes(variable.attributes['DW_AT_location'].value)
    assert expr[0] == 0x03
    assert struct.unpack('<I', expr[1:5])[0] & 0xff == ENGINE_SPEED_ADDRESS & 0xff
