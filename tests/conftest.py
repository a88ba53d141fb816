"""
Shared fixtures: a seeded random generator, a small ELF file with DWARF debug
info and a matching A2L file.
"""
import struct
from typing import NamedTuple

import numpy as np
import pytest

from elf_a2l_obfuscator.dwarf.graph import EntryGraph
from elf_a2l_obfuscator.dwarf.values import Constant, Exprloc, Flag, String, UnitRef
from elf_a2l_obfuscator.dwarf.writer import DwarfWriter

ENGINE_SPEED_ADDRESS = 0x10000040
SENSORS_ADDRESS = 0x10000100

SHT_PROGBITS = 1
SHT_STRTAB = 3
SHF_ALLOC = 0x2
SHF_EXECINSTR = 0x4
SHF_COMPRESSED = 0x800
LOAD_ADDRESS = 0x8000


def addr_expr(address):
    return Exprloc(b'\x03' + struct.pack('<I', address))


def build_debug_graph():
    """
    One DWARF 4 compile unit:

        unsigned int engineSpeed;               @ 0x10000040
        struct SensorData { unsigned int rpm; unsigned int temps[4]; } sensors;
        static int counter;                     (frame based)
    """
    graph = EntryGraph()
    unit = graph.add_unit(version=4, address_size=4)

    root = unit.add(None, 'DW_TAG_compile_unit')
    cu = unit.get(root)
    cu.set('DW_AT_producer', String(b'GNU C17 12.2.0 -mcpu=cortex-m4'))
    cu.set('DW_AT_language', Constant(12, 'DW_FORM_data1'))
    cu.set('DW_AT_name', String(b'engine.c'))
    cu.set('DW_AT_comp_dir', String(b'/home/dev/firmware'))

    uint = unit.add(root, 'DW_TAG_base_type')
    unit.get(uint).set('DW_AT_byte_size', Constant(4, 'DW_FORM_data1'))
    unit.get(uint).set('DW_AT_encoding', Constant(7, 'DW_FORM_data1'))
    unit.get(uint).set('DW_AT_name', String(b'unsigned int'))

    array = unit.add(root, 'DW_TAG_array_type')
    unit.get(array).set('DW_AT_type', UnitRef(uint))
    subrange = unit.add(array, 'DW_TAG_subrange_type')
    unit.get(subrange).set('DW_AT_type', UnitRef(uint))
    unit.get(subrange).set('DW_AT_upper_bound', Constant(3, 'DW_FORM_data1'))

    struct_type = unit.add(root, 'DW_TAG_structure_type')
    unit.get(struct_type).set('DW_AT_name', String(b'SensorData'))
    unit.get(struct_type).set('DW_AT_byte_size', Constant(20, 'DW_FORM_data1'))
    rpm = unit.add(struct_type, 'DW_TAG_member')
    unit.get(rpm).set('DW_AT_name', String(b'rpm'))
    unit.get(rpm).set('DW_AT_type', UnitRef(uint))
    unit.get(rpm).set('DW_AT_data_member_location', Constant(0, 'DW_FORM_data1'))
    temps = unit.add(struct_type, 'DW_TAG_member')
    unit.get(temps).set('DW_AT_name', String(b'temps'))
    unit.get(temps).set('DW_AT_type', UnitRef(array))
    unit.get(temps).set('DW_AT_data_member_location', Constant(4, 'DW_FORM_data1'))

    engine_speed = unit.add(root, 'DW_TAG_variable')
    unit.get(engine_speed).set('DW_AT_name', String(b'engineSpeed'))
    unit.get(engine_speed).set('DW_AT_type', UnitRef(uint))
    unit.get(engine_speed).set('DW_AT_external', Flag(True))
    unit.get(engine_speed).set('DW_AT_location', addr_expr(ENGINE_SPEED_ADDRESS))

    sensors = unit.add(root, 'DW_TAG_variable')
    unit.get(sensors).set('DW_AT_name', String(b'sensors'))
    unit.get(sensors).set('DW_AT_type', UnitRef(struct_type))
    unit.get(sensors).set('DW_AT_location', addr_expr(SENSORS_ADDRESS))

    counter = unit.add(root, 'DW_TAG_variable')
    unit.get(counter).set('DW_AT_name', String(b'counter'))
    unit.get(counter).set('DW_AT_type', UnitRef(uint))
    # DW_OP_fbreg -4
    unit.get(counter).set('DW_AT_location', Exprloc(b'\x91\x7c'))

    return graph


class ImageSection(NamedTuple):
    name: str
    data: bytes
    sh_type: int = SHT_PROGBITS
    flags: int = 0


def build_elf_image(sections, elf_class=32, little_endian=True, machine=40):
    """
    Lay out a small executable: ELF header, one PT_LOAD segment for the first
    allocated section, section data, section name table and section headers.
    """
    endian = '<' if little_endian else '>'
    is64 = elf_class == 64
    ehdr_fmt = endian + ('HHIQQQIHHHHHH' if is64 else 'HHIIIIIHHHHHH')
    phdr_fmt = endian + ('IIQQQQQQ' if is64 else 'IIIIIIII')
    shdr_fmt = endian + ('IIQQQQIIQQ' if is64 else 'IIIIIIIIII')
    ehdr_size = 16 + struct.calcsize(ehdr_fmt)

    sections = list(sections) + [ImageSection('.shstrtab', b'', SHT_STRTAB)]
    names = bytearray(b'\0')
    name_offsets = []
    for section in sections:
        name_offsets.append(len(names))
        names += section.name.encode() + b'\0'
    sections[-1] = sections[-1]._replace(data=bytes(names))

    loaded = [i for i, section in enumerate(sections) if section.flags & SHF_ALLOC][:1]
    image = bytearray(ehdr_size + len(loaded) * struct.calcsize(phdr_fmt))
    offsets = []
    for section in sections:
        image += bytes(-len(image) % 4)
        offsets.append(len(image))
        image += section.data

    image += bytes(-len(image) % 8)
    shoff = len(image)
    image += bytes(struct.calcsize(shdr_fmt))
    for section, name, offset in zip(sections, name_offsets, offsets):
        alloc = bool(section.flags & SHF_ALLOC)
        image += struct.pack(shdr_fmt, name, section.sh_type, section.flags,
                             LOAD_ADDRESS + offset if alloc else 0, offset, len(section.data),
                             0, 0, 4 if alloc else 1, 0)

    entry = 0
    for index in loaded:
        offset, size = offsets[index], len(sections[index].data)
        entry = LOAD_ADDRESS + offset
        if is64:
            phdr = struct.pack(phdr_fmt, 1, 5, offset, entry, entry, size, size, 4)
        else:
            phdr = struct.pack(phdr_fmt, 1, offset, entry, entry, size, size, 5, 4)
        image[ehdr_size:ehdr_size + len(phdr)] = phdr

    image[0:16] = b'\x7fELF' + bytes([2 if is64 else 1, 1 if little_endian else 2, 1]) + bytes(9)
    struct.pack_into(ehdr_fmt, image, 16, 2, machine, 1, entry, ehdr_size if loaded else 0, shoff, 0,
                     ehdr_size, struct.calcsize(phdr_fmt), len(loaded), struct.calcsize(shdr_fmt),
                     len(sections) + 1, len(sections))
    return bytes(image)


def build_elf_bytes(graph=None):
    graph = graph or build_debug_graph()
    sections = DwarfWriter(graph).write()
    return build_elf_image([
        ImageSection('.text', b'\x00\xbf' * 16, flags=SHF_ALLOC | SHF_EXECINSTR),
        ImageSection('.comment', b'GCC: (Arm GNU Toolchain) 12.2\0'),
        ImageSection('.debug_info', sections['.debug_info']),
        ImageSection('.debug_abbrev', sections['.debug_abbrev']),
        ImageSection('.debug_str', b'\0unused\0'),
    ])


def build_gcc_style_elf_bytes():
    """
    One DWARF 5 compile unit encoded the way gcc emits it: strp and
    line_strp names, a sec_offset line table pointer and flag_present.

        unsigned int engineSpeed;               @ 0x10000040
    """
    debug_str = b'GNU C17 12.2.0\0unsigned int\0engineSpeed\0'
    debug_line_str = b'engine.c\0/home/dev/firmware\0'
    abbrev = bytes([
        1, 0x11, 1, 0x25, 0x0e, 0x03, 0x1f, 0x1b, 0x1f, 0x10, 0x17, 0, 0,   # compile_unit
        2, 0x24, 0, 0x0b, 0x0b, 0x3e, 0x0b, 0x03, 0x0e, 0, 0,               # base_type
        3, 0x34, 0, 0x03, 0x0e, 0x49, 0x13, 0x3f, 0x19, 0x02, 0x18, 0, 0,   # variable
        0,
    ])
    # DIE offsets are relative to the 12 byte unit header
    dies = (
        b'\x01' + struct.pack('<IIII', 0, 0, 9, 0)
        + b'\x02\x04\x07' + struct.pack('<I', 15)                            # @ 29
        + b'\x03' + struct.pack('<II', 28, 29) + b'\x05\x03' + struct.pack('<I', ENGINE_SPEED_ADDRESS)
        + b'\x00'
    )
    # unit_length, version, DW_UT_compile, address_size, abbrev offset
    info = struct.pack('<IHBBI', len(dies) + 8, 5, 0x01, 4, 0) + dies
    return build_elf_image([
        ImageSection('.text', b'\x00\xbf' * 16, flags=SHF_ALLOC | SHF_EXECINSTR),
        ImageSection('.debug_info', info),
        ImageSection('.debug_abbrev', abbrev),
        ImageSection('.debug_str', debug_str),
        ImageSection('.debug_line_str', debug_line_str),
    ])


A2L_TEXT = '''ASAP2_VERSION 1 71
/* generated by the calibration build */
/begin PROJECT EngineProject "Engine control project"
  /begin HEADER "Engine header comment"
    VERSION "1.0"
    PROJECT_NO EngineCtrl100
  /end HEADER
  /begin MODULE EngineModule "Main module"
    /begin MEASUREMENT EngSpeed_rpm "Engine speed in rpm"
      UWORD CM_Speed 0 0 0 8000
      ECU_ADDRESS 0x10000040
      SYMBOL_LINK "engineSpeed" 0
      DISPLAY_IDENTIFIER EngSpeed
      /begin FUNCTION_LIST SpeedCtrl
      /end FUNCTION_LIST
    /end MEASUREMENT
    /begin MEASUREMENT SensorRpm "Sensor rpm"
      UWORD NO_COMPU_METHOD 0 0 0 8000
      ECU_ADDRESS 0x10000100
      SYMBOL_LINK "sensors.rpm" 0
    /end MEASUREMENT
    /begin CHARACTERISTIC Kp_Speed "Proportional gain" VALUE 0x20000000 RL_Value 0 CM_Speed 0 100
      SYMBOL_LINK "unknownVariable" 0
      /begin IF_DATA CANAPE_EXT
        100
        LINK_MAP "sensors.temps[2]" 0x10000108 0x0 0 0x0 1 0x87 0x0
      /end IF_DATA
    /end CHARACTERISTIC
    /begin CHARACTERISTIC SpeedMap "Speed map" CURVE 0x20000010 RL_Curve 0 NO_COMPU_METHOD 0 100
      /begin AXIS_DESCR COM_AXIS EngSpeed_rpm CM_Speed 8 0 8000
        AXIS_PTS_REF SpeedAxis
      /end AXIS_DESCR
    /end CHARACTERISTIC
    /begin AXIS_PTS SpeedAxis "Speed axis" 0x20000100 NO_INPUT_QUANTITY RL_Axis 0 CM_Speed 8 0 8000
    /end AXIS_PTS
    /begin RECORD_LAYOUT RL_Value
      FNC_VALUES 1 UWORD COLUMN_DIR DIRECT
    /end RECORD_LAYOUT
    /begin RECORD_LAYOUT RL_Curve
      FNC_VALUES 1 UWORD COLUMN_DIR DIRECT
    /end RECORD_LAYOUT
    /begin RECORD_LAYOUT RL_Axis
      AXIS_PTS_X 1 UWORD INDEX_INCR DIRECT
    /end RECORD_LAYOUT
    /begin FUNCTION SpeedCtrl "Speed controller"
      /begin DEF_CHARACTERISTIC Kp_Speed SpeedAxis
      /end DEF_CHARACTERISTIC
      /begin IN_MEASUREMENT EngSpeed_rpm MissingSignal
      /end IN_MEASUREMENT
    /end FUNCTION
    /begin GROUP Calibration "Calibration group"
      /begin REF_CHARACTERISTIC Kp_Speed SpeedMap
      /end REF_CHARACTERISTIC
      /begin SUB_GROUP NoSuchGroup
      /end SUB_GROUP
    /end GROUP
    /begin COMPU_METHOD CM_Speed "Speed conversion" TAB_VERB "%6.2" "rpm"
      COMPU_TAB_REF CT_State
    /end COMPU_METHOD
    /begin COMPU_VTAB CT_State "Engine state" TAB_VERB 2
      0 "Off"
      1 "Running"
      DEFAULT_VALUE "Unknown"
    /end COMPU_VTAB
  /end MODULE
/end PROJECT
'''


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def debug_graph():
    return build_debug_graph()


@pytest.fixture
def elf_bytes():
    return build_elf_bytes()


@pytest.fixture
def elf_file(tmp_path, elf_bytes):
    path = tmp_path / "input.elf"
    path.write_bytes(elf_bytes)
    return path


@pytest.fixture
def a2l_file(tmp_path):
    path = tmp_path / "input.a2l"
    path.write_text(A2L_TEXT, encoding="utf-8")
    return path
