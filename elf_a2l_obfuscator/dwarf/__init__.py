"""
DWARF debug info reconstruction and obfuscation.
"""

from .graph import DebugEntry, EntryGraph, OffsetMaps, OutputUnit, build_unit_structure, iter_dfs
from .strings import StringObfuscationTable
from .transform import AttributeTransformer, TransformStats, UnitContext
from .writer import DwarfWriter
from .obfuscate import load_dwarf_info, obfuscate_dwarf, obfuscate_debug_info

__all__ = [
    'DebugEntry',
    'EntryGraph',
    'OffsetMaps',
    'OutputUnit',
    'build_unit_structure',
    'iter_dfs',
    'StringObfuscationTable',
    'AttributeTransformer',
    'TransformStats',
    'UnitContext',
    'DwarfWriter',
    'load_dwarf_info',
    'obfuscate_dwarf',
    'obfuscate_debug_info',
]
