"""
Rebuild the DWARF debug info of an ELF container under new identities.

The debug info is handled in two passes:
- pass 1 creates all units and all entries of the output graph, recording
  where each input unit-local offset and .debug_info offset went
- pass 2 adds the attributes of every entry, redirecting references through
  the maps from pass 1 and obfuscating names and addresses on the way
Pass 2 only starts once every unit has been built, since references may point
forward into later units.
"""
import io
import logging
from typing import Optional, Tuple

import numpy as np
from elftools.common.exceptions import ELFError, DWARFError
from elftools.elf.elffile import ELFFile
from tqdm import tqdm

from ..config import ObfuscatorConfig
from ..elf.container import ElfContainer
from ..errors import ElfFormatError, MissingDebugInfoError
from .graph import EntryGraph, OffsetMaps, build_unit_structure, iter_dfs
from .strings import StringObfuscationTable
from .transform import AttributeTransformer, TransformStats, UnitContext
from .writer import DwarfWriter

logger = logging.getLogger(__name__)


def load_dwarf_info(data: bytes):
    """
    Open the DWARF info of an ELF image with pyelftools.

    Args:
        data: Complete ELF file content

    Returns:
        DWARFInfo: Parsed debug info

    Raises:
        ElfFormatError: if pyelftools cannot read the file
        MissingDebugInfoError: if there are no debug sections
    """
    try:
        elffile = ELFFile(io.BytesIO(data))
        if not elffile.has_dwarf_info():
            raise MissingDebugInfoError("no dwarf sections found in input file")
        return elffile.get_dwarf_info()
    except (ELFError, DWARFError) as e:
        raise ElfFormatError(f"could not read debug info: {e}") from e


def obfuscate_dwarf(dwarfinfo, rng: np.random.Generator,
                    config: Optional[ObfuscatorConfig] = None,
                    stats: Optional[TransformStats] = None) -> Tuple[EntryGraph, StringObfuscationTable]:
    """
    Create a new, obfuscated debug info graph from the input debug info.

    Args:
        dwarfinfo: pyelftools DWARFInfo of the input file
        rng: Random generator for names and addresses
        config: Run configuration (defaults if None)
        stats: Counters to update

    Returns:
        tuple: (output graph, table of original -> obfuscated names)
    """
    config = config or ObfuscatorConfig()
    little_endian = dwarfinfo.config.little_endian
    show_progress = config.get("show_progress", default=False)

    graph = EntryGraph()
    offsets = OffsetMaps()
    string_table = StringObfuscationTable(rng)

    # pass 1
    built = []
    for cu in tqdm(dwarfinfo.iter_CUs(), desc="Building units", disable=not show_progress):
        output_unit = graph.add_unit(cu['version'], cu['address_size'])
        build_unit_structure(output_unit, iter_dfs(cu.get_top_DIE()), cu.cu_offset, offsets)
        built.append((cu, output_unit))
    logger.info(f"Created {graph.entry_count()} entries in {len(graph.units)} units")

    # pass 2
    transformer = AttributeTransformer(
        string_table, offsets, rng,
        keep_bits=config.get("dwarf", "address_mask_keep_bits", default=8),
        max_iterations=config.get("dwarf", "expression_max_iterations", default=100),
        stats=stats)
    for cu, output_unit in tqdm(built, desc="Obfuscating units", disable=not show_progress):
        context = UnitContext.from_cu(cu, little_endian)
        transformer.transform_unit(output_unit, iter_dfs(cu.get_top_DIE()), cu.cu_offset, context)
    transformer.stats.log_summary()

    return graph, string_table


def obfuscate_debug_info(container: ElfContainer, data: bytes, rng: np.random.Generator,
                         config: Optional[ObfuscatorConfig] = None) -> StringObfuscationTable:
    """
    Replace the debug info of a container with an obfuscated version.

    The container is stripped down to its debug sections first; the rebuilt
    sections then replace their placeholders.

    Args:
        container: Container parsed from `data`; modified in place
        data: Original ELF file content
        rng: Random generator
        config: Run configuration

    Returns:
        StringObfuscationTable: Frozen name mapping for the A2L stage
    """
    if not container.has_debug_info():
        raise MissingDebugInfoError("no dwarf sections found in input file")
    dwarfinfo = load_dwarf_info(data)

    container.strip_to_debug_sections()
    try:
        graph, string_table = obfuscate_dwarf(dwarfinfo, rng, config)
    except (ELFError, DWARFError) as e:
        # units are parsed lazily, so format errors surface here
        raise ElfFormatError(f"could not read debug info: {e}") from e

    sections = DwarfWriter(graph, dwarfinfo.config.little_endian).write()
    container.replace_debug_sections(sections)

    return string_table.freeze()
