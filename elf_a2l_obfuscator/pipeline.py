"""
End-to-end obfuscation of an ELF file and its A2L description.
"""
import logging
from typing import Optional

import numpy as np

from .a2l.debuginfo import DebugData
from .a2l.document import A2lDocument
from .a2l.rename import IdentifierRenameEngine
from .config import ObfuscatorConfig
from .dwarf.obfuscate import obfuscate_debug_info
from .elf.container import ElfContainer

logger = logging.getLogger(__name__)


def run(elf_in: str, elf_out: str, a2l_in: str, a2l_out: str,
        config: Optional[ObfuscatorConfig] = None,
        rng: Optional[np.random.Generator] = None):
    """
    Obfuscate an ELF file and the matching A2L file.

    The A2L file is parsed before anything is written, so an unreadable
    document aborts the run without output. Symbol links of the A2L file are
    resolved against the ELF file that was just written.

    Args:
        elf_in: Input ELF file
        elf_out: Output ELF file (debug sections only)
        a2l_in: Input A2L file
        a2l_out: Output A2L file
        config: Run configuration (defaults if None)
        rng: Random generator (created from the configuration if None)

    Raises:
        ObfuscationError: on any fatal error
    """
    config = config or ObfuscatorConfig()
    rng = rng if rng is not None else config.create_rng()

    logger.info(f"Loading ELF file {elf_in}")
    with open(elf_in, 'rb') as f:
        elf_data = f.read()
    container = ElfContainer.from_bytes(elf_data)

    document = A2lDocument.load(a2l_in, encoding=config.get("a2l", "encoding", default="utf-8"))

    logger.info("Obfuscating debug info")
    name_table = obfuscate_debug_info(container, elf_data, rng, config)
    container.write(elf_out)

    logger.info("Obfuscating A2L file")
    debug_data = DebugData.load(elf_out)
    engine = IdentifierRenameEngine(
        rng, debug_data, name_table.as_mapping(),
        label_words=config.get_label_words(),
        show_progress=config.get("show_progress", default=False))
    engine.obfuscate_document(document)
    document.write(a2l_out, strip_comments=config.get("a2l", "strip_comments", default=True),
                   encoding=config.get("a2l", "encoding", default="utf-8"))

    return engine
