"""
ELF container backed by LIEF: strip everything that is not debug info, swap
in rebuilt debug sections and write a fresh file.
"""
import logging
from typing import Dict, List, Optional

import lief

from ..errors import ElfFormatError, SectionPlaceholderError

logger = logging.getLogger(__name__)

ELF_MAGIC = b'\x7fELF'

SHSTRTAB = '.shstrtab'

# debug sections that are regenerated (or deliberately left empty) by the
# DWARF stage; anything in here that is not rebuilt refers to the old layout
MANAGED_DEBUG_SECTIONS = (
    '.debug_abbrev',
    '.debug_addr',
    '.debug_aranges',
    '.debug_info',
    '.debug_line',
    '.debug_line_str',
    '.debug_loc',
    '.debug_loclists',
    '.debug_macinfo',
    '.debug_macro',
    '.debug_names',
    '.debug_pubnames',
    '.debug_pubtypes',
    '.debug_ranges',
    '.debug_rnglists',
    '.debug_str',
    '.debug_str_offsets',
    '.debug_types',
)


class ElfContainer:
    """
    Parsed ELF binary reduced to the operations the obfuscator needs.

    Loadable sections are removed with their content cleared, so the output
    carries no code or data even where the segment table survives.
    """

    def __init__(self, binary: lief.ELF.Binary):
        self.binary = binary

    @classmethod
    def load(cls, path: str) -> 'ElfContainer':
        """
        Read an ELF file from disk.

        Args:
            path: Path to the ELF file

        Returns:
            ElfContainer: Parsed container
        """
        with open(path, 'rb') as f:
            data = f.read()
        return cls.from_bytes(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'ElfContainer':
        """
        Parse an ELF image.

        Args:
            data: Complete file content

        Returns:
            ElfContainer: Parsed container

        Raises:
            ElfFormatError: if the data is not an ELF file LIEF can read
        """
        if data[:4] != ELF_MAGIC:
            raise ElfFormatError("Not an ELF file (bad magic)")
        binary = lief.ELF.parse(list(data))
        if binary is None:
            raise ElfFormatError("Could not parse ELF file")
        logger.debug(f"Read ELF file with {len(binary.sections)} sections")
        return cls(binary)

    @property
    def sections(self) -> List[lief.ELF.Section]:
        # index 0 is the null section
        return [section for section in self.binary.sections if section.name]

    def get_section(self, name: str) -> Optional[lief.ELF.Section]:
        return self.binary.get_section(name)

    def section_data(self, name: str) -> Optional[bytes]:
        section = self.get_section(name)
        return bytes(section.content) if section is not None else None

    def delete_section(self, name: str) -> bool:
        if self.get_section(name) is None:
            return False
        self.binary.remove_section(name, clear=True)
        return True

    def has_debug_info(self) -> bool:
        return self.get_section('.debug_info') is not None

    def strip_to_debug_sections(self):
        """
        Remove all sections that are not .debug_<xyz> or the section name table.

        Static symbols go first, then every other section is removed and its
        content zeroed.
        """
        self.binary.strip()
        removed = 0
        for name in [section.name for section in self.sections]:
            if name.startswith('.debug') or name == SHSTRTAB:
                continue
            logger.debug(f"Stripping section {name}")
            self.delete_section(name)
            removed += 1
        logger.info(f"Stripped {removed} non-debug sections, {len(self.sections)} remain")

    def replace_debug_sections(self, rebuilt: Dict[str, bytes]):
        """
        Put rebuilt debug sections back into the container.

        A non-empty rebuilt section replaces the placeholder of the same name
        with a fresh, uncompressed, non-loaded section; an empty one deletes
        it. Managed debug sections that were not rebuilt at all are deleted
        as well.

        Args:
            rebuilt: Mapping from section name to new content

        Raises:
            SectionPlaceholderError: if a non-empty section has no placeholder
        """
        for name, data in rebuilt.items():
            if data:
                if self.get_section(name) is None:
                    raise SectionPlaceholderError(
                        f"obfuscate is trying to add a section that does not exist in the "
                        f"input file: {name} with {len(data)} bytes")
                self.delete_section(name)
                section = lief.ELF.Section(name, lief.ELF.Section.TYPE.PROGBITS)
                section.content = list(data)
                section.alignment = 1
                self.binary.add(section, loaded=False)
            else:
                self.delete_section(name)

        for name in MANAGED_DEBUG_SECTIONS:
            if name not in rebuilt and self.delete_section(name):
                logger.debug(f"Deleted stale debug section {name}")

    def to_bytes(self) -> bytes:
        """
        Build the modified binary.

        Returns:
            bytes: File content
        """
        builder = lief.ELF.Builder(self.binary)
        builder.build()
        return bytes(builder.get_build())

    def write(self, path: str):
        """
        Write the container to disk.

        Args:
            path: Output file path
        """
        self.binary.write(path)
        logger.info(f"Wrote {path} with {len(self.sections)} sections")
