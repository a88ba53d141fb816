"""
Exceptions raised by the obfuscator.

Everything that aborts a run derives from ObfuscationError so the command line
front end can report it as a single line.
"""


class ObfuscationError(Exception):
    """Base class for fatal obfuscation errors."""


class ElfFormatError(ObfuscationError):
    """The ELF container could not be read."""


class MissingDebugInfoError(ObfuscationError):
    """The ELF container has no DWARF debug info."""


class DwarfStructureError(ObfuscationError):
    """The debug info tree is malformed."""


class SectionPlaceholderError(ObfuscationError):
    """A rebuilt debug section has no placeholder in the stripped container."""


class A2lParseError(ObfuscationError):
    """The A2L document could not be parsed."""

    def __init__(self, message, line=None):
        if line is not None:
            message = f"line {line}: {message}"
        super().__init__(message)
        self.line = line


class SymbolNotFoundError(Exception):
    """A symbol name could not be correlated with the debug info."""
