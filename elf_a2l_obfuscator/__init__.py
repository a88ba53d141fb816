"""
ELF/A2L Obfuscator.

Strips proprietary names and memory addresses from the DWARF debug info of an
ELF file and from the A2L calibration description that refers to it, keeping
both artifacts consistent with each other.
"""

__version__ = '0.1.0'
