"""
ELF container handling.
"""

from .container import ElfContainer, MANAGED_DEBUG_SECTIONS

__all__ = [
    'ElfContainer',
    'MANAGED_DEBUG_SECTIONS',
]
