#!/usr/bin/env python3
"""
Obfuscate an ELF file and its A2L file without installing the package.

Usage: python scripts/obfuscate.py <input.elf> <output.elf> <input.a2l> <output.a2l>
"""
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from elf_a2l_obfuscator.cli import main

if __name__ == "__main__":
    sys.exit(main())
