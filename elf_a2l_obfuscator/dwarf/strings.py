"""
Run-scoped mapping from original debug info names to their pseudonyms.
"""
import logging
from types import MappingProxyType
from typing import Callable, Dict, Iterator, Mapping, Optional

import numpy as np

from ..pseudonym import obfuscate_identifier

logger = logging.getLogger(__name__)

# attempts to find an unused pseudonym before accepting a collision
MAX_ATTEMPTS = 16


class StringObfuscationTable:
    """
    Append-only original -> pseudonym mapping.

    The same original string always yields the same pseudonym within one run.
    Once frozen (when handed to the A2L stage) no new entries can be added.
    """

    def __init__(self, rng: np.random.Generator,
                 generator: Callable[[str, np.random.Generator], str] = obfuscate_identifier):
        self._rng = rng
        self._generator = generator
        self._mapping: Dict[str, str] = {}
        self._used = set()
        self._frozen = False

    def obfuscate(self, original: str) -> str:
        """
        Get the pseudonym for a string, creating it on first use.

        Args:
            original: Original name

        Returns:
            str: Pseudonym
        """
        existing = self._mapping.get(original)
        if existing is not None:
            return existing
        if self._frozen:
            raise RuntimeError("string table is frozen")

        pseudonym = self._generator(original, self._rng)
        for _ in range(MAX_ATTEMPTS):
            if pseudonym not in self._used:
                break
            pseudonym = self._generator(original, self._rng)
        else:
            # short names have only a few possible pseudonyms
            logger.debug(f"accepting pseudonym collision for a {len(original)} character name")

        self._mapping[original] = pseudonym
        self._used.add(pseudonym)
        return pseudonym

    def get(self, original: str, default: Optional[str] = None) -> Optional[str]:
        return self._mapping.get(original, default)

    def freeze(self) -> 'StringObfuscationTable':
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def as_mapping(self) -> Mapping[str, str]:
        """Read-only view of the mapping."""
        return MappingProxyType(self._mapping)

    def __contains__(self, original) -> bool:
        return original in self._mapping

    def __len__(self) -> int:
        return len(self._mapping)

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def items(self):
        return self._mapping.items()
