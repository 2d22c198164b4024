# =============================================================================
# core/prefixes.py - Privileged account naming convention
# =============================================================================

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class PrefixPolicy:
    """Privileged accounts are named <prefix><separator><base identity>, e.g. adm-jdoe"""
    prefixes: Tuple[str, ...]
    separator: str = "-"

    @classmethod
    def from_list(cls, prefixes: List[str], separator: str = "-") -> 'PrefixPolicy':
        cleaned = tuple(p.strip() for p in prefixes if p and p.strip())
        return cls(prefixes=cleaned, separator=separator)

    @property
    def leaders(self) -> List[str]:
        """Full leading strings, prefix plus separator"""
        return [f"{prefix}{self.separator}" for prefix in self.prefixes]

    def matches(self, identifier: Optional[str]) -> bool:
        """Case-insensitive check that identifier starts with a configured prefix"""
        if not identifier:
            return False
        lowered = identifier.lower()
        return any(lowered.startswith(leader.lower()) for leader in self.leaders)

    def strip(self, identifier: Optional[str]) -> Optional[str]:
        """Remove the leading prefix and separator; None if nothing matched or nothing is left"""
        if not identifier:
            return None
        lowered = identifier.lower()
        for leader in self.leaders:
            if lowered.startswith(leader.lower()):
                base = identifier[len(leader):].strip()
                return base or None
        return None
