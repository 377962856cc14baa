# Market partner code lookup (BDEW codes, EIC codes) used to name the parties
# referenced in a message.
import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

_PARTNER_CODE_PATTERNS = (
    re.compile(r"^\d{13}$"),                        # BDEW code
    re.compile(r"^\d{2}[A-Z][A-Z0-9-]{13}$"),      # EIC code, e.g. 10YDE-RWENET---I
    re.compile(r"^9\d{11,12}$"),
)


def is_partner_code(value: Optional[str]) -> bool:
    """True when ``value`` looks like a market partner identifier."""
    if not value:
        return False
    clean = value.strip()
    return any(pattern.match(clean) for pattern in _PARTNER_CODE_PATTERNS)


class PartnerRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    company_name: str
    roles: Tuple[str, ...] = Field(default_factory=tuple)

    def display_name(self) -> str:
        if self.roles:
            return f"{self.company_name} [{', '.join(self.roles)}]"
        return self.company_name


class PartnerLookup(Protocol):
    async def lookup(self, code: str) -> Optional[PartnerRecord]:
        ...


class InMemoryPartnerLookup:
    """Partner directory held in memory, e.g. loaded from a JSON export."""

    def __init__(self, records: Iterable[PartnerRecord] = ()):
        self._records: Dict[str, PartnerRecord] = {record.code: record for record in records}

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryPartnerLookup":
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        records = [PartnerRecord.model_validate(item) for item in data]
        logger.info(f"Loaded {len(records)} partner records from {path}")
        return cls(records)

    def __len__(self) -> int:
        return len(self._records)

    async def lookup(self, code: str) -> Optional[PartnerRecord]:
        return self._records.get(code.strip())
