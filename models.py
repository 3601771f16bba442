from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Iterator, Optional, Tuple

class EntitlementRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str = Field(min_length=1)
    expiry_raw: str = Field(min_length=1)  # unparsed, exactly as published

class EntitlementSet(BaseModel):
    """Immutable snapshot of the records returned by one fetch."""

    model_config = ConfigDict(frozen=True)

    records: Tuple[EntitlementRecord, ...] = ()

    @classmethod
    def from_mapping(cls, table: Dict[str, str]) -> "EntitlementSet":
        return cls(records=tuple(
            EntitlementRecord(identifier=identifier, expiry_raw=expiry_raw)
            for identifier, expiry_raw in table.items()
        ))

    def get(self, identifier: str) -> Optional[EntitlementRecord]:
        for record in self.records:
            if record.identifier == identifier:
                return record
        return None

    def __iter__(self) -> Iterator[EntitlementRecord]:  # type: ignore[override]
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    def __bool__(self) -> bool:
        return bool(self.records)

# HTTP payloads
class LicenseCheckRequest(BaseModel):
    identifier: Optional[str] = None

class LicenseCheckResponse(BaseModel):
    identifier: str
    authorized: bool

class LicenseRefreshResponse(BaseModel):
    success: bool
    records: int
    message: str

class HealthCheckResponse(BaseModel):
    status: str
    service: str
    version: str
    sourceCode: Optional[str] = None
    hardwareId: Optional[str] = None
