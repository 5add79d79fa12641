"""ExtractionGateway protocol and its typed result values."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Protocol, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


class ErrorKind(str, Enum):
    UNREACHABLE = "unreachable"
    SCHEMA_MISMATCH = "schema_mismatch"
    EMPTY = "empty"


@dataclass(frozen=True)
class ExtractionOk(Generic[ModelT]):
    data: ModelT


@dataclass(frozen=True)
class ExtractionFailure:
    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


ExtractionResult = ExtractionOk[ModelT] | ExtractionFailure


class ExtractionGateway(Protocol):
    """Protocol for structured page extraction (browser + LLM, fixtures, etc.)."""

    async def extract(self, target: str, schema: type[ModelT], instruction: str) -> ExtractionResult:
        """Extract data matching *schema* from the page at *target*.

        Never raises for target or payload problems; those come back as an
        ExtractionFailure. The call has no side effects on the target.
        """
        ...
