"""
Operation registry.

Static table mapping an operation id ("pdf.merge", "image.resize") to its
input contract, parameter schema and handler. Filled once at startup,
then frozen; lookups after that need no locking.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Type

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from toolhub.core.errors import InvalidParameters, UnsupportedOperation
from toolhub.pipeline.media import MediaType
from toolhub.pipeline.models import Arity, OperationKind, OperationResult, UploadedAsset

Handler = Callable[[List[UploadedAsset], BaseModel, Optional[Path]], OperationResult]


class ToolParams(BaseModel):
    """Base for operation parameter schemas.

    Fields are snake_case in Python and camelCase on the wire
    (``maintainRatio`` → ``maintain_ratio``). Unknown keys are ignored.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class NoParams(ToolParams):
    pass


def describe_validation_error(error: PydanticValidationError) -> str:
    """First pydantic error as a short client-facing sentence."""
    first = error.errors()[0]
    message = str(first.get("msg", "Invalid parameters"))
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    location = [str(part) for part in first.get("loc", ()) if part != "__root__"]
    if location:
        return f"Invalid parameter '{'.'.join(location)}': {message}"
    return message


@dataclass(frozen=True)
class OperationSpec:
    """Immutable description of one operation."""
    id: str
    title: str
    arity: Arity
    handler: Handler
    params_model: Type[ToolParams] = NoParams
    accepted_types: FrozenSet[MediaType] = frozenset()
    max_input_size_bytes: int = 10 * 1024 * 1024
    kind: OperationKind = OperationKind.DELIVERABLE
    min_inputs: int = 1
    max_inputs: int = 50
    arity_message: Optional[str] = None
    output_prefix: Optional[str] = None
    archive_name: Optional[str] = None
    text_field: str = "text"

    @property
    def family(self) -> str:
        return self.id.split(".", 1)[0]

    @property
    def slug(self) -> str:
        return self.id.split(".", 1)[1]

    @property
    def takes_files(self) -> bool:
        return self.arity in (Arity.SINGLE, Arity.MULTIPLE)

    @property
    def takes_text(self) -> bool:
        return self.arity is Arity.TEXT

    @property
    def default_archive_name(self) -> str:
        return self.archive_name or f"{self.slug}-results.zip"

    def parse_params(self, raw: Dict[str, object]) -> ToolParams:
        """Validate raw request parameters against the operation's schema."""
        try:
            return self.params_model.model_validate(raw)
        except PydanticValidationError as e:
            raise InvalidParameters(describe_validation_error(e)) from e


class OperationRegistry:
    """Registry of OperationSpecs keyed by id."""

    def __init__(self):
        self._specs: Dict[str, OperationSpec] = {}
        self._frozen = False

    def register(self, spec: OperationSpec) -> None:
        if self._frozen:
            raise RuntimeError(f"Registry is frozen; cannot register '{spec.id}'")
        if "." not in spec.id:
            raise RuntimeError(f"Operation id '{spec.id}' must be '<family>.<slug>'")
        if spec.id in self._specs:
            raise RuntimeError(f"Operation '{spec.id}' registered twice")
        if spec.takes_files and not spec.accepted_types:
            raise RuntimeError(f"Operation '{spec.id}' takes files but accepts no media types")
        self._specs[spec.id] = spec

    def register_all(self, specs: Iterable[OperationSpec]) -> None:
        for spec in specs:
            self.register(spec)

    def freeze(self) -> "OperationRegistry":
        self._frozen = True
        return self

    def lookup(self, operation_id: str) -> OperationSpec:
        """Resolve an id, raising UnsupportedOperation (a client error) if unknown."""
        spec = self._specs.get(operation_id)
        if spec is None:
            raise UnsupportedOperation(f"Unsupported operation: {operation_id}")
        return spec

    def require(self, operation_ids: Iterable[str]) -> None:
        """Fail at startup if any routed operation has no registered spec."""
        missing = sorted(set(operation_ids) - set(self._specs))
        if missing:
            raise RuntimeError(f"Routes reference unregistered operations: {', '.join(missing)}")

    def by_family(self) -> Dict[str, List[str]]:
        families: Dict[str, List[str]] = {}
        for spec in self._specs.values():
            families.setdefault(spec.family, []).append(spec.id)
        return families

    def __contains__(self, operation_id: str) -> bool:
        return operation_id in self._specs

    def __iter__(self) -> Iterator[OperationSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)
