"""
Pydantic schemas for classified entities and the /classify wire format.

``ClassifiedEntity`` is a tagged union discriminated by ``type``.  Both the
LLM path and the deterministic fallback produce these models, so the
materializer never has to care where an entity came from.  Field names are
snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from classification.normalize import strip_nul

EntityType = Literal["task", "vendor", "contact", "expense"]
Number = Union[float, str]


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class _EntityBase(_WireModel):
    confidence: Optional[float] = None

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return None
        return min(1.0, max(0.0, v))


class TaskEntity(_EntityBase):
    type: Literal["task"] = "task"
    title: Optional[str] = None
    description: Optional[str] = None
    board_name: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    labels: List[str] = Field(default_factory=list)
    summary: Optional[str] = None
    due_date: Optional[str] = None

    @field_validator("labels", mode="before")
    @classmethod
    def _null_labels(cls, v: Any) -> Any:
        return [] if v is None else v


class _PartyEntity(_EntityBase):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    title: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    summary: Optional[str] = None


class VendorEntity(_PartyEntity):
    type: Literal["vendor"] = "vendor"


class ContactEntity(_PartyEntity):
    type: Literal["contact"] = "contact"


class LineItem(_WireModel):
    description: str = ""
    quantity: Optional[float] = None
    rate: Optional[float] = None
    total: Optional[float] = None

    @field_validator("description", mode="before")
    @classmethod
    def _null_description(cls, v: Any) -> Any:
        return "" if v is None else v


class ExpenseEntity(_EntityBase):
    type: Literal["expense"] = "expense"
    amount: Optional[Number] = None
    currency: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    vendor_name: Optional[str] = None
    subtotal: Optional[Number] = None
    tax: Optional[Number] = None
    total: Optional[Number] = None
    line_items: List[LineItem] = Field(default_factory=list)

    @field_validator("line_items", mode="before")
    @classmethod
    def _null_line_items(cls, v: Any) -> Any:
        return [] if v is None else v


ClassifiedEntity = Annotated[
    Union[TaskEntity, VendorEntity, ContactEntity, ExpenseEntity],
    Field(discriminator="type"),
]
PartyEntity = Union[VendorEntity, ContactEntity]

entity_adapter: TypeAdapter[ClassifiedEntity] = TypeAdapter(ClassifiedEntity)


def sanitize_entity(entity: ClassifiedEntity) -> ClassifiedEntity:
    """Return a copy of ``entity`` with NUL stripped from every string field."""
    return type(entity).model_validate(strip_nul(entity.model_dump()))


def dump_entity(entity: ClassifiedEntity) -> Dict[str, Any]:
    return entity.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Request / response
# ---------------------------------------------------------------------------
class AttachmentMeta(_WireModel):
    id: str
    filename: str = ""
    original_name: str = ""
    mime_type: str = ""
    size: int = 0
    url: str = ""
    stored_at: Optional[str] = None


class ClassifyIn(_WireModel):
    """Inbound body for ``POST /classify``.

    Either ``content`` or a resolvable ``attachment`` must yield text.
    """

    content: Optional[str] = None
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    attachment: Optional[AttachmentMeta] = None


class _RecordOut(_WireModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ContactOut(_RecordOut):
    id: int
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    job_title: Optional[str] = None
    notes: Optional[str] = None
    is_vendor: bool = False


class VendorOut(_RecordOut):
    id: int
    contact_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    notes: Optional[str] = None


class LineItemOut(_RecordOut):
    description: str
    quantity: Optional[float] = None
    rate: Optional[float] = None
    total: Optional[float] = None


class ExpenseOut(_RecordOut):
    id: int
    amount: float
    currency: str
    category: str
    description: Optional[str] = None
    receipt_url: Optional[str] = None
    ai_vendor_name: Optional[str] = None
    ai_confidence: Optional[float] = None
    ai_extracted_data: Optional[Dict[str, Any]] = None
    line_items: List[LineItemOut] = Field(default_factory=list)


class TaskOut(_RecordOut):
    id: int
    board_id: int
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    position: int
    due_date: Optional[datetime] = None
    ai_summary: Optional[str] = None
    ai_labels: List[str] = Field(default_factory=list)
    ai_confidence: Optional[float] = None


class ClassifyOut(_WireModel):
    type: EntityType
    task: Optional[TaskOut] = None
    contact: Optional[ContactOut] = None
    vendor: Optional[VendorOut] = None
    expense: Optional[ExpenseOut] = None
    tasks: List[TaskOut] = Field(default_factory=list)
    contacts: List[ContactOut] = Field(default_factory=list)
    vendors: List[VendorOut] = Field(default_factory=list)
    expenses: List[ExpenseOut] = Field(default_factory=list)
    attachment: Optional[AttachmentMeta] = None
    ai_entities: List[ClassifiedEntity] = Field(default_factory=list)


__all__ = [
    "AttachmentMeta",
    "ClassifiedEntity",
    "ClassifyIn",
    "ClassifyOut",
    "ContactEntity",
    "ExpenseEntity",
    "LineItem",
    "PartyEntity",
    "TaskEntity",
    "VendorEntity",
    "dump_entity",
    "entity_adapter",
    "sanitize_entity",
]
