from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class FieldType(str, Enum):
    SHORT_TEXT = "short_text"
    PARAGRAPH = "paragraph"
    SINGLE_CHOICE = "single_choice"
    MULTI_CHOICE = "multi_choice"
    DATE = "date"
    NUMBER = "number"
    TIME = "time"
    DATETIME = "datetime"
    SIGNATURE = "signature"
    IMAGE_UPLOAD = "image_upload"
    FIXED_IMAGE = "fixed_image"


TEXT_LIKE_TYPES = frozenset({FieldType.SHORT_TEXT, FieldType.PARAGRAPH})
CHOICE_TYPES = frozenset({FieldType.SINGLE_CHOICE, FieldType.MULTI_CHOICE})
# display-only; nothing to fill in
INPUT_LESS_TYPES = frozenset({FieldType.FIXED_IMAGE})


class _FieldBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: int = Field(ge=1)
    label: str = ""
    required: bool = False

    @property
    def field_type(self) -> FieldType:
        return FieldType(self.type)  # type: ignore[attr-defined]


class TextField(_FieldBase):
    type: Literal["short_text", "paragraph"]
    placeholder: str | None = None


class ChoiceField(_FieldBase):
    type: Literal["single_choice", "multi_choice"]
    options: tuple[str, ...] = Field(min_length=1)


class NumberField(_FieldBase):
    type: Literal["number"]
    allow_decimals: bool = False


class FixedImageField(_FieldBase):
    type: Literal["fixed_image"]
    image_id: str | None = None
    image_url: str | None = None


class PlainField(_FieldBase):
    type: Literal["date", "time", "datetime", "signature", "image_upload"]


FormField = Annotated[
    Union[TextField, ChoiceField, NumberField, FixedImageField, PlainField],
    Field(discriminator="type"),
]

FORM_FIELD_ADAPTER: TypeAdapter[Any] = TypeAdapter(FormField)


def create_field(field_type: FieldType, field_id: int) -> FormField:
    """
    New blank field of `field_type`: empty label, not required, and a single
    empty option for choice types so the builder has a row to type into.
    """
    field_type = FieldType(field_type)
    data: dict[str, Any] = {"id": field_id, "type": field_type.value, "label": "", "required": False}
    if field_type in CHOICE_TYPES:
        data["options"] = [""]
    return FORM_FIELD_ADAPTER.validate_python(data)


def reshape_field(field: FormField, new_type: FieldType) -> FormField:
    """
    Convert `field` to another variant. Identity, label and required flag
    carry over; type-specific attributes carry over only between types of
    the same family, otherwise the new type's defaults apply.
    """
    new_type = FieldType(new_type)
    old_type = field.field_type
    if new_type == old_type:
        return field

    data: dict[str, Any] = {
        "id": field.id,
        "type": new_type.value,
        "label": field.label,
        "required": field.required,
    }
    if new_type in CHOICE_TYPES:
        data["options"] = list(field.options) if old_type in CHOICE_TYPES else [""]
    elif new_type in TEXT_LIKE_TYPES and old_type in TEXT_LIKE_TYPES:
        data["placeholder"] = field.placeholder
    return FORM_FIELD_ADAPTER.validate_python(data)


def dump_field(field: FormField) -> dict[str, Any]:
    return field.model_dump(mode="json", exclude_none=True)
