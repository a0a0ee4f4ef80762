from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from form_engine.core.errors import UnknownFieldTypeError
from form_engine.core.fields import INPUT_LESS_TYPES, FieldType, FormField
from form_engine.core.schema_document import SchemaDocument

UNTITLED_QUESTION = "Untitled question"
UNTITLED_FORM = "Untitled form"


class WidgetKind(str, Enum):
    TEXT_INPUT = "text_input"
    TEXT_AREA = "text_area"
    RADIO_GROUP = "radio_group"
    CHECKBOX_GROUP = "checkbox_group"
    DATE_PICKER = "date_picker"
    NUMBER_INPUT = "number_input"
    TIME_PICKER = "time_picker"
    DATETIME_PICKER = "datetime_picker"
    SIGNATURE_PAD = "signature_pad"
    IMAGE_UPLOADER = "image_uploader"
    STATIC_IMAGE = "static_image"


WIDGETS: dict[FieldType, WidgetKind] = {
    FieldType.SHORT_TEXT: WidgetKind.TEXT_INPUT,
    FieldType.PARAGRAPH: WidgetKind.TEXT_AREA,
    FieldType.SINGLE_CHOICE: WidgetKind.RADIO_GROUP,
    FieldType.MULTI_CHOICE: WidgetKind.CHECKBOX_GROUP,
    FieldType.DATE: WidgetKind.DATE_PICKER,
    FieldType.NUMBER: WidgetKind.NUMBER_INPUT,
    FieldType.TIME: WidgetKind.TIME_PICKER,
    FieldType.DATETIME: WidgetKind.DATETIME_PICKER,
    FieldType.SIGNATURE: WidgetKind.SIGNATURE_PAD,
    FieldType.IMAGE_UPLOAD: WidgetKind.IMAGE_UPLOADER,
    FieldType.FIXED_IMAGE: WidgetKind.STATIC_IMAGE,
}


def widget_kind_for(field_type: Any) -> WidgetKind:
    try:
        return WIDGETS[FieldType(field_type)]
    except (KeyError, ValueError):
        raise UnknownFieldTypeError(field_type)


class PreviewItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: dict[str, Any]
    widget_kind: WidgetKind
    label: str
    required: bool
    accepts_input: bool


class FormPreview(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str
    description: str
    items: list[PreviewItem]


def project_field(field: FormField) -> PreviewItem:
    ftype = field.field_type
    return PreviewItem(
        field=field.model_dump(mode="json", exclude_none=True),
        widget_kind=widget_kind_for(ftype),
        label=field.label or UNTITLED_QUESTION,
        required=field.required,
        accepts_input=ftype not in INPUT_LESS_TYPES,
    )


def project(doc: SchemaDocument) -> list[PreviewItem]:
    """Same projection for a draft in the builder and for a committed version."""
    return [project_field(f) for f in doc.fields]


def preview_form(doc: SchemaDocument) -> FormPreview:
    return FormPreview(
        title=doc.title or UNTITLED_FORM,
        description=doc.description,
        items=project(doc),
    )
