from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator
from pydantic_core import PydanticCustomError

from form_engine.core.errors import FieldPatchError, InvariantViolation, SchemaDecodeError
from form_engine.core.fields import (
    CHOICE_TYPES,
    FORM_FIELD_ADAPTER,
    FieldType,
    FormField,
    dump_field,
    reshape_field,
)

# type names written by the previous builder
LEGACY_TYPE_NAMES = {
    "text": FieldType.SHORT_TEXT.value,
    "textarea": FieldType.PARAGRAPH.value,
    "select": FieldType.SINGLE_CHOICE.value,
    "checkbox": FieldType.MULTI_CHOICE.value,
    "image": FieldType.IMAGE_UPLOAD.value,
    "fixed-image": FieldType.FIXED_IMAGE.value,
}

# pydantic error type for a document holding the same field id twice
DUPLICATE_FIELD_IDS = "duplicate_field_ids"

LEGACY_PROPERTY_NAMES = {
    "allowDecimals": "allow_decimals",
    "imageId": "image_id",
    "imageUrl": "image_url",
}


class SchemaDocument(BaseModel):
    """
    One version's content: title, description and the ordered field list.
    Instances are immutable; every operation below returns a new document.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    title: str = ""
    description: str = ""
    fields: tuple[FormField, ...] = ()

    @model_validator(mode="after")
    def _unique_field_ids(self) -> "SchemaDocument":
        dupes = _duplicate_ids(f.id for f in self.fields)
        if dupes:
            raise PydanticCustomError(
                DUPLICATE_FIELD_IDS,
                "duplicate field ids: {dupes}",
                {"dupes": dupes},
            )
        return self


def _duplicate_ids(ids) -> list[int]:
    seen: set[int] = set()
    dupes: set[int] = set()
    for i in ids:
        if i in seen:
            dupes.add(i)
        seen.add(i)
    return sorted(dupes)


def pydantic_errors(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(p) for p in e["loc"]], "msg": e["msg"], "type": e["type"]}
        for e in exc.errors()
    ]


# ---------- queries ----------

def field_ids(doc: SchemaDocument) -> list[int]:
    return [f.id for f in doc.fields]


def find_field_index(doc: SchemaDocument, field_id: int) -> int | None:
    for idx, f in enumerate(doc.fields):
        if f.id == field_id:
            return idx
    return None


def get_field(doc: SchemaDocument, field_id: int) -> FormField | None:
    idx = find_field_index(doc, field_id)
    return doc.fields[idx] if idx is not None else None


# ---------- pure edits ----------

def set_title(doc: SchemaDocument, value: str) -> SchemaDocument:
    return doc.model_copy(update={"title": value})


def set_description(doc: SchemaDocument, value: str) -> SchemaDocument:
    return doc.model_copy(update={"description": value})


def add_field(doc: SchemaDocument, field: FormField, after_index: int | None = None) -> SchemaDocument:
    if find_field_index(doc, field.id) is not None:
        raise InvariantViolation(f"Field id {field.id} already present in document")

    fields = list(doc.fields)
    if after_index is None:
        fields.append(field)
    else:
        fields.insert(min(max(after_index + 1, 0), len(fields)), field)
    return doc.model_copy(update={"fields": tuple(fields)})


def update_field(doc: SchemaDocument, field_id: int, patch: Mapping[str, Any]) -> SchemaDocument:
    """
    Merge `patch` into the field with `field_id`. Unknown ids leave the
    document as is. A `type` entry re-shapes the field to the new variant
    before the remaining keys are applied.
    """
    idx = find_field_index(doc, field_id)
    if idx is None:
        return doc

    changes = dict(patch)
    if "id" in changes:
        if changes.pop("id") != field_id:
            raise FieldPatchError(field_id, "field id cannot change")

    current = doc.fields[idx]
    if "type" in changes:
        raw_type = changes.pop("type")
        try:
            new_type = FieldType(raw_type)
        except ValueError as exc:
            raise FieldPatchError(field_id, f"unknown field type {raw_type!r}") from exc
        current = reshape_field(current, new_type)

    unknown = sorted(set(changes) - set(type(current).model_fields))
    if unknown:
        raise FieldPatchError(field_id, f"attributes not valid for {current.type}: {unknown}")

    data = current.model_dump()
    data.update(changes)
    try:
        updated = FORM_FIELD_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise FieldPatchError(field_id, "invalid value", errors=pydantic_errors(exc)) from exc

    fields = list(doc.fields)
    fields[idx] = updated
    return doc.model_copy(update={"fields": tuple(fields)})


def remove_field(doc: SchemaDocument, field_id: int) -> SchemaDocument:
    idx = find_field_index(doc, field_id)
    if idx is None:
        return doc
    fields = list(doc.fields)
    del fields[idx]
    return doc.model_copy(update={"fields": tuple(fields)})


# ---------- boundary codec ----------

def _normalize_legacy_field(raw: Any) -> Any:
    if not isinstance(raw, Mapping):
        return raw

    out = dict(raw)
    ftype = out.get("type")
    if isinstance(ftype, str) and ftype in LEGACY_TYPE_NAMES:
        out["type"] = LEGACY_TYPE_NAMES[ftype]
        # the old builder rendered a choice field without options as one blank option
        if FieldType(out["type"]) in CHOICE_TYPES and not out.get("options"):
            out["options"] = [""]

    props = out.pop("properties", None)
    if isinstance(props, Mapping):
        for legacy_key, key in LEGACY_PROPERTY_NAMES.items():
            if legacy_key in props and key not in out:
                out[key] = props[legacy_key]

    if out.get("label") is None:
        out["label"] = ""
    if out.get("required") is None:
        out["required"] = False
    return out


def _normalize(raw: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(raw)
    for key in ("title", "description"):
        if out.get(key) is None:
            out[key] = ""

    fields = out.get("fields")
    if fields is None:
        fields = []
    elif isinstance(fields, str):
        try:
            fields = json.loads(fields)
        except json.JSONDecodeError as exc:
            raise SchemaDecodeError(f"fields is not valid JSON: {exc.msg}") from exc
    if isinstance(fields, list):
        fields = [_normalize_legacy_field(f) for f in fields]
    out["fields"] = fields
    return out


def decode_schema(raw: Any) -> SchemaDocument:
    """
    Validate stored or submitted `fields` JSON into a SchemaDocument.
    Accepts a JSON string, bytes or a mapping. Anything that does not fit
    the tagged field variants raises SchemaDecodeError.
    """
    if isinstance(raw, SchemaDocument):
        return raw

    if isinstance(raw, (str, bytes, bytearray)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise SchemaDecodeError(f"Schema is not valid JSON: {exc.msg}") from exc

    if not isinstance(raw, Mapping):
        raise SchemaDecodeError(f"Schema must be an object, got {type(raw).__name__}")

    try:
        return SchemaDocument.model_validate(_normalize(raw))
    except ValidationError as exc:
        raise SchemaDecodeError("Invalid form schema", errors=pydantic_errors(exc)) from exc


def encode_schema(doc: SchemaDocument) -> dict[str, Any]:
    return {
        "title": doc.title,
        "description": doc.description,
        "fields": [dump_field(f) for f in doc.fields],
    }
