from __future__ import annotations

from typing import TypeVar

from form_engine.core.errors import FieldNotFoundError
from form_engine.core.schema_document import SchemaDocument, find_field_index

T = TypeVar("T")


def array_move(items: list[T] | tuple[T, ...], from_index: int, to_index: int) -> list[T]:
    """
    Remove the item at `from_index` and insert it at `to_index` of the
    shortened list. Moving down lands the item right after the element that
    used to sit at `to_index`; moving up lands it exactly there.
    """
    out = list(items)
    item = out.pop(from_index)
    out.insert(to_index, item)
    return out


def move_field(doc: SchemaDocument, field_id: int, over_field_id: int) -> SchemaDocument:
    """
    Drop the field `field_id` onto the position of `over_field_id`.

    Only the moved field changes place; every other field keeps its relative
    order. Same ids give back `doc` itself.
    """
    if field_id == over_field_id:
        return doc

    src = find_field_index(doc, field_id)
    if src is None:
        raise FieldNotFoundError(field_id)
    dst = find_field_index(doc, over_field_id)
    if dst is None:
        raise FieldNotFoundError(over_field_id)

    return doc.model_copy(update={"fields": tuple(array_move(doc.fields, src, dst))})
