from fastapi import APIRouter

from form_engine.core.fields import FieldType

router = APIRouter()


@router.get("/")
def root():
    return {
        "name": "Form Engine",
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "forms": "/forms",
        "task_forms": "/task-forms",
        "field_types": [t.value for t in FieldType],
    }
