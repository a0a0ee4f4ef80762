from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from form_engine.api.admin import router as admin_router
from form_engine.api.audit import router as audit_router
from form_engine.api.forms import router as forms_router
from form_engine.api.health import router as health_router
from form_engine.api.root import router as root_router
from form_engine.api.task_forms import router as task_forms_router
from form_engine.core.config import settings
from form_engine.core.logging import configure_logging

configure_logging()

app = FastAPI(title="Form Engine")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(root_router)
app.include_router(health_router)
app.include_router(admin_router)
app.include_router(audit_router)
app.include_router(forms_router)
app.include_router(task_forms_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="127.0.0.1" if settings.APP_ENV == "local" else "0.0.0.0", port=8000)
