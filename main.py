from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi

from core.config import settings
from core.db import init_db
from core.logging import configure_logging
from routes.auth import router as auth_router
from routes.orders import router as orders_router
from routes.payments import router as payments_router
from routes.webhooks import router as webhooks_router

configure_logging(settings.LOG_LEVEL)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi

# Ensure tables exist (for dev/test; in prod use migrations)
init_db()

app.include_router(auth_router)
app.include_router(webhooks_router)
app.include_router(payments_router)
app.include_router(orders_router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
