"""FastAPI application entry point."""

from fastapi import FastAPI
from sqlalchemy import text

from issuelink.core.config import settings
from issuelink.routers import internal


app = FastAPI(
    title="issuelink",
    description="Account, case and tracker-ticket reconciliation",
    version=settings.VERSION,
)

app.include_router(internal.router)


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}


@app.get("/health/db")
def health_db() -> dict:
    from issuelink.db.session import engine

    with engine.connect() as connection:
        connection.execute(text("SELECT 1"))
    return {"status": "ok"}
