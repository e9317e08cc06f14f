import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from docvault.infrastructure.db import connection as db
from docvault.infrastructure.db import ingestion_repository, refresh_token_repository, user_repository
from docvault.interfaces.api.routers import auth, ingestion


@asynccontextmanager
async def lifespan(_: FastAPI):
    db.init_pool()
    # users first: refresh_tokens references it.
    user_repository.ensure_table()
    refresh_token_repository.ensure_table()
    ingestion_repository.ensure_table()
    try:
        yield
    finally:
        service = ingestion._ingestion_service
        if service is not None:
            await service.runner.shutdown()
        db.close_pool()


app = FastAPI(title="DocVault API", version="0.1.0", lifespan=lifespan)

frontend_origin = os.environ.get("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


app.include_router(auth.router)
app.include_router(ingestion.router)
