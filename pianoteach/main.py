"""FastAPI application - serves the ingestion API and practice sessions."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pianoteach.api.ingest import router as ingest_router
from pianoteach.api.websocket import router as ws_router

app = FastAPI(title="PianoTeach", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ingest_router, prefix="/api")
app.include_router(ws_router, prefix="/api")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run():
    import uvicorn
    from pianoteach.config import settings
    uvicorn.run(
        "pianoteach.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
    )
