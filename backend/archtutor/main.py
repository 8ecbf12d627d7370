from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from archtutor.core.config import get_settings
from archtutor.core.logging import setup_logger
from archtutor.core.profiling import get_monitor
from archtutor.routers import chat, models, rag


settings = get_settings()
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Computer architecture tutor starting (default model: %s)", settings.default_model_id)
    yield
    # Shutdown: sessions are in-memory only; report stage timings
    logger.info("Stage timings: %s", get_monitor().summary())


app = FastAPI(
    title="Architecture Tutor API",
    description="Scaffolded computer architecture tutoring with adaptive retrieval",
    version="1.0.0",
    lifespan=lifespan,
)
# Avoid 307 redirects for trailing slash (e.g. /chat/ -> /chat) that can cause redirect loops behind nginx
app.router.redirect_slashes = False

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:5173",
        "http://localhost",
        "http://127.0.0.1",
        "http://0.0.0.0",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(chat.router, prefix="/chat", tags=["Chat"])
app.include_router(models.router, prefix="/models", tags=["Models"])
app.include_router(rag.router, prefix="/rag", tags=["RAG"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
