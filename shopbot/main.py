from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shopbot.config import settings
from shopbot.database import init_db
from shopbot.logging_config import get_logger, setup_logging
from shopbot.routers import admin, message, whatsapp

setup_logging(settings.log_level)
logger = get_logger("main")

app = FastAPI(
    title="Shopbot API",
    description="Multi-company WhatsApp sales bot",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp.router)
app.include_router(message.router)
app.include_router(admin.router)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    logger.info("Database ready", extra={"context": {"default_company_id": settings.default_company_id}})


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health():
    return {"status": "ok"}
