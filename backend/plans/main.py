import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from plans.core.config import settings
from plans.routers import auth, hangouts, internal, join, me

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Plans API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(auth.router)
app.include_router(me.router)
app.include_router(hangouts.router)
app.include_router(join.router)
app.include_router(internal.router)


@app.get("/health")
def health():
    return {"status": "ok"}
