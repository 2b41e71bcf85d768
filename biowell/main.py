from fastapi import FastAPI

from biowell.api.auth import router as auth_router
from biowell.api.billing import router as billing_router
from biowell.api.cart import router as cart_router
from biowell.api.chat_history import router as chat_history_router
from biowell.api.coach import router as coach_router
from biowell.api.fitness import router as fitness_router
from biowell.api.metrics import router as metrics_router
from biowell.api.nutrition import router as nutrition_router
from biowell.api.profile import router as profile_router
from biowell.api.supplements import router as supplements_router
from biowell.api.voice import router as voice_router
from biowell.db.session import create_tables

app = FastAPI(title="Biowell API")


@app.on_event("startup")
def on_startup() -> None:
    create_tables()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/api")
def api_root() -> dict[str, str]:
    return {"service": "Biowell API", "status": "ok"}


app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(fitness_router)
app.include_router(metrics_router)
app.include_router(nutrition_router)
app.include_router(supplements_router)
app.include_router(cart_router)
app.include_router(chat_history_router)
app.include_router(coach_router)
app.include_router(voice_router)
app.include_router(billing_router)
