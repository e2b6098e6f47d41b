import logging
import os
from contextlib import asynccontextmanager

from database import get_all_config, init_db
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers import admin, mix
from strategies import STRATEGY_BANDS, all_strategies, quadrant_names_for

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)

MIXER_NAME = os.getenv("MIXER_NAME", "Playlist Mixer")


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    defaults = get_all_config()
    logger.info(
        f"{MIXER_NAME} ready: strategy={defaults['default_popularity_strategy']} "
        f"total_songs={defaults['default_total_songs']} target_duration={defaults['default_target_duration']}m "
        f"preview_limit={defaults['preview_track_limit']}"
    )
    yield
    logger.info(f"{MIXER_NAME} shutting down")


app = FastAPI(title=f"{MIXER_NAME} API", lifespan=lifespan)

_hostname = os.environ.get("SERVER_HOSTNAME", "")
_origins = [f"https://{_hostname}"] if _hostname else ["http://localhost", "http://localhost:3000"]

# The mixer is called from a browser playlist editor; admin calls carry the token header
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Admin-Token"],
)

app.include_router(mix.router)
app.include_router(admin.router)


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/strategies")
def list_strategies():
    """Popularity curves and the quadrants each one draws from along the mix."""
    result = []
    for strategy in all_strategies():
        if strategy in STRATEGY_BANDS:
            bands = [
                {"until": upper if upper != float("inf") else 1.0, "quadrants": list(names)}
                for upper, names in STRATEGY_BANDS[strategy]
            ]
        else:
            bands = [{"until": 1.0, "quadrants": list(quadrant_names_for(strategy, 0.0))}]
        result.append({"name": strategy.value, "bands": bands})
    return result
