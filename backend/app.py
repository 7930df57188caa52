import logging
import os
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend.routes import router
from branching_tales.analytics import AnalyticsSink, EventTracker, FanOutSink, HttpAnalyticsSink
from branching_tales.config import load_config
from branching_tales.engine import StoryEngine
from branching_tales.storage import Storage

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


def create_app(data_dir: Path | None = None) -> FastAPI:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage = Storage(resolved)
    config = load_config(storage.config_path)

    tracker = EventTracker(max_events=config.analytics_max_events)
    sink: AnalyticsSink = tracker
    collector_url = os.getenv("ANALYTICS_URL", "")
    if collector_url:
        sink = FanOutSink(
            tracker, HttpAnalyticsSink(collector_url, api_key=os.getenv("ANALYTICS_API_KEY", ""))
        )

    app = FastAPI(title="Branching Tales")
    app.state.storage = storage
    app.state.tracker = tracker
    app.state.engine = StoryEngine(
        graph=storage,
        progress=storage,
        accounts=storage,
        analytics=sink,
        config=config,
    )
    app.include_router(router, prefix="/api")
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
