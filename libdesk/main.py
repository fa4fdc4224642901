from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from libdesk.core.config import configure_logging
from libdesk.core.database import Base, engine
from libdesk.core.errors import CirculationError
from libdesk.api import routes

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Creating database tables (if not present)...")
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="School Library Circulation Desk", lifespan=lifespan)
app.include_router(routes.router)


@app.exception_handler(CirculationError)
async def circulation_error_handler(request: Request, exc: CirculationError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health")
def health():
    return {"status": "ok", "time": datetime.utcnow().isoformat()}
