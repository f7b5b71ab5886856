from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from poscore.middleware import RequestIdMiddleware
from poscore.db import Base, engine
from poscore.errors import ConsistencyError, NotFound, PosError, RepositoryError, ValidationError
from poscore.util.log import configure_logging
import poscore.models  # noqa: F401  registers tables

from poscore.routers import closure, menu, orders, shift

configure_logging()

app = FastAPI(title="POS Core API", version="0.1.0")


@app.on_event("startup")
def init_db():
    Base.metadata.create_all(bind=engine)


def _status_for(exc: PosError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, ConsistencyError):
        return 409
    if isinstance(exc, NotFound):
        return 404
    if isinstance(exc, RepositoryError):
        return 503
    return 400


@app.exception_handler(PosError)
async def pos_error_handler(request: Request, exc: PosError):
    return JSONResponse(status_code=_status_for(exc), content=exc.to_dict())


# Middlewares
app.add_middleware(RequestIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(menu.router)
app.include_router(orders.router)
app.include_router(shift.router)
app.include_router(closure.router)


@app.get("/healthz")
def healthz():
    return {"ok": True}
