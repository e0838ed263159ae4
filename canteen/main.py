import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from canteen.version import VERSION
from canteen.core.config import settings
from canteen.core.errors import CanteenError
from canteen.api import routes_auth, routes_dashboard, routes_orders, routes_push

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("canteen")

# Create instrumentator first
instrumentator = Instrumentator()

app = FastAPI(title="Canteen Service", version=VERSION)

# Instrument the app BEFORE adding routes or middleware
instrumentator.instrument(app).expose(
    app,
    include_in_schema=False,
    endpoint="/metrics",
    should_gzip=True,
)

@app.exception_handler(CanteenError)
async def canteen_error_handler(request: Request, exc: CanteenError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.response_message})

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={
        "detail": "Invalid request",
        "errors": [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
    })

@app.get("/health")
def health():
    return {"status": "ok"}

@app.get("/v1/_info")
def info():
    return {"service": "canteen", "version": VERSION}

@app.on_event("startup")
async def startup_event():
    for route in app.routes:
        if hasattr(route, "methods") and hasattr(route, "path"):
            log.debug("%s %s", sorted(route.methods), route.path)

app.include_router(routes_auth.router)
app.include_router(routes_orders.router)
app.include_router(routes_push.router)
app.include_router(routes_dashboard.router)
