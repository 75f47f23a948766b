"""
RollGroups FastAPI application entry point.
"""
import logging
import uuid
from contextvars import ContextVar

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from rollgroups.routes.group import router as group_router
from rollgroups.routes.health import router as health_router
from rollgroups.services.config_service import config_service

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


class RequestIDFilter(logging.Filter):
    """Stamp every record with the current request id."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("")
        return True


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s level=%(levelname)s logger=%(name)s msg=%(message)s request_id=%(request_id)s"
)

# Handler-level, so records from every logger carry request_id
for handler in logging.getLogger().handlers:
    handler.addFilter(RequestIDFilter())

logger = logging.getLogger("rollgroups.request")

app = FastAPI(
    title="RollGroups",
    description="Student groups derived from attendance incident rules",
    version="0.1.0"
)

cors_origins = config_service.cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials="*" not in cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
    request_id_var.set(request_id)

    logger.info(
        f"Request started method={request.method} path={request.url.path} client_ip={request.client.host if request.client else 'unknown'}"
    )

    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id

    logger.info(f"Request completed status_code={response.status_code}")
    return response


app.include_router(health_router, tags=["health"])
app.include_router(group_router, tags=["group"])
