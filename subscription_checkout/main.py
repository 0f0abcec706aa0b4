import uuid

from fastapi import FastAPI, Request

from subscription_checkout.api.checkout import router as checkout_router
from subscription_checkout.api.webhooks import router as webhooks_router
from subscription_checkout.errors import register_error_handlers
from subscription_checkout.logging import configure_logging, get_logger

app = FastAPI(title="subscription_checkout API")
logger = get_logger(__name__)
configure_logging()
register_error_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request.state.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    response = await call_next(request)
    response.headers["X-Request-ID"] = request.state.request_id
    return response


def _include_api_router(router, dependencies=None):
    app.include_router(router, prefix="/api/v1/billing", dependencies=dependencies)


_include_api_router(checkout_router)
_include_api_router(webhooks_router)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.on_event("startup")
def _log_startup():
    from subscription_checkout.gateways import registry

    logger.info("app_started gateways=%s", ",".join(registry.registered_names()))
