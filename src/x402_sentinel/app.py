import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from x402_sentinel.common import x402_VERSION
from x402_sentinel.config import SentinelSettings
from x402_sentinel.errors import SentinelError
from x402_sentinel.facilitator import FacilitatorClient
from x402_sentinel.fastapi import create_router, require_payment
from x402_sentinel.gate import FacilitatorFactory, PaymentGate, default_facilitator_factory
from x402_sentinel.requirements import RequirementBuilder
from x402_sentinel.routing import Dispatcher, ServiceRegistry

logger = logging.getLogger(__name__)


def setup_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SentinelError)
    async def sentinel_error_handler(request: Request, exc: SentinelError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(exclude_none=True),
        )


def create_app(
    settings: SentinelSettings,
    facilitator: Optional[FacilitatorClient] = None,
    facilitator_factory: Optional[FacilitatorFactory] = None,
    backend_client: Optional[httpx.AsyncClient] = None,
    watch_disconnect: bool = True,
) -> FastAPI:
    """Wire the gate, dispatcher and routes into a FastAPI app.

    Args:
        settings: Process configuration
        facilitator: Prebuilt facilitator client, skips lazy construction
        facilitator_factory: Builds the facilitator on first paid request
        backend_client: HTTP client used to reach backends
        watch_disconnect: Abandon verification when callers disconnect
    """
    registry = ServiceRegistry(settings.services)
    dispatcher = Dispatcher(
        registry, timeout=settings.backend_timeout, http_client=backend_client
    )
    gate = PaymentGate(
        RequirementBuilder(settings.pricing),
        registry,
        facilitator=facilitator,
        facilitator_factory=facilitator_factory
        or default_facilitator_factory(settings.facilitator_timeout),
        retry=settings.retry,
        demo_mode=settings.demo_mode,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"x402 sentinel serving {len(registry.names())} service(s): {', '.join(registry.names())}")
        yield
        await gate.aclose()
        await dispatcher.aclose()

    app = FastAPI(title="x402 Sentinel", lifespan=lifespan)
    app.state.gate = gate
    app.state.dispatcher = dispatcher

    setup_exception_handlers(app)
    app.middleware("http")(require_payment(gate, watch_disconnect=watch_disconnect))
    app.include_router(create_router(gate, dispatcher))

    @app.get("/health")
    async def health_check() -> Dict[str, Any]:
        return {
            "status": "healthy",
            "services": registry.names(),
            "demoMode": gate.demo_mode,
        }

    @app.get("/")
    async def index() -> Dict[str, Any]:
        return {
            "name": "x402 Sentinel",
            "x402Version": x402_VERSION,
            "services": registry.names(),
            "endpoints": {
                "requirements": "GET /x402/requirements/{service}",
                "rpc": "/x402/{service}/{path} with an X-PAYMENT header",
            },
        }

    return app
