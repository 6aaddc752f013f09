from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response

from x402_sentinel.errors import BadRequestError, RoutingError
from x402_sentinel.gate import PaymentGate, payment_required_headers
from x402_sentinel.routing import Dispatcher

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def create_router(gate: PaymentGate, dispatcher: Dispatcher) -> APIRouter:
    """Routes for the requirements query and the paid RPC proxy.

    Payment is enforced by the require_payment middleware, not here.
    """
    router = APIRouter()

    @router.get("/x402/requirements")
    @router.get("/x402/requirements/")
    async def missing_service() -> Response:
        raise BadRequestError()

    @router.get("/x402/requirements/{service}")
    async def payment_requirements(service: str, request: Request) -> Response:
        """Describe how to pay for a service without paying."""
        if service not in dispatcher.registry:
            raise RoutingError(service)

        payment_required = gate.payment_required(service, str(request.url))
        return JSONResponse(
            content=payment_required.model_dump(by_alias=True),
            headers=payment_required_headers(payment_required),
        )

    @router.api_route("/x402/{service}", methods=PROXY_METHODS)
    @router.api_route("/x402/{service}/{path:path}", methods=PROXY_METHODS)
    async def proxy(service: str, request: Request, path: str = "") -> Response:
        target = dispatcher.resolve(service)
        return await dispatcher.forward(request, target)

    return router
