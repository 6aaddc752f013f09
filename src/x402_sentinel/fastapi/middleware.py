"""
FastAPI middleware for x402 payment gating.

Usage:
    from fastapi import FastAPI
    from x402_sentinel.fastapi.middleware import require_payment

    app = FastAPI()
    app.middleware("http")(require_payment(gate))
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from fastapi import Request
from fastapi.responses import JSONResponse, Response

from x402_sentinel.gate import GateResult, PaymentGate
from x402_sentinel.path import PathPattern, path_is_match
from x402_sentinel.routing import extract_service

logger = logging.getLogger(__name__)

T = TypeVar("T")

# nginx's "client closed request"
CLIENT_CLOSED_REQUEST = 499

DEFAULT_GATED_PATHS: PathPattern = "/x402/*"
DEFAULT_EXEMPT_PATHS: PathPattern = ["/x402/requirements", "/x402/requirements/*"]


class ClientDisconnected(Exception):
    """The caller went away before the gate reached a decision."""


async def run_unless_disconnected(
    request: Request, awaitable: Awaitable[T], poll_interval: float = 0.1
) -> T:
    """Await ``awaitable``, cancelling it if the client disconnects first."""
    task = asyncio.ensure_future(awaitable)

    async def wait_for_disconnect():
        while not await request.is_disconnected():
            await asyncio.sleep(poll_interval)

    watcher = asyncio.ensure_future(wait_for_disconnect())
    try:
        done, _ = await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        watcher.cancel()
        # Also reached when the caller itself is cancelled
        if not task.done():
            task.cancel()

    if task not in done:
        raise ClientDisconnected()
    return task.result()


def rejection_response(result: GateResult) -> JSONResponse:
    return JSONResponse(
        content=result.body,
        status_code=result.status_code,
        headers=result.headers,
    )


def require_payment(
    gate: PaymentGate,
    path: PathPattern = DEFAULT_GATED_PATHS,
    exempt: PathPattern = DEFAULT_EXEMPT_PATHS,
    watch_disconnect: bool = True,
):
    """Generate a FastAPI middleware that gates paid RPC routes.

    Args:
        gate (PaymentGate): Decides whether each request is admitted.
        path (str | list[str], optional): Paths to gate. Defaults to "/x402/*".
        exempt (str | list[str], optional): Paths under ``path`` that stay free,
            by default the requirements-query endpoint.
        watch_disconnect (bool, optional): Abandon verification when the caller
            disconnects. Defaults to True.

    Returns:
        Callable: FastAPI middleware function
    """

    async def middleware(request: Request, call_next: Callable):
        request_path = request.url.path
        if not path_is_match(path, request_path) or path_is_match(exempt, request_path):
            return await call_next(request)

        service = extract_service(request_path)

        if watch_disconnect:
            # Buffer the body so the disconnect probe cannot consume it
            await request.body()
            try:
                result = await run_unless_disconnected(
                    request, gate.process(service, str(request.url), request.headers)
                )
            except ClientDisconnected:
                logger.info(f"Client disconnected during payment verification for {service}")
                return Response(status_code=CLIENT_CLOSED_REQUEST)
        else:
            result = await gate.process(service, str(request.url), request.headers)

        if not result.admitted:
            return rejection_response(result)

        request.state.settlement_id = result.settlement_id
        request.state.payment_demo = result.demo

        response = await call_next(request)
        for name, value in result.headers.items():
            response.headers[name] = value
        return response

    return middleware
