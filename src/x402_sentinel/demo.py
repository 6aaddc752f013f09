"""Mock JSON-RPC backend for trying the sentinel locally.

Run with ``python -m x402_sentinel.demo`` and register it as a service:

    X402_SERVICES=eth=http://localhost:8545 X402_DEMO_MODE=true \\
        X402_PROVIDER_ADDRESS=0x... python -m x402_sentinel
"""

import os
from typing import Any, Dict

from fastapi import FastAPI, Request

MOCK_BLOCK_NUMBER = "0x134e82a"


def create_demo_backend() -> FastAPI:
    app = FastAPI(title="x402 demo RPC backend")

    @app.post("/")
    async def json_rpc(request: Request) -> Dict[str, Any]:
        payload = await request.json()
        return {
            "jsonrpc": "2.0",
            "id": payload.get("id", 1) if isinstance(payload, dict) else 1,
            "result": MOCK_BLOCK_NUMBER,
        }

    @app.get("/{path:path}")
    async def rest(path: str) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": 1, "result": MOCK_BLOCK_NUMBER, "path": "/" + path}

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_demo_backend(), host="127.0.0.1", port=int(os.getenv("DEMO_PORT", "8545")))
