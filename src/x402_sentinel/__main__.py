import logging
import sys

import uvicorn

from x402_sentinel.app import create_app
from x402_sentinel.config import SentinelSettings


def main() -> None:
    try:
        settings = SentinelSettings.from_env()
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = create_app(settings)
    print(f"Starting x402 sentinel on {settings.host}:{settings.port}")
    print(f"Provider address: {settings.pricing.provider_address}")
    print(f"Demo mode: {settings.demo_mode}")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
