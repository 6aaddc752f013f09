from typing_extensions import (
    TypedDict,
)  # use `typing_extensions.TypedDict` instead of `typing.TypedDict` on Python < 3.12

ETHEREUM_MAINNET = "eip155:1"
BASE_MAINNET = "eip155:8453"
ARKEO_MAINNET = "arkeo:arkeo-main-1"


class KnownAsset(TypedDict):
    name: str
    address: str
    chain: str


KNOWN_ASSETS: dict[str, KnownAsset] = {
    ETHEREUM_MAINNET: {
        "name": "USDC",
        "address": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
        "chain": "Ethereum",
    },
    BASE_MAINNET: {
        "name": "USDC",
        "address": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "chain": "Base",
    },
    ARKEO_MAINNET: {
        "name": "ARKEO",
        "address": "uarkeo",
        "chain": "Arkeo",
    },
}


def get_asset(network: str) -> KnownAsset:
    """Get the payment asset accepted on a network."""
    if network not in KNOWN_ASSETS:
        raise ValueError(f"Unsupported network: {network}")
    return KNOWN_ASSETS[network]
