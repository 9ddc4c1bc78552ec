from storefront.settlement.engine import (
    GatewaySettlement,
    SettlementEngine,
    WalletCapture,
    build_settlement_engine,
)

__all__ = [
    "GatewaySettlement",
    "SettlementEngine",
    "WalletCapture",
    "build_settlement_engine",
]
