"""
Shared utilities for the budget engine services.

Code shared by the engine service and its ledger adapters:
- engine_settings: Environment-driven configuration for the engine and ledger wiring
- observability: Telemetry, logging, and privacy utilities
"""

from .engine_settings import (
    REQUIRED_HTTP_LEDGER_ENV_VARS,
    SUPPORTED_LEDGERS,
    EngineSettings,
    EngineSettingsError,
    HttpLedgerConfig,
    load_engine_settings,
)

__all__ = [
    "SUPPORTED_LEDGERS",
    "REQUIRED_HTTP_LEDGER_ENV_VARS",
    "EngineSettingsError",
    "EngineSettings",
    "HttpLedgerConfig",
    "load_engine_settings",
]
