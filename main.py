#!/usr/bin/env python3
import asyncio, sys
import uvicorn
from config.logging_config import configure
from config.app_config import settings
from recyclebridge.api import create_app
from recyclebridge.core import RetryConfig
from recyclebridge.models import DeviceConfig, LedgerConfig, PollerConfig
from recyclebridge.orchestration import CommandSet, DeviceAction, RecyclingStationOrchestrator
from recyclebridge.services import DeviceConnectionManager, EvmLedgerService
from recyclebridge.triggers import PurchaseTriggerPoller

async def async_main():
    configure()
    commands = CommandSet.from_settings(settings)
    retry    = RetryConfig.from_settings(settings)
    ledger_cfg = LedgerConfig.from_settings(settings)

    device = DeviceConnectionManager(DeviceConfig.from_settings(settings))
    ledger = EvmLedgerService(ledger_cfg)
    poller = PurchaseTriggerPoller(ledger, device, PollerConfig(
        command=commands.token_for(DeviceAction(settings.TRIGGER_ACTION)),
        interval=settings.POLL_INTERVAL,
        event_signature=ledger_cfg.event_signature,
        retry=retry,
    ))
    orchestrator = RecyclingStationOrchestrator(device, poller, ledger)

    app = create_app(device, commands, retry, settings.PUBLIC_DIR, status=orchestrator.get_status)
    server = uvicorn.Server(uvicorn.Config(app, host=settings.HTTP_HOST, port=settings.HTTP_PORT,
                                           log_config=None))
    try:
        await orchestrator.startup()
        # returns on SIGINT/SIGTERM
        await server.serve()
    finally:
        await orchestrator.shutdown()

if __name__ == "__main__":
    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        sys.exit("🌙  graceful shutdown")
