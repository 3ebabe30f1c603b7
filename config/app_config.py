"""Centralised application settings (dotenv + env overrides)."""
from __future__ import annotations
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

ROOT = Path(__file__).parents[1]
load_dotenv(ROOT / ".env", override=False)


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else None


def _escaped(name: str, default: str = "") -> str:
    # lets .env files carry "\n" / "\r\n" terminators literally
    return os.getenv(name, default).encode("ascii").decode("unicode_escape")


class settings:                            # pylint: disable=too-few-public-methods
    # serial device
    SERIAL_PORT             = os.getenv("SERIAL_PORT", "/dev/ttyACM0")
    BAUD_RATE               = int(os.getenv("BAUD_RATE", 115200))
    COMMAND_TERMINATOR      = _escaped("COMMAND_TERMINATOR")
    COMMAND_SET             = os.getenv("COMMAND_SET", "numeric").lower()
    COMMAND_TOKENS          = os.getenv("COMMAND_TOKENS", "")
    RECONNECT_INITIAL_DELAY = float(os.getenv("RECONNECT_INITIAL_DELAY", 1.0))
    RECONNECT_MAX_DELAY     = float(os.getenv("RECONNECT_MAX_DELAY", 30.0))
    RECONNECT_MAX_ATTEMPTS  = _optional_int("RECONNECT_MAX_ATTEMPTS")
    PRESENCE_CHECK_INTERVAL = float(os.getenv("PRESENCE_CHECK_INTERVAL", 5.0))
    COMMAND_QUEUE_LIMIT     = _optional_int("COMMAND_QUEUE_LIMIT")

    # ledger
    RPC_URL                 = os.getenv("RPC_URL", "https://testnet.evm.nodes.onflow.org")
    CONTRACT_ADDRESS        = os.getenv("CONTRACT_ADDRESS", "0x6900384BA33f8C635DeE2C3BD7d46A0626FfB096")
    EVENT_SIGNATURE         = os.getenv("EVENT_SIGNATURE", "ContentsPurchased(uint256,address,uint256)")
    RPC_TIMEOUT             = float(os.getenv("RPC_TIMEOUT", 10.0))
    POLL_INTERVAL           = float(os.getenv("POLL_INTERVAL", 5.0))
    TRIGGER_ACTION          = os.getenv("TRIGGER_ACTION", "open_door")

    # dispatch retry
    DISPATCH_MAX_ATTEMPTS   = int(os.getenv("DISPATCH_MAX_ATTEMPTS", 3))
    DISPATCH_RETRY_DELAY    = float(os.getenv("DISPATCH_RETRY_DELAY", 2.0))

    # http
    HTTP_HOST               = os.getenv("HTTP_HOST", "0.0.0.0")
    HTTP_PORT               = int(os.getenv("HTTP_PORT", 3000))
    PUBLIC_DIR              = os.getenv("PUBLIC_DIR", str(ROOT / "public"))

    LOG_LEVEL               = os.getenv("LOG_LEVEL", "INFO").upper()
