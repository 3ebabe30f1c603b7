import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from recyclebridge.core.exceptions import ConfigurationError


class DeviceAction(Enum):
    """Things the sorting device can be told to do."""
    PLASTIC    = "plastic"
    METAL      = "metal"
    OTHER      = "other"
    OPEN_DOOR  = "open_door"
    CLOSE_DOOR = "close_door"


# Firmware variants seen in the field
COMMAND_VARIANTS: Dict[str, Dict[DeviceAction, str]] = {
    "numeric": {
        DeviceAction.PLASTIC:    "1",
        DeviceAction.METAL:      "2",
        DeviceAction.OTHER:      "3",
        DeviceAction.OPEN_DOOR:  "4",
        DeviceAction.CLOSE_DOOR: "5",
    },
    "named": {
        DeviceAction.PLASTIC:    "SORT PLASTIC",
        DeviceAction.METAL:      "SORT METAL",
        DeviceAction.OTHER:      "SORT OTHER",
        DeviceAction.OPEN_DOOR:  "OPEN",
        DeviceAction.CLOSE_DOOR: "CLOSE",
    },
}


@dataclass(frozen=True)
class CommandSet:
    """Maps each DeviceAction to the ASCII token the firmware expects."""
    tokens: Mapping[DeviceAction, str]
    variant: str = "custom"

    def token_for(self, action) -> str:
        return self.tokens[DeviceAction(action)]

    @classmethod
    def variant_named(cls, variant: str, overrides: Optional[Mapping[str, str]] = None) -> "CommandSet":
        if variant not in COMMAND_VARIANTS:
            raise ConfigurationError(
                f"Unknown command set '{variant}', expected one of {sorted(COMMAND_VARIANTS)}")
        tokens = dict(COMMAND_VARIANTS[variant])
        for name, token in (overrides or {}).items():
            try:
                action = DeviceAction(name)
            except ValueError:
                raise ConfigurationError(f"Unknown device action in command tokens: {name}") from None
            if not isinstance(token, str) or not token or not token.isascii():
                raise ConfigurationError(f"Command token for {name} must be a non-empty ASCII string")
            tokens[action] = token
        logging.getLogger(cls.__name__).debug(f"Command set '{variant}': {tokens}")
        return cls(tokens=tokens, variant=variant)

    @classmethod
    def from_settings(cls, settings) -> "CommandSet":
        overrides = {}
        if settings.COMMAND_TOKENS.strip():
            try:
                overrides = json.loads(settings.COMMAND_TOKENS)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"COMMAND_TOKENS is not valid JSON: {e}") from e
            if not isinstance(overrides, dict):
                raise ConfigurationError("COMMAND_TOKENS must be a JSON object")
        return cls.variant_named(settings.COMMAND_SET, overrides)
