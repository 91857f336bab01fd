from __future__ import annotations

from enum import Enum


class ShippingTerms(str, Enum):
    DAP = "dap"
    DDP = "ddp"
    DDU = "ddu"


class ServiceType(str, Enum):
    ECO = "ECO"
    STANDARD = "STANDARD"
    EXPRESS = "EXPRESS"


class DdpStatus(str, Enum):
    IDLE = "idle"
    CALCULATING = "calculating"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class TaxIdType(str, Enum):
    IOSS = "IOSS"
    HMRC = "HMRC"


class RecalcMode(str, Enum):
    INTERACTIVE = "interactive"
    SILENT = "silent"


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
