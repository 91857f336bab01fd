from shipment_batch.models.enums import DdpStatus, EngineState, RecalcMode, ServiceType, ShippingTerms, TaxIdType

__all__ = [
    "DdpStatus",
    "EngineState",
    "RecalcMode",
    "ServiceType",
    "ShippingTerms",
    "TaxIdType",
]
