import enum

class LocationKind(str, enum.Enum):
    production = "PRODUCTION"
    hub = "HUB"
    store = "STORE"

class ReasonKind(str, enum.Enum):
    production = "PRODUCTION"
    transfer_out = "TRANSFER_OUT"
    receive_in = "RECEIVE_IN"
    manual_adjustment = "MANUAL_ADJUSTMENT"
    legacy_migration = "LEGACY_MIGRATION"

class POStatus(str, enum.Enum):
    created = "CREATED"
    in_transit = "IN_TRANSIT"
    fulfilled = "FULFILLED"
    deactivated = "DEACTIVATED"

class TOStatus(str, enum.Enum):
    created = "CREATED"
    fulfilled = "FULFILLED"

class ReferenceType(str, enum.Enum):
    batch = "BATCH"
    transfer_order = "TRANSFER_ORDER"
    receive_order = "RECEIVE_ORDER"
    legacy_stock = "LEGACY_STOCK"

LEGACY_BATCH_LABEL = "LEGACY"
