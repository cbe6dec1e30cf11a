import enum


class Role(str, enum.Enum):
    admin = "Admin"
    manager = "Manager"
    staff = "Staff"


class InventoryCategory(str, enum.Enum):
    raw_material = "Raw Material"
    finished_goods = "Finished Goods"
    components = "Components"
    supplies = "Supplies"
    food_beverage = "Food & Beverage"
    other = "Other"


class PaymentTerms(str, enum.Enum):
    net_15 = "Net 15"
    net_30 = "Net 30"
    net_45 = "Net 45"
    net_60 = "Net 60"
    due_on_receipt = "Due on Receipt"
    custom = "Custom"


class POStatus(str, enum.Enum):
    draft = "Draft"
    pending = "Pending"
    approved = "Approved"
    received = "Received"
    cancelled = "Cancelled"


# Aucun changement (statut, lignes, suppression) possible une fois atteints
TERMINAL_PO_STATUSES = frozenset({POStatus.received, POStatus.cancelled})
