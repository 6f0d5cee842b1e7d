"""
EntitlementLib - Credits, free quota and the edit gate
"""

from RS_Libs.EntitlementLib.entitlement_store import Entitlement, EntitlementStore
from RS_Libs.EntitlementLib.entitlement_gate import EntitlementGate, OperationValue

__all__ = [
    "Entitlement",
    "EntitlementStore",
    "EntitlementGate",
    "OperationValue",
]
