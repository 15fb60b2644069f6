from boxoffice.services.inventory import InventoryLedger
from boxoffice.services.reservation import ReservationService
from boxoffice.services.purchase import PurchaseService
from boxoffice.services.settlement import SettlementService, SettlementOutcome
from boxoffice.services.sweeper import ExpirationSweeper, SweepResult

__all__ = [
    "InventoryLedger",
    "ReservationService",
    "PurchaseService",
    "SettlementService",
    "SettlementOutcome",
    "ExpirationSweeper",
    "SweepResult",
]
