from retail_ledger.models.installments import InstallmentContract, InstallmentPayment
from retail_ledger.models.ledger import AgentAssignment, AssignmentMovement, StockAdjustment, StockPool

__all__ = [
    "AgentAssignment",
    "AssignmentMovement",
    "InstallmentContract",
    "InstallmentPayment",
    "StockAdjustment",
    "StockPool",
]
