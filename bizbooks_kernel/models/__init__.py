"""ORM models for the bizbooks kernel."""

from bizbooks_kernel.models.account import Account, AccountType, NormalBalance, normal_balance_for
from bizbooks_kernel.models.counterparty import (
    Counterparty,
    CounterpartyKind,
    CounterpartyTransaction,
    CounterpartyTransactionType,
)
from bizbooks_kernel.models.inventory import (
    ConsumerType,
    LotSourceType,
    Product,
    StockLot,
    StockLotConsumption,
)
from bizbooks_kernel.models.journal import (
    LEDGER_EFFECTIVE_STATUSES,
    EntrySourceType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
)
from bizbooks_kernel.models.pos_session import PosSession, PosSessionStatus
from bizbooks_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "normal_balance_for",
    "Counterparty",
    "CounterpartyKind",
    "CounterpartyTransaction",
    "CounterpartyTransactionType",
    "ConsumerType",
    "LotSourceType",
    "Product",
    "StockLot",
    "StockLotConsumption",
    "LEDGER_EFFECTIVE_STATUSES",
    "EntrySourceType",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "PosSession",
    "PosSessionStatus",
    "SequenceCounter",
]
