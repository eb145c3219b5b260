"""Kernel services: sequence allocation, account tree, journal lifecycle."""

from bizbooks_kernel.services.account_service import AccountSeed, AccountService
from bizbooks_kernel.services.journal_service import JournalService, VoidResult
from bizbooks_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountSeed",
    "AccountService",
    "JournalService",
    "VoidResult",
    "SequenceService",
]
