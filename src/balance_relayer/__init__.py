"""
Balance Relayer package.

Off-chain relayer that refreshes balances on the balance oracle contract from
an external balance authority.
"""

from .config import RelayerConfig
from .event_listener import BalanceEventListener
from .models import WorkItem
from .relayer import BalanceRelayer
from .request_processor import ExhaustionPolicy, RequestProcessor
from .work_queue import PendingWorkQueue

__all__ = [
    "BalanceEventListener",
    "BalanceRelayer",
    "ExhaustionPolicy",
    "PendingWorkQueue",
    "RelayerConfig",
    "RequestProcessor",
    "WorkItem",
]
__version__ = "0.1.0"
