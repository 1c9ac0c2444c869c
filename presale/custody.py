from collections import defaultdict
from typing import Callable, Optional, Protocol

from loguru import logger

from .errors import TransferFailedError


class ValueTransfer(Protocol):
    """Moves currencies and the sale asset between holders.

    Implementations raise ``TransferFailedError`` (or return ``False``) when a
    transfer cannot be made. ``snapshot``/``restore`` let the ledger unwind
    transfers made earlier in an operation that later fails.
    """

    def balance_of(self, currency: str, holder: str) -> int:
        ...

    def transfer(self, currency: str, sender: str, recipient: str, amount: int) -> Optional[bool]:
        ...

    def snapshot(self) -> object:
        ...

    def restore(self, snapshot: object) -> None:
        ...


ReceiveHook = Callable[[str, str, int], None]


class InMemoryCustody:
    """Balance book keyed by currency and holder.

    Receive hooks run after a recipient is credited, which is where a
    recipient can attempt to call back into the ledger.
    """

    def __init__(self):
        self.balances: dict[str, dict[str, int]] = defaultdict(dict)
        self.receive_hooks: dict[str, ReceiveHook] = {}
        self.rejecting: set[str] = set()

    def mint(self, currency: str, holder: str, amount: int) -> None:
        book = self.balances[currency]
        book[holder] = book.get(holder, 0) + amount

    def balance_of(self, currency: str, holder: str) -> int:
        return self.balances[currency].get(holder, 0)

    def on_receive(self, recipient: str, hook: ReceiveHook) -> None:
        self.receive_hooks[recipient] = hook

    def reject_transfers_to(self, recipient: str) -> None:
        self.rejecting.add(recipient)

    def transfer(self, currency: str, sender: str, recipient: str, amount: int) -> bool:
        if amount < 0:
            raise TransferFailedError(f"Negative transfer amount {amount}")
        if recipient in self.rejecting:
            raise TransferFailedError(f"Recipient {recipient} rejected {currency} transfer")
        book = self.balances[currency]
        available = book.get(sender, 0)
        if available < amount:
            raise TransferFailedError(
                f"Insufficient {currency} balance for {sender}: {available} < {amount}"
            )
        book[sender] = available - amount
        book[recipient] = book.get(recipient, 0) + amount
        logger.debug(f"Transferred {amount} {currency} from {sender} to {recipient}")

        hook = self.receive_hooks.get(recipient)
        if hook:
            hook(currency, sender, amount)
        return True

    def snapshot(self) -> dict[str, dict[str, int]]:
        return {currency: dict(book) for currency, book in self.balances.items()}

    def restore(self, snapshot: dict[str, dict[str, int]]) -> None:
        self.balances = defaultdict(dict, {c: dict(b) for c, b in snapshot.items()})
