class LedgerError(Exception):
    """Base class for errors raised by the ledger core."""


class InvalidAmount(LedgerError, ValueError):
    def __init__(self, raw: str):
        super().__init__(f"not a valid amount: {raw!r}")
        self.raw = raw


class NotFound(LedgerError):
    def __init__(self, entry_id: str):
        super().__init__(f"entry {entry_id!r} not found")
        self.entry_id = entry_id


class StoreFailure(LedgerError):
    def __init__(self, operation: str):
        super().__init__(f"store operation failed: {operation}")
        self.operation = operation
