class LedgerError(Exception):
    """Base class for every error the ledger raises to its callers"""
    pass


class ValidationError(LedgerError):
    """Malformed input, rejected before any storage call"""
    pass


class NotFoundError(LedgerError):
    """Referenced booking, stock item or business does not exist for this tenant"""
    pass


class ConflictError(LedgerError):
    """A concurrent transaction modified a row we read; retry from a fresh read"""
    pass


class StorageUnavailableError(LedgerError):
    """The database could not be reached or refused the transaction"""
    pass
