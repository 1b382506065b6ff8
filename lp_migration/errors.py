"""Exception hierarchy for the migration engine."""


class MigrationError(Exception):
    """Base class for all migration engine errors."""


class InvalidPreferencesError(MigrationError, ValueError):
    """User migration preferences failed validation."""


class PoolQueryError(MigrationError, RuntimeError):
    """Pool metrics could not be fetched from any endpoint."""


class RelayerError(MigrationError, RuntimeError):
    """Liquidity operation could not be submitted to any relayer endpoint."""


class StepExecutionError(MigrationError, RuntimeError):
    """A migration step reported failure."""
