"""Working tree mutation."""

from .service import LOG_REMOVED, RENAME_TABLE, MutationOutput, Mutator

__all__ = ["LOG_REMOVED", "RENAME_TABLE", "MutationOutput", "Mutator"]
