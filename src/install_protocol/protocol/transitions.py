"""Stage legality checker for installer messages.

Legality is an explicit allow-list keyed by (previous, next) so that every
exception to plain monotonic order is visible in one place:

- ALIVE_PING is legal after anything and never moves the staged sequence.
- ARCHIVE_EXTRACTION_FAILED is legal only while extracting. It is terminal:
  only NOT_STARTED (a fresh restart) or ALIVE_PING may follow it.
- EXTRACTED_ARCHIVE_WITH_PROGRESS may repeat (progress updates).
- Every other pair is legal iff next is strictly greater than previous.
"""

import logging
from itertools import product

from install_protocol.exceptions import ProtocolViolation
from install_protocol.models.messages import InstallerMessageKind as Kind

logger = logging.getLogger("install_protocol.transitions")

FAILURE_KINDS = frozenset({Kind.ARCHIVE_EXTRACTION_FAILED})

# Stages a failure kind may be reported from.
FAILURE_SOURCES = {
    Kind.ARCHIVE_EXTRACTION_FAILED: frozenset(
        {Kind.EXTRACTION_STARTED, Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS}
    ),
}

REPEATABLE_KINDS = frozenset({Kind.EXTRACTED_ARCHIVE_WITH_PROGRESS})


def _derive_rule(previous: Kind, next_kind: Kind) -> bool:
    if next_kind is Kind.ALIVE_PING:
        return True
    if previous in FAILURE_KINDS:
        return next_kind is Kind.NOT_STARTED
    if next_kind in FAILURE_KINDS:
        return previous in FAILURE_SOURCES[next_kind]
    if previous is next_kind:
        return next_kind in REPEATABLE_KINDS
    return next_kind > previous


TRANSITION_TABLE: dict[tuple[Kind, Kind], bool] = {
    (previous, next_kind): _derive_rule(previous, next_kind)
    for previous, next_kind in product(Kind, Kind)
}


def is_legal_transition(previous: Kind, next_kind: Kind) -> bool:
    """Check whether next_kind may follow previous.

    Args:
        previous: Last installer message kind accepted
        next_kind: Installer message kind being reported

    Returns:
        True if the transition is in the allow-list

    Raises:
        TypeError: If either argument is not an InstallerMessageKind
    """
    if not isinstance(previous, Kind) or not isinstance(next_kind, Kind):
        raise TypeError(
            f"Expected InstallerMessageKind values, got "
            f"{type(previous).__name__} and {type(next_kind).__name__}"
        )
    return TRANSITION_TABLE[(previous, next_kind)]


def require_legal_transition(previous: Kind, next_kind: Kind) -> None:
    """Reject an illegal transition as a protocol violation.

    Raises:
        ProtocolViolation: If next_kind may not follow previous
    """
    if not is_legal_transition(previous, next_kind):
        logger.error(f"Illegal installer transition: {previous.name} -> {next_kind.name}")
        raise ProtocolViolation(
            f"{next_kind.name} may not follow {previous.name}",
            context={"previous": previous, "next": next_kind},
        )
