"""Status vocabularies and their allowed transitions."""

from typing import Optional

# Contact.email_status
A_TROUVER = "a_trouver"
TROUVE = "trouve"
A_VERIFIER = "a_verifier"
VALIDE = "valide"
INVALIDE = "invalide"

EMAIL_STATUSES = (A_TROUVER, TROUVE, A_VERIFIER, VALIDE, INVALIDE)

EMAIL_STATUS_TRANSITIONS: dict[str, set[str]] = {
    A_TROUVER: {TROUVE, A_VERIFIER},
    TROUVE: {A_VERIFIER, VALIDE, INVALIDE},
    A_VERIFIER: {VALIDE, INVALIDE},
    VALIDE: {INVALIDE},
    INVALIDE: set(),
}

# Prospection.status
A_PROSPECTER = "a_prospecter"
EN_COURS = "en_cours"
INTERESSE = "interesse"
RDV_PRIS = "rdv_pris"
CLIENT = "client"
PAS_INTERESSE = "pas_interesse"

PROSPECTION_STATUSES = (A_PROSPECTER, EN_COURS, INTERESSE, RDV_PRIS, CLIENT, PAS_INTERESSE)

PROSPECTION_TRANSITIONS: dict[str, set[str]] = {
    A_PROSPECTER: {EN_COURS, INTERESSE, RDV_PRIS, CLIENT, PAS_INTERESSE},
    EN_COURS: {INTERESSE, RDV_PRIS, CLIENT, PAS_INTERESSE},
    INTERESSE: {RDV_PRIS, CLIENT, PAS_INTERESSE},
    RDV_PRIS: {CLIENT, PAS_INTERESSE},
    CLIENT: set(),
    PAS_INTERESSE: set(),
}

# EmailSent.status
SENT = "sent"
DELIVERED = "delivered"
OPENED = "opened"
CLICKED = "clicked"
BOUNCED = "bounced"
SPAM = "spam"
UNSUBSCRIBED = "unsubscribed"

DELIVERY_RANK = {SENT: 0, DELIVERED: 1, OPENED: 2, CLICKED: 3}
DELIVERY_TERMINAL = {BOUNCED, SPAM, UNSUBSCRIBED}


class InvalidTransition(ValueError):
    """Raised when a status would move backwards or sideways."""

    def __init__(self, kind: str, current: str, new: str):
        super().__init__(f"Invalid {kind} transition: {current} -> {new}")
        self.kind = kind
        self.current = current
        self.new = new


def can_transition(transitions: dict[str, set[str]], current: Optional[str], new: str) -> bool:
    """True if `new` is reachable from `current` in one move.

    Re-asserting the current status is allowed and is a no-op for callers.
    """
    if new not in transitions:
        return False
    if current is None or current == new:
        return True
    return new in transitions.get(current, set())


def check_email_status(current: Optional[str], new: str) -> None:
    if not can_transition(EMAIL_STATUS_TRANSITIONS, current, new):
        raise InvalidTransition("email_status", current, new)


def check_prospection_status(current: Optional[str], new: str) -> None:
    if not can_transition(PROSPECTION_TRANSITIONS, current, new):
        raise InvalidTransition("prospection status", current, new)


def next_delivery_status(current: Optional[str], new: str) -> str:
    """Resolve the delivery status after an event, never downgrading."""
    if current in DELIVERY_TERMINAL:
        return current
    if new in DELIVERY_TERMINAL:
        return new
    if DELIVERY_RANK.get(new, -1) > DELIVERY_RANK.get(current, -1):
        return new
    return current or new
