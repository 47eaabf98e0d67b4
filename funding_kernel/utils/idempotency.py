"""
Idempotency keys for payment processor requests.

A retried request must reuse its key and a deliberate new attempt must not,
so keys are built from the order id and its attempt counter, never from the
clock or a random value.
"""

from uuid import UUID


def generate_idempotency_key(
    gateway: str,
    action: str,
    subject_id: UUID | str,
    attempt: int | None = None,
) -> str:
    """
    ``gateway:action:subject_id[:attempt]``

    Example:
        >>> generate_idempotency_key("card", "charge", order.id, 1)
        'card:charge:550e8400-e29b-41d4-a716-446655440000:1'
    """
    if ":" in gateway or ":" in action:
        raise ValueError(f"Key segments must not contain ':' ({gateway!r}, {action!r})")
    key = f"{gateway}:{action}:{subject_id}"
    return key if attempt is None else f"{key}:{attempt}"
