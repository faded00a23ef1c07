"""
Payment proofs, coerced from loosely-typed request data.

A protected request carries paymentAddress / paymentAmount / paymentProof in
its JSON body. GET requests have no body, so the same values are also read from
the x-payment-* headers.
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from agent_hedge_fund.errors import MalformedProofError

BODY_FIELDS = {
    "payer": "paymentAddress",
    "amount": "paymentAmount",
    "token": "paymentProof",
}

HEADER_FIELDS = {
    "payer": "x-payment-address",
    "amount": "x-payment-amount",
    "token": "x-payment-proof",
}


def coerce_wei(value: Any) -> int:
    """Accept an int or a string of decimal digits. Floats and bools are rejected."""
    if isinstance(value, bool):
        raise ValueError("amount must be an integer")
    if isinstance(value, int):
        amount = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdigit():
        amount = int(value.strip())
    else:
        raise ValueError("amount must be an integer number of wei")
    if amount < 0:
        raise ValueError("amount cannot be negative")
    return amount


class PaymentProof(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    payer: str
    amount: int
    token: str
    route_key: str

    @field_validator("payer", "token", "route_key", mode="before")
    @classmethod
    def _non_empty(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _wei(cls, value):
        return coerce_wei(value)


def _pick(name: str, body: Mapping, headers: Optional[Mapping]) -> Any:
    value = body.get(BODY_FIELDS[name])
    if value in (None, "") and headers is not None:
        value = headers.get(HEADER_FIELDS[name])
    return value


def extract_proof(body: Optional[Mapping], route_key: str,
                  headers: Optional[Mapping] = None) -> PaymentProof:
    """Build a PaymentProof from a request body (falling back to headers).

    Raises MalformedProofError when a field is absent or has the wrong shape.
    """
    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        raise MalformedProofError("Request body is not a JSON object")

    values = {name: _pick(name, body, headers) for name in BODY_FIELDS}
    missing = [BODY_FIELDS[name] for name, value in values.items() if value in (None, "")]
    if missing:
        raise MalformedProofError(f"Missing {', '.join(missing)}")

    try:
        return PaymentProof(route_key=route_key, **values)
    except ValidationError as e:
        fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
        raise MalformedProofError(f"Malformed payment fields: {fields}") from e
