"""Typed payloads for queued mutations, one variant per mutation ``type``.

Every queued write is validated against its variant before it is stored and
again before it is replayed, so a malformed snapshot never reaches the
backend.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from core.settings import OFFLINE
from services.errors import InvalidMutationError


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _number(kind: str = "number"):
    return field(default=UNSET, metadata={"kind": kind})


def _text():
    return field(default=UNSET, metadata={"kind": "text"})


def _flag():
    return field(default=UNSET, metadata={"kind": "bool"})


def _json():
    return field(default=UNSET, metadata={"kind": "json"})


def _check(kind: str, name: str, value: Any) -> None:
    if value is None:
        return
    if kind == "id":
        ok = isinstance(value, (str, int)) and not isinstance(value, bool)
    elif kind == "number":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif kind == "text":
        ok = isinstance(value, str)
    elif kind == "bool":
        ok = isinstance(value, bool)
    else:
        ok = isinstance(value, (dict, list, str, int, float, bool))
    if not ok:
        raise InvalidMutationError(f"Field {name!r} has invalid value {value!r}")


@dataclass(frozen=True)
class MutationPayload:
    kind: ClassVar[str] = ""
    required_on_create: ClassVar[Tuple[str, ...]] = ()

    id: Any = field(default=UNSET, metadata={"kind": "id"})
    user_id: Any = _text()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        if not isinstance(data, Mapping):
            raise InvalidMutationError(f"{cls.kind} payload must be a mapping")
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise InvalidMutationError(
                f"Unknown {cls.kind} payload field(s): {', '.join(unknown)}"
            )
        for name, value in data.items():
            _check(known[name].metadata.get("kind", "json"), name, value)
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    @property
    def record_id(self) -> Optional[str]:
        if self.id is UNSET or self.id is None:
            return None
        return str(self.id)

    def validate_for(self, action: str, endpoint: str = "") -> None:
        provided = self.to_dict()
        has_filter = "?" in endpoint
        if action == "create":
            missing = [name for name in self.required_on_create if provided.get(name) is None]
            if missing:
                raise InvalidMutationError(
                    f"{self.kind} create requires: {', '.join(missing)}"
                )
        elif action in ("update", "delete"):
            if self.record_id is None and not has_filter:
                raise InvalidMutationError(
                    f"{self.kind} {action} needs an id in the payload or a filter in the endpoint"
                )
            if action == "update" and not (set(provided) - {"id", "user_id"}):
                raise InvalidMutationError(f"{self.kind} update carries no changes")
        else:
            raise InvalidMutationError(f"Unsupported action: {action}")


# Field sets follow the backend tables' insert columns. ``user_id`` is filled
# in from the queued record when a create omits it.


@dataclass(frozen=True)
class GoalPayload(MutationPayload):
    kind: ClassVar[str] = "goal"
    required_on_create: ClassVar[Tuple[str, ...]] = ("name", "target_amount")

    name: Any = _text()
    target_amount: Any = _number()
    current_amount: Any = _number()
    amount: Any = _number()
    currency: Any = _text()
    deadline: Any = _text()
    icon: Any = _text()
    visual_prompt: Any = _text()
    visual_url: Any = _text()
    time_to_goal_suggestions: Any = _json()


@dataclass(frozen=True)
class TransactionPayload(MutationPayload):
    kind: ClassVar[str] = "transaction"
    required_on_create: ClassVar[Tuple[str, ...]] = ("amount", "category", "transaction_date")

    amount: Any = _number()
    category: Any = _text()
    transaction_date: Any = _text()
    merchant: Any = _text()
    description: Any = _text()
    account_id: Any = _text()
    currency: Any = _text()
    original_amount: Any = _number()
    original_currency: Any = _text()
    is_recurring: Any = _flag()
    recurring_frequency: Any = _text()
    tags: Any = _json()
    enrichment_metadata: Any = _json()
    plaid_transaction_id: Any = _text()


@dataclass(frozen=True)
class BudgetPayload(MutationPayload):
    kind: ClassVar[str] = "budget"
    required_on_create: ClassVar[Tuple[str, ...]] = ("name", "period", "total_limit")

    name: Any = _text()
    period: Any = _text()
    total_limit: Any = _number()
    category_limits: Any = _json()
    currency: Any = _text()
    is_active: Any = _flag()
    last_rebalanced_at: Any = _text()


@dataclass(frozen=True)
class PotPayload(MutationPayload):
    kind: ClassVar[str] = "pot"
    required_on_create: ClassVar[Tuple[str, ...]] = ("name", "target_amount")

    name: Any = _text()
    target_amount: Any = _number()
    current_amount: Any = _number()
    currency: Any = _text()
    color: Any = _text()
    icon: Any = _text()
    image_url: Any = _text()
    is_active: Any = _flag()
    notes: Any = _text()
    target_date: Any = _text()


@dataclass(frozen=True)
class DebtPayload(MutationPayload):
    kind: ClassVar[str] = "debt"
    required_on_create: ClassVar[Tuple[str, ...]] = (
        "debt_name",
        "current_balance",
        "interest_rate",
        "principal_amount",
    )

    debt_name: Any = _text()
    current_balance: Any = _number()
    interest_rate: Any = _number()
    principal_amount: Any = _number()
    original_balance: Any = _number()
    minimum_payment: Any = _number()
    actual_payment: Any = _number()
    payment_due_date: Any = _number()
    debt_type: Any = _text()
    payoff_strategy: Any = _text()
    status: Any = _text()
    target_payoff_date: Any = _text()
    currency: Any = _text()


@dataclass(frozen=True)
class AutomationPayload(MutationPayload):
    kind: ClassVar[str] = "automation"
    required_on_create: ClassVar[Tuple[str, ...]] = ("rule_name", "rule_type")

    rule_name: Any = _text()
    rule_type: Any = _text()
    trigger_condition: Any = _json()
    action_config: Any = _json()
    frequency: Any = _text()
    is_active: Any = _flag()
    metadata: Any = _json()
    notes: Any = _text()
    start_date: Any = _text()
    next_run_date: Any = _text()
    last_run_date: Any = _text()


PAYLOAD_TYPES: Dict[str, Type[MutationPayload]] = {
    cls.kind: cls
    for cls in (
        GoalPayload,
        TransactionPayload,
        BudgetPayload,
        PotPayload,
        DebtPayload,
        AutomationPayload,
    )
}

VALID_ACTIONS = OFFLINE.mutation_actions


def parse_payload(
    mutation_type: str,
    action: str,
    data: Mapping[str, Any],
    *,
    endpoint: str = "",
) -> MutationPayload:
    """Validate ``data`` against the variant registered for ``mutation_type``."""

    payload_cls = PAYLOAD_TYPES.get(mutation_type)
    if payload_cls is None:
        raise InvalidMutationError(f"Unsupported mutation type: {mutation_type}")
    if action not in VALID_ACTIONS:
        raise InvalidMutationError(f"Unsupported action: {action}")
    payload = payload_cls.from_dict(data)
    payload.validate_for(action, endpoint)
    return payload


__all__ = [
    "AutomationPayload",
    "BudgetPayload",
    "DebtPayload",
    "GoalPayload",
    "MutationPayload",
    "PAYLOAD_TYPES",
    "PotPayload",
    "TransactionPayload",
    "UNSET",
    "VALID_ACTIONS",
    "parse_payload",
]
