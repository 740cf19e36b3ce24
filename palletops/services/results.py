from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class QuantityExceeded:
    code = 'quantity_exceeded'

    scope_kind: str
    order_id: int
    item_id: str
    ceiling: int
    committed: int
    proposed_qty: int

    @property
    def headroom(self) -> int:
        return max(self.ceiling - self.committed, 0)

    @property
    def message(self) -> str:
        return (
            f'Cannot assign {self.proposed_qty} of {self.item_id} to {self.scope_kind} order {self.order_id}: '
            f'{self.committed} of {self.ceiling} already committed, {self.headroom} remaining'
        )

    def as_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, 'headroom': self.headroom, **asdict(self)}


@dataclass(frozen=True)
class InvalidTransition:
    code = 'invalid_transition'

    entity: str
    entity_id: int
    from_status: str
    to_status: str
    reason: str = ''

    @property
    def message(self) -> str:
        text = f'{self.entity} {self.entity_id} cannot move from {self.from_status} to {self.to_status}'
        if self.reason:
            return f'{text}: {self.reason}'
        return text

    def as_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, **asdict(self)}


@dataclass(frozen=True)
class NoEligibleOrder:
    code = 'no_eligible_order'

    item_id: str
    qty: int
    pool_remaining: int

    @property
    def message(self) -> str:
        return f'No shipping order can take {self.qty} of {self.item_id} (pool remaining {self.pool_remaining})'

    def as_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, **asdict(self)}


@dataclass(frozen=True)
class NotFound:
    code = 'not_found'

    entity: str
    key: str

    @property
    def message(self) -> str:
        return f'{self.entity} {self.key} not found'

    def as_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, **asdict(self)}


@dataclass(frozen=True)
class ConcurrentModification:
    code = 'concurrent_modification'

    entity: str
    key: str

    @property
    def message(self) -> str:
        return f'{self.entity} {self.key} is being changed by another operator; reload and retry'

    def as_dict(self) -> dict:
        return {'code': self.code, 'message': self.message, **asdict(self)}


Rejection = QuantityExceeded | InvalidTransition | NoEligibleOrder | NotFound | ConcurrentModification

REJECTION_TYPES = (QuantityExceeded, InvalidTransition, NoEligibleOrder, NotFound, ConcurrentModification)


def is_rejection(result: object) -> bool:
    return isinstance(result, REJECTION_TYPES)
