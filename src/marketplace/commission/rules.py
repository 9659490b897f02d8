"""CommissionRule aggregate — how much the marketplace keeps per sale.

A rule can target a store, a category, both or neither. The most specific
matching rule wins (store and category, then store, then category, then
global); among equally specific rules the higher priority wins. With no
matching rule the default rate from settings applies.
"""

from decimal import ROUND_HALF_UP, Decimal

from protean import handle, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import utc_now
from marketplace.shared.errors import ErrorCode, domain_error
from marketplace.shared.money import CENT, to_decimal


@marketplace.aggregate
class CommissionRule:
    name = String(required=True, max_length=200)
    store_id = Identifier()
    category = String(max_length=100)
    rate = Float(required=True, min_value=0.0, max_value=100.0)
    min_commission = Float(min_value=0.0)
    max_commission = Float(min_value=0.0)
    priority = Integer(default=0)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @invariant.post
    def bounds_are_ordered(self):
        if (
            self.min_commission is not None
            and self.max_commission is not None
            and self.max_commission < self.min_commission
        ):
            raise ValidationError({"max_commission": ["Maximum commission cannot be below the minimum"]})

    def specificity(self, store_id: str | None, category: str | None) -> int | None:
        if self.store_id and str(self.store_id) != str(store_id):
            return None
        if self.category and self.category != category:
            return None
        return (2 if self.store_id else 0) + (1 if self.category else 0)

    @property
    def description(self) -> str:
        return f"{self.name} ({to_decimal(self.rate)}%)"

    def commission_for(self, amount: Decimal) -> Decimal:
        commission = (amount * to_decimal(self.rate) / 100).quantize(CENT, rounding=ROUND_HALF_UP)
        if self.min_commission is not None:
            commission = max(commission, to_decimal(self.min_commission))
        if self.max_commission is not None:
            commission = min(commission, to_decimal(self.max_commission))
        return min(commission, amount)


def select_rule(rules: list[CommissionRule], store_id: str | None, category: str | None) -> CommissionRule | None:
    matches = []
    for rule in rules:
        if not rule.is_active:
            continue
        score = rule.specificity(store_id, category)
        if score is not None:
            matches.append((score, rule.priority or 0, rule))
    if not matches:
        return None
    return max(matches, key=lambda match: (match[0], match[1]))[2]


def find_rule(store_id: str | None, category: str | None) -> CommissionRule | None:
    rules = current_domain.repository_for(CommissionRule)._dao.query.filter(is_active=True).all().items
    return select_rule(rules, store_id, category)


@marketplace.command(part_of="CommissionRule")
class AddCommissionRule:
    name = String(required=True, max_length=200)
    store_id = Identifier()
    category = String(max_length=100)
    rate = Float(required=True, min_value=0.0, max_value=100.0)
    min_commission = Float(min_value=0.0)
    max_commission = Float(min_value=0.0)
    priority = Integer(default=0)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="CommissionRule")
class DeactivateCommissionRule:
    rule_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command_handler(part_of=CommissionRule)
class CommissionRuleHandler:
    @handle(AddCommissionRule)
    def add_rule(self, command: AddCommissionRule):
        if command.actor_role != ActorRole.ADMIN.value:
            raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may manage commission rules")
        rule = CommissionRule(
            name=command.name,
            store_id=command.store_id,
            category=command.category,
            rate=command.rate,
            min_commission=command.min_commission,
            max_commission=command.max_commission,
            priority=command.priority,
            created_at=utc_now(),
        )
        current_domain.repository_for(CommissionRule).add(rule)
        return str(rule.id)

    @handle(DeactivateCommissionRule)
    def deactivate_rule(self, command: DeactivateCommissionRule):
        if command.actor_role != ActorRole.ADMIN.value:
            raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may manage commission rules")
        repo = current_domain.repository_for(CommissionRule)
        rule = repo.get(command.rule_id)
        rule.is_active = False
        repo.add(rule)
