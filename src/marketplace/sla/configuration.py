"""SlaConfiguration aggregate and configuration resolution.

A configuration targets a case type, a product category, both, or neither
(the global default). Resolution walks those tiers from most to least
specific and stops at the first tier that has an active, currently effective
configuration:

    (case_type, category) → (case_type, *) → (*, category) → (*, *)

Inside a tier the lowest priority number wins; ties go to the configuration
that became effective most recently.
"""

from datetime import UTC, datetime

import structlog
from protean import atomic_change, handle, invariant
from protean.exceptions import ValidationError
from protean.fields import Boolean, DateTime, Identifier, Integer, String
from protean.utils.globals import current_domain

from marketplace.case.case import CaseType
from marketplace.domain import marketplace
from marketplace.shared.actors import ActorRole
from marketplace.shared.clock import as_utc, utc_now
from marketplace.shared.errors import ErrorCode, domain_error

logger = structlog.get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@marketplace.aggregate
class SlaConfiguration:
    name = String(required=True, max_length=200)
    case_type = String(max_length=20, choices=CaseType)
    category = String(max_length=100)
    first_response_hours = Integer(required=True, min_value=1)
    resolution_hours = Integer(required=True, min_value=1)
    priority = Integer(default=0, min_value=0)
    is_active = Boolean(default=True)
    effective_from = DateTime()
    effective_to = DateTime()
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def resolution_target_covers_first_response(self):
        if (
            self.first_response_hours is not None
            and self.resolution_hours is not None
            and self.resolution_hours < self.first_response_hours
        ):
            raise ValidationError({"resolution_hours": ["Resolution target cannot be shorter than first response"]})

    @invariant.post
    def effective_window_is_ordered(self):
        if self.effective_from and self.effective_to and as_utc(self.effective_to) <= as_utc(self.effective_from):
            raise ValidationError({"effective_to": ["Effective window must end after it starts"]})

    def is_effective(self, at: datetime) -> bool:
        if not self.is_active:
            return False
        at = as_utc(at)
        if self.effective_from and as_utc(self.effective_from) > at:
            return False
        if self.effective_to and as_utc(self.effective_to) <= at:
            return False
        return True

    def tier_for(self, case_type: str | None, category: str | None) -> int | None:
        """0 for an exact match down to 3 for the global default, None when it does not apply."""
        if self.case_type and self.category:
            matches = self.case_type == case_type and self.category == category
            return 0 if matches else None
        if self.case_type:
            return 1 if self.case_type == case_type else None
        if self.category:
            return 2 if self.category == category else None
        return 3

    def deactivate(self) -> None:
        self.is_active = False
        self.updated_at = utc_now()


def _effective_since(config: SlaConfiguration) -> datetime:
    return as_utc(config.effective_from or config.created_at) or _EPOCH


def select_configuration(
    configurations: list[SlaConfiguration],
    case_type: str | None,
    category: str | None,
    as_of: datetime,
) -> SlaConfiguration | None:
    """Pick the configuration that applies to a case, or None."""
    candidates = []
    for config in configurations:
        if not config.is_effective(as_of):
            continue
        tier = config.tier_for(case_type, category)
        if tier is not None:
            candidates.append((tier, config))
    if not candidates:
        return None

    best_tier = min(tier for tier, _ in candidates)
    in_tier = [config for tier, config in candidates if tier == best_tier]
    lowest_priority = min(config.priority for config in in_tier)
    tied = [config for config in in_tier if config.priority == lowest_priority]
    return max(tied, key=_effective_since)


def resolve_configuration(case_type: str | None, category: str | None, as_of=None) -> SlaConfiguration | None:
    """Resolve the SLA configuration for a case type and category.

    Returns None when nothing applies, not even a global default. Callers
    treat that as a soft configuration_missing condition.
    """
    as_of = as_utc(as_of) or utc_now()
    configurations = current_domain.repository_for(SlaConfiguration)._dao.query.filter(is_active=True).all().items
    config = select_configuration(configurations, case_type, category, as_of)
    if config is None:
        logger.warning(
            "No SLA configuration applies",
            case_type=case_type,
            category=category,
        )
    return config


# ---------------------------------------------------------------------------
# Admin commands
# ---------------------------------------------------------------------------
@marketplace.command(part_of="SlaConfiguration")
class SaveSlaConfiguration:
    """Create a configuration, or replace the targets of an existing one."""

    configuration_id = Identifier()
    name = String(required=True, max_length=200)
    case_type = String(max_length=20, choices=CaseType)
    category = String(max_length=100)
    first_response_hours = Integer(required=True, min_value=1)
    resolution_hours = Integer(required=True, min_value=1)
    priority = Integer(default=0, min_value=0)
    effective_from = DateTime()
    effective_to = DateTime()
    actor_role = String(required=True, choices=ActorRole)


@marketplace.command(part_of="SlaConfiguration")
class DeactivateSlaConfiguration:
    configuration_id = Identifier(required=True)
    actor_role = String(required=True, choices=ActorRole)


def _ensure_admin(actor_role: str) -> None:
    if actor_role != ActorRole.ADMIN.value:
        raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only admins may manage SLA configurations")


@marketplace.command_handler(part_of=SlaConfiguration)
class SlaConfigurationHandler:
    @handle(SaveSlaConfiguration)
    def save(self, command: SaveSlaConfiguration):
        _ensure_admin(command.actor_role)
        repo = current_domain.repository_for(SlaConfiguration)
        now = utc_now()

        if command.configuration_id:
            config = repo.get(command.configuration_id)
            with atomic_change(config):
                config.name = command.name
                config.case_type = command.case_type
                config.category = command.category
                config.first_response_hours = command.first_response_hours
                config.resolution_hours = command.resolution_hours
                config.priority = command.priority
                config.effective_from = as_utc(command.effective_from)
                config.effective_to = as_utc(command.effective_to)
                config.updated_at = now
        else:
            config = SlaConfiguration(
                name=command.name,
                case_type=command.case_type,
                category=command.category,
                first_response_hours=command.first_response_hours,
                resolution_hours=command.resolution_hours,
                priority=command.priority,
                effective_from=as_utc(command.effective_from),
                effective_to=as_utc(command.effective_to),
                created_at=now,
                updated_at=now,
            )
        repo.add(config)
        logger.info("SLA configuration saved", configuration_id=str(config.id), name=config.name)
        return str(config.id)

    @handle(DeactivateSlaConfiguration)
    def deactivate(self, command: DeactivateSlaConfiguration):
        _ensure_admin(command.actor_role)
        repo = current_domain.repository_for(SlaConfiguration)
        config = repo.get(command.configuration_id)
        config.deactivate()
        repo.add(config)
