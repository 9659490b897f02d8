"""Case messages — the conversation thread between buyer, seller and admins."""

from protean import handle
from protean.fields import DateTime, Identifier, String, Text
from protean.utils.globals import current_domain

from marketplace.case.case import Case
from marketplace.domain import marketplace
from marketplace.shared.actors import ActorRole, ensure_store_staff
from marketplace.shared.clock import as_utc
from marketplace.shared.errors import ErrorCode, domain_error


@marketplace.command(part_of="Case")
class PostCaseMessage:
    case_id = Identifier(required=True)
    sender_id = String(required=True, max_length=100)
    sender_role = String(required=True, choices=ActorRole)
    body = Text(required=True)
    occurred_at = DateTime()


@marketplace.command_handler(part_of=Case)
class CaseMessageHandler:
    @handle(PostCaseMessage)
    def post_message(self, command: PostCaseMessage):
        repo = current_domain.repository_for(Case)
        case = repo.get(command.case_id)

        if command.sender_role == ActorRole.BUYER.value:
            if str(case.buyer_id) != str(command.sender_id):
                raise domain_error(ErrorCode.NOT_AUTHORIZED, "Only the case's buyer may write to it")
        else:
            ensure_store_staff(command.sender_id, command.sender_role, case.store_id)

        message = case.post_message(
            sender_id=command.sender_id,
            sender_role=command.sender_role,
            body=command.body,
            at=as_utc(command.occurred_at),
        )
        repo.add(case)
        return str(message.id)
