"""
PostingAccountResolver -- control and offset GL accounts for a document.

Responsibility:
    Reads the entity's purpose mapping (journal_purpose_accounts) for the
    direction's control and offset purposes and applies the counterparty's
    control-account override (ar_account_id for AR, ap_account_id for AP).

Invariants enforced:
    - Mapped accounts must be active and postable, and belong to the tenant
      and legal entity; otherwise the purpose counts as not configured.
    - An override requires the matching counterparty role and an active,
      postable account of the entity.
    - The effective AR control account is an ASSET, the AP control account
      a LIABILITY.
    - Control and offset are different accounts.

Failure modes:
    - PostingAccountsNotConfiguredError: a purpose has no usable mapping.
    - InvalidPostingAccountError: override or control account rejected.
    - ControlOffsetAccountCollisionError: both resolve to one account.
"""

from uuid import UUID

from sqlalchemy import select

from ledger_kernel.domain.dtos import PostingAccounts
from ledger_kernel.domain.posting_rules import Direction, coerce_direction
from ledger_kernel.exceptions import (
    ControlOffsetAccountCollisionError,
    InvalidPostingAccountError,
    PostingAccountsNotConfiguredError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account, AccountType, JournalPurposeAccount
from ledger_kernel.models.counterparty import Counterparty
from ledger_kernel.services.base import BaseService

logger = get_logger("services.posting_accounts")

_CONTROL_ACCOUNT_TYPE = {
    Direction.AR: AccountType.ASSET,
    Direction.AP: AccountType.LIABILITY,
}


class PostingAccountResolver(BaseService):
    """Resolve the two accounts a subledger posting uses."""

    def _purpose_accounts(
        self, tenant_id: UUID, legal_entity_id: UUID, purposes: tuple[str, str]
    ) -> dict[str, Account]:
        rows = self.session.execute(
            select(JournalPurposeAccount.purpose_code, Account)
            .join(Account, Account.id == JournalPurposeAccount.account_id)
            .where(
                JournalPurposeAccount.tenant_id == tenant_id,
                JournalPurposeAccount.legal_entity_id == legal_entity_id,
                JournalPurposeAccount.purpose_code.in_(purposes),
                Account.tenant_id == tenant_id,
                Account.legal_entity_id == legal_entity_id,
                Account.is_active.is_(True),
                Account.allow_posting.is_(True),
            )
        ).all()
        return {purpose_code.upper(): account for purpose_code, account in rows}

    def _override_account(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        direction: Direction,
        counterparty: Counterparty | None,
    ) -> Account | None:
        if counterparty is None:
            return None

        if direction is Direction.AR:
            account_id, role_enabled, label = (
                counterparty.ar_account_id, counterparty.is_customer, "arAccountId"
            )
        else:
            account_id, role_enabled, label = (
                counterparty.ap_account_id, counterparty.is_vendor, "apAccountId"
            )
        if account_id is None:
            return None
        if not role_enabled:
            raise InvalidPostingAccountError(
                account_id, f"{label} requires a compatible counterparty role"
            )

        account = self.session.execute(
            select(Account).where(Account.id == account_id, Account.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if account is None:
            raise InvalidPostingAccountError(account_id, f"{label} not found for tenant")
        if account.legal_entity_id != legal_entity_id:
            raise InvalidPostingAccountError(account_id, f"{label} must belong to legalEntityId")
        if not account.is_active:
            raise InvalidPostingAccountError(account_id, f"{label} must reference an ACTIVE account")
        if not account.allow_posting:
            raise InvalidPostingAccountError(account_id, f"{label} must reference a postable account")
        return account

    def resolve(
        self,
        tenant_id: UUID,
        legal_entity_id: UUID,
        direction: str,
        counterparty: Counterparty | None = None,
    ) -> PostingAccounts:
        """
        Raises:
            PostingAccountsNotConfiguredError, InvalidPostingAccountError,
            ControlOffsetAccountCollisionError.
        """
        direction = coerce_direction(direction)
        control_purpose, offset_purpose = self.settings.purposes_for(direction.value)

        by_purpose = self._purpose_accounts(
            tenant_id, legal_entity_id, (control_purpose, offset_purpose)
        )
        control = by_purpose.get(control_purpose.upper())
        offset = by_purpose.get(offset_purpose.upper())
        if control is None or offset is None:
            missing = [
                purpose
                for purpose, account in ((control_purpose, control), (offset_purpose, offset))
                if account is None
            ]
            raise PostingAccountsNotConfiguredError(legal_entity_id, missing)

        override = self._override_account(tenant_id, legal_entity_id, direction, counterparty)
        effective_control = override or control

        expected_type = _CONTROL_ACCOUNT_TYPE[direction]
        if effective_control.account_type != expected_type.value:
            raise InvalidPostingAccountError(
                effective_control.id,
                f"{direction.value} control account must have accountType={expected_type.value}",
            )
        if effective_control.id == offset.id:
            raise ControlOffsetAccountCollisionError(offset.id)

        logger.debug(
            "posting_accounts_resolved",
            extra={
                "direction": direction.value,
                "control_account_id": str(effective_control.id),
                "offset_account_id": str(offset.id),
                "control_overridden": override is not None,
            },
        )
        return PostingAccounts(
            control_account_id=effective_control.id,
            offset_account_id=offset.id,
            control_purpose_code=control_purpose,
            offset_purpose_code=offset_purpose,
            control_overridden=override is not None,
        )
