"""
Bank account registry: verified payout destinations per user.

At most one default account per user. The partial unique index on
``(user_id) WHERE is_default`` is the final guard; create, remove and
set_default keep it satisfied under concurrency.
"""
import re
import uuid
from typing import Dict, List, Optional

import structlog
from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from community_payments.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VerificationFailedError,
)
from community_payments.database.models import BankAccount
from community_payments.integrations.banks import bank_name_for, supported_banks
from community_payments.integrations.paystack_client import GatewayError, PaymentGateway

logger = structlog.get_logger(__name__)

_ACCOUNT_NUMBER = re.compile(r"^\d{10}$")
_BANK_CODE = re.compile(r"^\d{3,6}$")


def _validate_details(account_number: str, bank_code: str) -> None:
    if not _ACCOUNT_NUMBER.match(account_number or ""):
        raise ValidationError("Account number must be 10 digits")
    if not _BANK_CODE.match(bank_code or ""):
        raise ValidationError("Bank code must be numeric")


class BankAccountRegistry:
    """Create, verify, list and remove payout bank accounts."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        gateway: PaymentGateway,
    ):
        """
        Initialize registry.

        Args:
            session_factory: Session factory used for every operation
            gateway: Gateway used to resolve account holder names
        """
        self.session_factory = session_factory
        self.gateway = gateway

    async def _lock_user_accounts(self, db: AsyncSession, user_id: uuid.UUID) -> List[BankAccount]:
        """Lock all of a user's accounts for the rest of the transaction, oldest first."""
        stmt = (
            select(BankAccount)
            .where(BankAccount.user_id == user_id)
            .order_by(BankAccount.created_at, BankAccount.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return list((await db.execute(stmt)).scalars().all())

    async def _owned(self, db: AsyncSession, account_id: uuid.UUID, requester_id: uuid.UUID) -> BankAccount:
        account = await db.get(BankAccount, account_id, populate_existing=True)
        if account is None:
            raise NotFoundError("Bank account not found", resource_id=account_id)
        if account.user_id != requester_id:
            raise ForbiddenError("You can only manage your own bank accounts", resource_id=account_id)
        return account

    async def _claim_default(self, db: AsyncSession, account: BankAccount) -> bool:
        """Make the account default if the user has none; one conditional UPDATE."""
        others = aliased(BankAccount)
        result = await db.execute(
            update(BankAccount)
            .where(
                BankAccount.id == account.id,
                ~exists().where(
                    others.user_id == account.user_id,
                    others.is_default.is_(True),
                ),
            )
            .values(is_default=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def create(
        self,
        user_id: uuid.UUID,
        account_number: str,
        bank_code: str,
        account_name: Optional[str] = None,
    ) -> BankAccount:
        """
        Register a bank account, resolving the holder name through the gateway.

        When the gateway cannot resolve the account it is still stored, unverified,
        under the supplied name (or the account number). The user's first account
        becomes the default.

        Raises:
            ValidationError: Malformed details or unsupported bank
            ConflictError: The account is already registered for the user
        """
        _validate_details(account_number, bank_code)
        bank_name = bank_name_for(bank_code)
        if bank_name is None:
            raise ValidationError(f"Unsupported bank code: {bank_code}")

        is_verified = False
        resolved_name = account_name or account_number
        try:
            resolved = await self.gateway.resolve_account(account_number, bank_code)
            resolved_name = resolved.account_name
            is_verified = True
        except GatewayError as e:
            logger.warning(
                "bank_account_resolution_failed",
                user_id=str(user_id),
                bank_code=bank_code,
                error_type=e.error_type.value,
                error=str(e),
            )

        account = BankAccount(
            id=uuid.uuid4(),
            user_id=user_id,
            account_number=account_number,
            bank_code=bank_code,
            bank_name=bank_name,
            account_name=resolved_name,
            is_verified=is_verified,
            is_default=False,
        )

        async with self.session_factory() as db:
            try:
                db.add(account)
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError("This bank account is already registered")

        became_default = False
        for attempt in range(2):
            async with self.session_factory() as db:
                try:
                    became_default = await self._claim_default(db, account)
                    await db.commit()
                    break
                except IntegrityError:
                    await db.rollback()
                    # A concurrent create claimed the default first; retry sees it
                    if attempt == 1:
                        raise

        async with self.session_factory() as db:
            account = await db.get(BankAccount, account.id)

        logger.info(
            "bank_account_created",
            user_id=str(user_id),
            account_id=str(account.id),
            is_verified=is_verified,
            is_default=became_default,
        )
        return account

    async def verify(
        self,
        account_id: uuid.UUID,
        requester_id: uuid.UUID,
        account_number: str,
        bank_code: str,
    ) -> BankAccount:
        """
        Re-resolve an account through the gateway and mark it verified.

        Raises:
            NotFoundError: Unknown account
            ForbiddenError: Caller does not own the account
            ValidationError: Details do not match the stored account
            VerificationFailedError: Gateway could not resolve the account
        """
        _validate_details(account_number, bank_code)

        async with self.session_factory() as db:
            account = await self._owned(db, account_id, requester_id)
        if account.account_number != account_number or account.bank_code != bank_code:
            raise ValidationError(
                "Account details do not match this bank account", resource_id=account_id
            )

        try:
            resolved = await self.gateway.resolve_account(account_number, bank_code)
        except GatewayError as e:
            logger.warning(
                "bank_account_verification_failed",
                account_id=str(account_id),
                error_type=e.error_type.value,
                error=str(e),
            )
            raise VerificationFailedError("Account verification failed", resource_id=account_id)

        async with self.session_factory() as db:
            await db.execute(
                update(BankAccount)
                .where(BankAccount.id == account_id)
                .values(account_name=resolved.account_name, is_verified=True)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
            account = await db.get(BankAccount, account_id, populate_existing=True)

        logger.info("bank_account_verified", account_id=str(account_id))
        return account

    async def remove(self, account_id: uuid.UUID, requester_id: uuid.UUID) -> None:
        """
        Delete an account, promoting the oldest remaining one if it was the default.

        Raises:
            NotFoundError: Unknown account
            ForbiddenError: Caller does not own the account
        """
        async with self.session_factory() as db:
            try:
                account = await self._owned(db, account_id, requester_id)
                accounts = await self._lock_user_accounts(db, account.user_id)
                was_default = account.is_default
                await db.delete(account)
                await db.flush()

                promoted = None
                if was_default:
                    remaining = [a for a in accounts if a.id != account_id]
                    if remaining:
                        promoted = remaining[0]
                        promoted.is_default = True
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "bank_account_removed",
            account_id=str(account_id),
            promoted_account_id=str(promoted.id) if promoted else None,
        )

    async def set_default(self, account_id: uuid.UUID, requester_id: uuid.UUID) -> BankAccount:
        """
        Make an account the user's only default.

        Raises:
            NotFoundError: Unknown account
            ForbiddenError: Caller does not own the account
        """
        async with self.session_factory() as db:
            try:
                account = await self._owned(db, account_id, requester_id)
                await self._lock_user_accounts(db, account.user_id)
                # Clear first so the partial unique index never sees two defaults
                await db.execute(
                    update(BankAccount)
                    .where(
                        BankAccount.user_id == account.user_id,
                        BankAccount.is_default.is_(True),
                        BankAccount.id != account_id,
                    )
                    .values(is_default=False)
                    .execution_options(synchronize_session=False)
                )
                await db.execute(
                    update(BankAccount)
                    .where(BankAccount.id == account_id)
                    .values(is_default=True)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
                account = await db.get(BankAccount, account_id, populate_existing=True)
            except Exception:
                await db.rollback()
                raise

        logger.info("bank_account_default_set", account_id=str(account_id))
        return account

    async def list_accounts(self, user_id: uuid.UUID) -> List[BankAccount]:
        """A user's accounts: default first, then newest."""
        async with self.session_factory() as db:
            stmt = (
                select(BankAccount)
                .where(BankAccount.user_id == user_id)
                .order_by(BankAccount.is_default.desc(), BankAccount.created_at.desc())
            )
            return list((await db.execute(stmt)).scalars().all())

    async def get(self, account_id: uuid.UUID, requester_id: uuid.UUID) -> BankAccount:
        async with self.session_factory() as db:
            return await self._owned(db, account_id, requester_id)

    @staticmethod
    def supported_banks() -> List[Dict[str, str]]:
        return supported_banks()
