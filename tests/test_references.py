"""
Tests for payment reference generation.
"""
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from community_payments.core.references import new_reference, reference_in_use
from community_payments.database.models import Payment

REFERENCE_PATTERN = re.compile(r"^MCB_[0-9A-F]{32}$")


class TestNewReference:
    """Test suite for reference minting."""

    @pytest.mark.unit
    def test_reference_format(self) -> None:
        reference = new_reference("MCB")

        assert REFERENCE_PATTERN.match(reference)

    @pytest.mark.unit
    def test_custom_prefix(self) -> None:
        assert new_reference("EVT").startswith("EVT_")

    @pytest.mark.unit
    def test_references_unique_over_many_draws(self) -> None:
        references = {new_reference() for _ in range(100_000)}

        assert len(references) == 100_000

    @pytest.mark.race
    def test_references_unique_under_concurrent_generation(self) -> None:
        """Threads minting at the same time never collide."""

        def mint_batch(_: int) -> list:
            return [new_reference() for _ in range(5_000)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            batches = list(pool.map(mint_batch, range(8)))

        references = [reference for batch in batches for reference in batch]
        assert len(references) == 40_000
        assert len(set(references)) == len(references)


class TestReferenceInUse:
    """Test suite for the uniqueness lookup."""

    @pytest.mark.asyncio
    async def test_matches_internal_and_external_reference(self, session_factory) -> None:
        payment = Payment(
            id=uuid.uuid4(),
            user_id=uuid.uuid4(),
            amount=Decimal("100"),
            currency="NGN",
            status="pending",
            type="other",
            reference="MCB_INTERNAL",
            external_reference="PSK_EXTERNAL",
        )
        async with session_factory() as db:
            db.add(payment)
            await db.commit()

        async with session_factory() as db:
            assert await reference_in_use(db, "MCB_INTERNAL")
            assert await reference_in_use(db, "PSK_EXTERNAL")
            assert not await reference_in_use(db, new_reference())
