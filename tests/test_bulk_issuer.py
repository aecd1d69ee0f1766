#!/usr/bin/env python3
"""
Code Generation and Bulk Issuance Tests

Tests for:
- Code template shape and charset
- Collision handling and code-space exhaustion
- Request validation (nothing submitted on failure)
- Sequential submission and per-code error collection
"""

import pytest
import re
import sys
import os
from unittest.mock import patch

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entitlements.bulk_issuer import BulkIssuer, BulkIssueRequest, generate_unique_codes
from entitlements.codes import CodeTemplate, generate_code
from entitlements.errors import CodeSpaceExhaustedError, ValidationError
from entitlements.models import EntityKind

from tests.conftest import RecordingStore

CODE_PATTERN = re.compile(r"^VOUCHER_[A-Z0-9]{6}$")


# ============================================================================
# CODE GENERATION
# ============================================================================

class TestCodeGeneration:
    """Tests for CodeTemplate / generate_code"""

    def test_default_shape(self):
        code = generate_code(CodeTemplate(prefix="VOUCHER"))
        assert CODE_PATTERN.match(code)

    def test_suffix(self):
        code = generate_code(CodeTemplate(prefix="PROMO", suffix="MAY", body_length=4))
        assert re.match(r"^PROMO_[A-Z0-9]{4}_MAY$", code)

    def test_custom_charset(self):
        code = generate_code(CodeTemplate(prefix="X", charset="AB", body_length=10))
        assert set(code[2:]) <= {"A", "B"}

    def test_invalid_template(self):
        with pytest.raises(ValueError):
            CodeTemplate(prefix="X", body_length=0)
        with pytest.raises(ValueError):
            CodeTemplate(prefix="X", charset="")

    def test_distinct_bodies(self):
        assert CodeTemplate(prefix="X", charset="AB", body_length=3).distinct_bodies == 8


class TestUniqueCodes:
    """Tests for generate_unique_codes"""

    def test_codes_are_distinct(self):
        codes = generate_unique_codes(CodeTemplate(prefix="VOUCHER"), 200)
        assert len(codes) == 200
        assert len(set(codes)) == 200

    def test_collisions_are_regenerated(self):
        """Duplicates drawn from the generator are replaced"""
        draws = iter(["VOUCHER_AAAAAA", "VOUCHER_AAAAAA", "VOUCHER_BBBBBB", "VOUCHER_CCCCCC"])
        with patch("entitlements.bulk_issuer.generate_code", side_effect=lambda t: next(draws)):
            codes = generate_unique_codes(CodeTemplate(prefix="VOUCHER"), 3)
        assert codes == ["VOUCHER_AAAAAA", "VOUCHER_BBBBBB", "VOUCHER_CCCCCC"]

    def test_excluded_codes_are_avoided(self):
        template = CodeTemplate(prefix="X", charset="AB", body_length=1)
        codes = generate_unique_codes(template, 1, exclude={"X_A"})
        assert codes == ["X_B"]

    def test_code_space_too_small(self):
        template = CodeTemplate(prefix="X", charset="AB", body_length=1)
        with pytest.raises(CodeSpaceExhaustedError):
            generate_unique_codes(template, 3)

    def test_gives_up_after_too_many_collisions(self):
        template = CodeTemplate(prefix="X", charset="AB", body_length=1)
        with pytest.raises(CodeSpaceExhaustedError):
            generate_unique_codes(template, 2, exclude={"X_A", "X_B"}, max_collisions=20)


# ============================================================================
# REQUEST VALIDATION
# ============================================================================

class TestBulkRequestValidation:
    """Invalid requests never reach the store"""

    @pytest.mark.asyncio
    async def test_count_over_limit_rejected(self, recording_store):
        """count=1001 fails with a count error and zero create calls"""
        issuer = BulkIssuer(recording_store)
        with pytest.raises(ValidationError) as exc_info:
            await issuer.issue_batch(BulkIssueRequest(package_key="daily", count=1001))

        assert "count" in exc_info.value.errors
        assert "1000" in exc_info.value.errors["count"]
        assert recording_store.create_calls == []

    @pytest.mark.asyncio
    async def test_zero_count_rejected(self, recording_store):
        with pytest.raises(ValidationError):
            await BulkIssuer(recording_store).issue_batch(BulkIssueRequest(package_key="daily", count=0))
        assert recording_store.create_calls == []

    def test_field_errors(self):
        errors = BulkIssueRequest(package_key=" ", value=-1, prefix="", max_uses=0).validate()
        assert set(errors) == {"packageKey", "value", "prefix", "maxUses"}

    @pytest.mark.asyncio
    async def test_non_finite_value_rejected(self, recording_store):
        """NaN and infinity are not voucher values"""
        for value in (float("nan"), float("inf"), float("-inf")):
            errors = BulkIssueRequest(package_key="daily", value=value).validate()
            assert errors == {"value": "Value must be a number"}

        with pytest.raises(ValidationError):
            await BulkIssuer(recording_store).issue_batch(
                BulkIssueRequest(package_key="daily", value=float("nan"), count=3)
            )
        assert recording_store.create_calls == []

    def test_type_follows_max_uses(self):
        assert BulkIssueRequest(package_key="d", max_uses=1).voucher_type.value == "single"
        assert BulkIssueRequest(package_key="d", max_uses=5).voucher_type.value == "bulk"


# ============================================================================
# ISSUANCE
# ============================================================================

class TestBulkIssue:
    """Tests for BulkIssuer.issue_batch"""

    @pytest.mark.asyncio
    async def test_ten_unique_codes(self, recording_store):
        """count=10 with prefix VOUCHER yields 10 distinct well-formed codes"""
        result = await BulkIssuer(recording_store).issue_batch(
            BulkIssueRequest(package_key="daily", value=50, count=10, prefix="VOUCHER")
        )

        assert len(result.codes) == 10
        assert len(set(result.codes)) == 10
        assert all(CODE_PATTERN.match(code) for code in result.codes)
        assert result.created_count == 10
        assert result.error_count == 0

        stored = await recording_store.list_entities(EntityKind.VOUCHER)
        assert sorted(r["code"] for r in stored) == sorted(result.codes)

    @pytest.mark.asyncio
    async def test_submissions_are_sequential_and_ordered(self, recording_store):
        result = await BulkIssuer(recording_store).issue_batch(
            BulkIssueRequest(package_key="daily", count=25)
        )
        assert recording_store.max_in_flight == 1
        assert [call["code"] for call in recording_store.create_calls] == result.codes

    @pytest.mark.asyncio
    async def test_payload_fields(self, recording_store):
        await BulkIssuer(recording_store).issue_batch(
            BulkIssueRequest(package_key=" weekly ", value=250, count=1, max_uses=5, notes="Event")
        )
        payload = recording_store.create_calls[0]
        assert payload["packageKey"] == "weekly"
        assert payload["value"] == 250.0
        assert payload["maxUses"] == 5
        assert payload["type"] == "bulk"
        assert payload["usedCount"] == 0
        assert payload["notes"] == "Event"

    @pytest.mark.asyncio
    async def test_failures_are_collected_not_raised(self):
        """One rejected code does not stop the rest of the batch"""
        draws = iter([f"VOUCHER_00000{i}" for i in range(5)])
        store = RecordingStore(fail_codes={"VOUCHER_000002"})

        with patch("entitlements.bulk_issuer.generate_code", side_effect=lambda t: next(draws)):
            result = await BulkIssuer(store).issue_batch(BulkIssueRequest(package_key="daily", count=5))

        assert len(result.codes) == 5
        assert result.created_count == 4
        assert result.error_count == 1
        assert result.errors[0].code == "VOUCHER_000002"
        assert len(store.create_calls) == 5

    @pytest.mark.asyncio
    async def test_every_code_returned_when_all_fail(self, failing_store):
        result = await BulkIssuer(failing_store).issue_batch(BulkIssueRequest(package_key="daily", count=3))
        assert len(result.codes) == 3
        assert result.created_count == 0
        assert {e.code for e in result.errors} == set(result.codes)

    @pytest.mark.asyncio
    async def test_existing_codes_avoided(self, recording_store):
        template_codes = {"X_A"}
        result = await BulkIssuer(recording_store).issue_batch(
            BulkIssueRequest(package_key="daily", count=1, prefix="X", body_length=1),
            existing_codes=template_codes,
        )
        assert result.codes[0] != "X_A"

    def test_result_dict(self):
        from entitlements.bulk_issuer import BatchResult, BatchError
        result = BatchResult(codes=["A", "B"], created=[{"code": "A"}], errors=[BatchError("B", "dup")])
        assert result.to_dict() == {
            "codes": ["A", "B"],
            "createdCount": 1,
            "errorCount": 1,
            "errors": [{"code": "B", "error": "dup"}],
        }
