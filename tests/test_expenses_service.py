"""Store contract tests for the expense service, run against mongomock-motor."""
import pytest
from bson import ObjectId

from services import expenses_service
from services.errors import NotFoundError, ValidationError


async def _create(collection, date, amount, **extra):
    return await expenses_service.create_expense(collection, {"date": date, "amount": amount, **extra})


class TestCreate:

    async def test_create_then_get_by_date(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250, label="food")

        found = await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-05")

        assert len(found) == 1
        assert found[0].id == created.id
        assert found[0].amount == 250
        assert found[0].label == "food"
        assert ObjectId.is_valid(created.id)
        assert created.created_at is not None
        assert created.created_at == created.updated_at

    @pytest.mark.parametrize("payload", [
        {"amount": 10},
        {"date": "2025-09-05"},
        {"date": "2025-09-05", "amount": "10"},
        {"date": "not-a-date", "amount": 10},
        {"date": "2025-09-05", "amount": -1},
    ])
    async def test_invalid_payload_raises_validation_error(self, expenses_collection, payload):
        with pytest.raises(ValidationError):
            await expenses_service.create_expense(expenses_collection, payload)
        assert await expenses_collection.count_documents({}) == 0

    async def test_label_checked_against_allow_list(self, expenses_collection):
        allowed = frozenset({"food", "bills"})
        await expenses_service.create_expense(expenses_collection, {"date": "2025-09-05", "amount": 1, "label": "food"}, allowed)
        with pytest.raises(ValidationError):
            await expenses_service.create_expense(expenses_collection, {"date": "2025-09-05", "amount": 1, "label": "yachts"}, allowed)

    async def test_empty_label_passes_allow_list(self, expenses_collection):
        allowed = frozenset({"food", "bills"})
        created = await expenses_service.create_expense(expenses_collection, {"date": "2025-09-05", "amount": 1}, allowed)
        assert created.label == ""

    async def test_timestamps_are_stored_to_the_millisecond(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 1)

        assert created.created_at.microsecond % 1000 == 0
        stored = await expenses_collection.find_one({"_id": ObjectId(created.id)})
        assert stored["created_at"].replace(tzinfo=None) == created.created_at.replace(tzinfo=None)

    async def test_free_text_label_without_allow_list(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 1, label="anything goes")
        assert created.label == "anything goes"


class TestQueries:

    async def test_get_by_date_is_newest_first(self, expenses_collection):
        first = await _create(expenses_collection, "2025-09-05", 1)
        second = await _create(expenses_collection, "2025-09-05", 2)
        third = await _create(expenses_collection, "2025-09-05", 3)

        found = await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-05")

        assert [e.id for e in found] == [third.id, second.id, first.id]

    async def test_get_by_date_empty(self, expenses_collection):
        assert await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-05") == []

    async def test_get_by_date_rejects_malformed_date(self, expenses_collection):
        with pytest.raises(ValidationError):
            await expenses_service.get_expenses_by_date(expenses_collection, "yesterday")

    async def test_range_is_inclusive_on_both_ends(self, expenses_collection):
        for day in ["2025-08-31", "2025-09-01", "2025-09-15", "2025-09-30", "2025-10-01"]:
            await _create(expenses_collection, day, 1)

        found = await expenses_service.get_expenses_by_date_range(expenses_collection, "2025-09-01", "2025-09-30")

        assert [e.date for e in found] == ["2025-09-01", "2025-09-15", "2025-09-30"]

    async def test_open_range_returns_everything_in_date_order(self, expenses_collection):
        for day in ["2025-10-01", "2024-01-01", "2025-09-15"]:
            await _create(expenses_collection, day, 1)

        found = await expenses_service.get_expenses_by_date_range(expenses_collection, None, None)

        assert [e.date for e in found] == ["2024-01-01", "2025-09-15", "2025-10-01"]

    async def test_range_rejects_reversed_bounds(self, expenses_collection):
        with pytest.raises(ValidationError):
            await expenses_service.get_expenses_by_date_range(expenses_collection, "2025-09-30", "2025-09-01")

    async def test_month_is_grouped_by_date(self, expenses_collection):
        await _create(expenses_collection, "2025-09-01", 10)
        await _create(expenses_collection, "2025-09-15", 20)
        await _create(expenses_collection, "2025-10-01", 30)

        grouped = await expenses_service.get_expenses_for_month(expenses_collection, 2025, 9)

        assert set(grouped) == {"2025-09-01", "2025-09-15"}
        assert grouped["2025-09-15"][0].amount == 20

    async def test_category_totals(self, expenses_collection):
        await _create(expenses_collection, "2025-09-01", 10, label="food")
        await _create(expenses_collection, "2025-09-02", 15, label="food")
        await _create(expenses_collection, "2025-09-03", 100, label="bills")
        await _create(expenses_collection, "2025-10-03", 100, label="travel")

        totals = await expenses_service.get_category_totals(expenses_collection, 2025, 9)

        assert totals == {"food": 25, "bills": 100}


class TestSums:

    async def test_sum_is_zero_when_nothing_matches(self, expenses_collection):
        total = await expenses_service.sum_amount(expenses_collection, "2025-01-01", "2025-12-31")
        assert total == 0
        assert total is not None

    async def test_sum_over_range(self, expenses_collection):
        await _create(expenses_collection, "2025-09-01", 10.5)
        await _create(expenses_collection, "2025-09-30", 20)
        await _create(expenses_collection, "2025-10-01", 1000)

        assert await expenses_service.sum_amount(expenses_collection, "2025-09-01", "2025-09-30") == 30.5

    async def test_month_totals_add_up_to_year_total(self, expenses_collection):
        for day, amount in [("2024-02-29", 5), ("2024-01-31", 7), ("2024-12-31", 11), ("2024-06-15", 13), ("2025-01-01", 99)]:
            await _create(expenses_collection, day, amount)

        totals = await expenses_service.get_month_totals(expenses_collection, 2024)
        year_total = await expenses_service.sum_amount(expenses_collection, "2024-01-01", "2024-12-31")

        assert list(totals) == list(range(1, 13))
        assert sum(totals.values()) == year_total == 36
        assert totals[2] == 5

    async def test_month_totals_empty_year(self, expenses_collection):
        assert await expenses_service.get_month_totals(expenses_collection, 2031) == {m: 0 for m in range(1, 13)}


class TestUpdateAndDelete:

    async def test_update_changes_only_amount(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250, label="food", description="lunch")

        updated = await expenses_service.update_expense(expenses_collection, created.id, {"amount": 300})

        assert updated.amount == 300
        assert updated.id == created.id
        assert updated.date == created.date
        assert updated.label == created.label
        assert updated.description == created.description

    async def test_update_can_move_expense_to_another_date(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250)

        await expenses_service.update_expense(expenses_collection, created.id, {"date": "2025-09-06"})

        assert await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-05") == []
        assert len(await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-06")) == 1

    async def test_update_with_no_fields_returns_record(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250)
        unchanged = await expenses_service.update_expense(expenses_collection, created.id, {})
        assert unchanged.amount == 250

    async def test_update_rejects_invalid_amount(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250)
        with pytest.raises(ValidationError):
            await expenses_service.update_expense(expenses_collection, created.id, {"amount": "lots"})

    async def test_update_unknown_id(self, expenses_collection):
        with pytest.raises(NotFoundError):
            await expenses_service.update_expense(expenses_collection, str(ObjectId()), {"amount": 1})

    async def test_update_malformed_id(self, expenses_collection):
        with pytest.raises(NotFoundError):
            await expenses_service.update_expense(expenses_collection, "not-an-id", {"amount": 1})

    async def test_delete_then_second_delete_fails(self, expenses_collection):
        created = await _create(expenses_collection, "2025-09-05", 250)
        other = await _create(expenses_collection, "2025-09-05", 10)

        assert await expenses_service.delete_expense(expenses_collection, created.id) == {"ok": True}

        remaining = await expenses_service.get_expenses_by_date(expenses_collection, "2025-09-05")
        assert [e.id for e in remaining] == [other.id]
        with pytest.raises(NotFoundError):
            await expenses_service.delete_expense(expenses_collection, created.id)


class TestExport:

    async def test_csv_has_header_and_quotes_descriptions(self, expenses_collection):
        await _create(expenses_collection, "2025-09-02", 12.5, label="food", description='pizza, "extra" cheese')
        await _create(expenses_collection, "2025-09-01", 100, label="bills")

        content = await expenses_service.export_expenses_csv(expenses_collection)

        lines = content.strip().split("\n")
        assert lines[0] == "Date,Amount,Category,Description"
        assert lines[1] == "2025-09-01,100,bills,"
        assert lines[2] == '2025-09-02,12.5,food,"pizza, ""extra"" cheese"'

    async def test_csv_for_empty_collection_is_header_only(self, expenses_collection):
        assert await expenses_service.export_expenses_csv(expenses_collection) == "Date,Amount,Category,Description\n"
