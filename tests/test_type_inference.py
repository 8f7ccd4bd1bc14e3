"""Tests for field statistics and column type inference."""

import pytest

from recordstage.core.enums import ColumnType
from recordstage.processors.statistics import (
    Counts,
    StatisticsCollector,
    is_uuid,
    looks_like_date_time,
)
from recordstage.processors.type_inference import (
    decode_camel_case,
    infer_columns,
    names_reference,
    select_column_type,
)

UUID_1 = "2b94c631-fca9-4892-a730-03ee529ffe2a"
UUID_2 = "5d9c7c53-d7a4-45d8-bc36-4f0c3c2d6c5b"


def collect(field_name, values):
    collector = StatisticsCollector()
    for value in values:
        collector.add_record({"id": "r", field_name: value})
    return collector


def column_type(field_name, values):
    return select_column_type(collect(field_name, values)[field_name], field_name)


class TestStatistics:

    def test_counts_scalar_kinds(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "n": 1, "f": 1.5, "b": True, "s": "x", "z": None})

        assert collector.records_seen == 1
        assert collector["n"].integer == 1 and collector["n"].number == 1
        assert collector["f"].floating == 1 and collector["f"].number == 1
        assert collector["b"].boolean == 1 and collector["b"].number == 0
        assert collector["s"].string == 1
        assert collector["z"].null == 1 and collector["z"].non_null == 0

    def test_objects_and_arrays_are_not_counted(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "o": {"a": 1}, "l": [1, 2]})

        assert "o" not in collector
        assert "l" not in collector
        assert len(collector) == 1

    def test_string_subkinds(self):
        counts = collect("when", ["2023-01-02T03:04:05.123+0000", UUID_1, "plain"])["when"]

        assert counts.string == 3
        assert counts.date_time == 1
        assert counts.uuid == 1

    def test_items_are_sorted_by_field_name(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "zeta": 1, "alpha": 2})

        assert [name for name, _ in collector.items()] == ["alpha", "id", "zeta"]

    @pytest.mark.parametrize("value,expected", [
        ("2023-01-02T03:04:05.123+0000", True),
        ("2023-01-02T03:04:05Z", True),
        ("2023-01-02", False),
        ("2023-01-02T03:04:05.123+00:00", False),
        ("2023-01-02T03:04:05", False),
        (" 2023-01-02T03:04:05Z", False),
    ])
    def test_date_time_shape(self, value, expected):
        assert looks_like_date_time(value) is expected

    def test_uuid_shape(self):
        assert is_uuid(UUID_1)
        assert is_uuid(UUID_1.upper())
        assert not is_uuid(UUID_1 + "0")
        assert not is_uuid("not-a-uuid")


class TestSelectColumnType:

    def test_all_integers_is_bigint(self):
        assert column_type("count", [1, 2, 3]) == ColumnType.BIGINT

    def test_mixed_integers_and_floats_is_numeric(self):
        assert column_type("price", [1, 2.5]) == ColumnType.NUMERIC

    def test_all_booleans_is_boolean(self):
        assert column_type("active", [True, False, None]) == ColumnType.BOOLEAN

    def test_booleans_mixed_with_numbers_is_varchar(self):
        assert column_type("flag", [True, 1]) == ColumnType.VARCHAR

    def test_only_nulls_is_varchar(self):
        assert column_type("empty", [None, None]) == ColumnType.VARCHAR
        assert select_column_type(Counts(), "never") == ColumnType.VARCHAR

    def test_uuids_in_reference_field_is_id(self):
        assert column_type("holdingsRecordId", [UUID_1, UUID_2, None]) == ColumnType.ID
        assert column_type("owner_id", [UUID_1]) == ColumnType.ID

    def test_uuids_in_plain_field_is_varchar(self):
        assert column_type("token", [UUID_1]) == ColumnType.VARCHAR

    def test_reference_field_with_non_uuid_is_varchar(self):
        assert column_type("patronGroupId", [UUID_1, "staff"]) == ColumnType.VARCHAR

    def test_date_times_is_timestamptz(self):
        values = ["2023-01-02T03:04:05.123+0000", "2024-05-06T07:08:09Z"]
        assert column_type("createdDate", values) == ColumnType.TIMESTAMPTZ

    def test_date_times_mixed_with_text_is_varchar(self):
        assert column_type("createdDate", ["2023-01-02T03:04:05Z", "yesterday"]) == ColumnType.VARCHAR

    def test_strings_mixed_with_numbers_is_varchar(self):
        assert column_type("code", ["a", 1]) == ColumnType.VARCHAR


class TestColumnNames:

    @pytest.mark.parametrize("name,expected", [
        ("materialTypeId", "material_type_id"),
        ("barcode", "barcode"),
        ("hridPrefix", "hrid_prefix"),
        ("ISBNNumber", "isbn_number"),
        ("already_snake", "already_snake"),
        ("address2Line", "address2_line"),
    ])
    def test_decode_camel_case(self, name, expected):
        assert decode_camel_case(name) == expected

    def test_names_reference(self):
        assert names_reference("itemId")
        assert names_reference("item_id")
        assert not names_reference("id")
        assert not names_reference("identifier")


class TestInferColumns:

    def test_columns_in_field_order_without_id(self):
        collector = StatisticsCollector()
        collector.add_record({"id": UUID_1, "updatedDate": "2023-01-02T03:04:05Z", "count": 1, "ownerId": UUID_2})

        columns = infer_columns("items", collector)

        assert [(c.column_name, c.source_column_name, c.column_type) for c in columns] == [
            ("count", "count", ColumnType.BIGINT),
            ("owner_id", "ownerId", ColumnType.ID),
            ("updated_date", "updatedDate", ColumnType.TIMESTAMPTZ),
        ]
        assert columns[1].has_companion_key
        assert columns[1].companion_key_name == "owner_id_sk"

    def test_names_colliding_with_fixed_columns_get_suffix(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "data": "x", "tenantId": 3, "sk": 1})

        names = {c.source_column_name: c.column_name for c in infer_columns("items", collector)}

        assert names == {"data": "data_", "tenantId": "tenant_id_", "sk": "sk_"}

    def test_decoded_names_colliding_with_each_other_get_suffix(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "itemName": "a", "item_name": "b"})

        names = [c.column_name for c in infer_columns("items", collector)]

        assert names == ["item_name", "item_name_"]

    def test_custom_selector(self):
        collector = StatisticsCollector()
        collector.add_record({"id": "1", "count": 1})

        columns = infer_columns("items", collector, selector=lambda counts, name: ColumnType.VARCHAR)

        assert columns[0].column_type == ColumnType.VARCHAR
