from datetime import date

import numpy as np
import pytest

from procurement.sample_data import COUNTRIES, PARTS, VENDORS, generate_sample_data


def test_seeded_generation_is_reproducible():
    first = generate_sample_data(60, rng=np.random.default_rng(42), today=date(2024, 6, 1))
    second = generate_sample_data(60, rng=np.random.default_rng(42), today=date(2024, 6, 1))

    assert first == second, "Same seed and date should give identical records"


def test_count_is_an_upper_bound():
    for count in (1, 14, 100, 150):
        records = generate_sample_data(count, rng=np.random.default_rng(count))
        assert 0 < len(records) <= count


def test_values_come_from_vocabularies():
    records = generate_sample_data(150, rng=np.random.default_rng(1))

    assert {r.part_number for r in records} <= set(PARTS)
    assert {r.vendor for r in records} <= set(VENDORS)
    assert {r.country for r in records} <= set(COUNTRIES)
    assert all(r.quantity >= 100 and r.quantity < 1100 for r in records)
    assert all(r.usd_price > 0 for r in records)
    assert len({r.id for r in records}) == len(records), "Record ids should be unique"


def test_dates_are_month_starts_ending_this_month():
    today = date(2024, 3, 20)
    records = generate_sample_data(100, rng=np.random.default_rng(5), today=today)
    dates = {r.date for r in records}

    assert all(d.endswith("-01") for d in dates)
    assert "2024-03-01" in dates
    assert max(dates) == "2024-03-01"
    # 100 // 14 = 7 months back, plus the current month
    assert min(dates) == "2023-08-01"


if __name__ == "__main__":
    pytest.main([__file__])
