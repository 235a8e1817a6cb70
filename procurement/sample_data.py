"""
Synthetic procurement history for demos and outlier-filter exercises.

Each (part, vendor) pair walks backward month by month from the current
month. Prices carry a seasonal swing, a small monthly inflation drift,
uniform noise, and roughly one deliberate 2.5x outlier in every 25 rows.
"""

import logging
import uuid
from datetime import date
from typing import List, Optional

import numpy as np
import pandas as pd

from procurement.schemas import HistoricalRecord

logger = logging.getLogger(__name__)

PARTS = ["SKU-1001", "SKU-2045", "SKU-5098", "CHIP-M2", "BOLT-X9", "SENSOR-A7", "CABLE-CAT6"]
VENDORS = ["GlobalLogistics Inc", "AsiaDirect Mfg", "EuroParts SE", "TechSupply Co", "Vertex Systems"]
COUNTRIES = ["USA", "China", "Germany", "Vietnam", "Mexico", "India", "Brazil"]

OUTLIER_PROBABILITY = 0.04
OUTLIER_MULTIPLIER = 2.5


def _month_start(today: date, months_back: int) -> date:
    return (pd.Timestamp(today).to_period("M") - months_back).start_time.date()


def _record_id(rng: np.random.Generator) -> str:
    return str(uuid.UUID(bytes=rng.bytes(16), version=4))


def generate_sample_data(
    count: int = 100, rng: Optional[np.random.Generator] = None, today: Optional[date] = None
) -> List[HistoricalRecord]:
    """Generate roughly `count` synthetic records.

    Pass a seeded `numpy.random.Generator` for reproducible output. The result
    is truncated to `count`; it can also come up short, since every pair gets
    the same row budget regardless of how many vendors each part drew.
    """
    rng = rng if rng is not None else np.random.default_rng()
    today = today or date.today()

    combos = len(PARTS) * 2
    rows_per_combo = max(1, count // combos)
    data = []

    for part in PARTS:
        part_vendors = [VENDORS[rng.integers(len(VENDORS))]]
        if rng.random() > 0.5:
            part_vendors.append(VENDORS[rng.integers(len(VENDORS))])

        for vendor in part_vendors:
            country = COUNTRIES[rng.integers(len(COUNTRIES))]
            base_price = 40 + rng.random() * 300
            base_lead_time = 10 + rng.random() * 50

            for i in range(rows_per_combo, -1, -1):
                month = _month_start(today, i)
                seasonality = np.sin(((month.month - 1) / 11) * np.pi) * 15
                inflation = (rows_per_combo - i) * 0.5
                multiplier = OUTLIER_MULTIPLIER if rng.random() > 1 - OUTLIER_PROBABILITY else 1
                noise = rng.random() * 8 - 4

                data.append(
                    HistoricalRecord(
                        id=_record_id(rng),
                        part_number=part,
                        country=country,
                        vendor=vendor,
                        usd_price=round(float((base_price + seasonality + inflation + noise) * multiplier), 2),
                        quantity=int(rng.integers(100, 1100)),
                        lead_time_days=int(np.floor(base_lead_time + (rng.random() * 10 - 5))),
                        date=month.isoformat(),
                    )
                )

    logger.info(f"Generated {len(data)} sample rows, returning {min(count, len(data))}")
    return data[:count]
