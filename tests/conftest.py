from __future__ import annotations

from typing import Any

import pytest

from station_dashboard.config import Settings


@pytest.fixture()
def settings() -> Settings:
    """Settings with no configured ids and no pacing delay."""

    value = Settings()
    value.discovery.station_ids = []
    value.batching.inter_batch_delay_seconds = 0.0
    return value


@pytest.fixture()
def station_payload() -> dict[str, Any]:
    return {
        "code": 200,
        "arrResponse": {
            "Nome": "Estação Centro",
            "Última Leitura": "18/11/2025 08:28:44",
            "Temperatura": "28,6 °C",
            "Umidade": "70 %",
            "Pressão Atmosférica": "1015 hPa",
        },
    }
