"""Streamlit dashboard para as estações meteorológicas, com mapa e histórico."""

from __future__ import annotations

import os
from datetime import timedelta
from typing import Any

import folium
import pandas as pd
import plotly.express as px
import requests
import streamlit as st
from streamlit_folium import st_folium

from station_dashboard.data_pipeline.records import StationRecord
from station_dashboard.presentation import (
    DEFAULT_RECENCY_WINDOW,
    SENSOR_DISPLAY,
    format_reading_time,
    format_sensor_value,
    partition_by_status,
)

API_URL = os.environ.get("DASHBOARD_API_URL", "http://localhost:8000/api").rstrip("/")
REQUEST_TIMEOUT = 30


# Configuração de página
st.set_page_config(
    page_title="Estações Meteorológicas",
    page_icon="🌦️",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown(
    """
    <style>
    .main-header {
        font-size: 3rem;
        font-weight: 700;
        background: linear-gradient(90deg, #667eea 0%, #764ba2 100%);
        -webkit-background-clip: text;
        -webkit-text-fill-color: transparent;
        margin-bottom: 0.5rem;
    }
    .sub-header {
        font-size: 1.2rem;
        color: #666;
        margin-bottom: 2rem;
    }
    .stButton>button {
        width: 100%;
        background: linear-gradient(90deg, #667eea 0%, #764ba2 100%);
        color: white;
        font-weight: 600;
        border-radius: 8px;
        padding: 0.75rem;
        border: none;
    }
    </style>
    """,
    unsafe_allow_html=True,
)


def _get_json(path: str, **params: Any) -> Any:
    response = requests.get(f"{API_URL}{path}", params=params or None, timeout=REQUEST_TIMEOUT)
    response.raise_for_status()
    return response.json()


@st.cache_data(ttl=60)  # Atualização a cada minuto
def load_station_data() -> list[dict[str, Any]]:
    return _get_json("/dados")


@st.cache_data(ttl=60)
def load_locations() -> dict[str, dict[str, Any]]:
    try:
        return _get_json("/locations")
    except requests.RequestException:
        return {}


@st.cache_data(ttl=60)
def load_history(station_id: int, limit: int) -> pd.DataFrame:
    try:
        rows = _get_json(f"/historico/{station_id}", limite=limit)
    except requests.RequestException:
        return pd.DataFrame()
    return pd.DataFrame(rows)


def _coordinate(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def render_station_card(record: StationRecord, active: bool) -> None:
    with st.container(border=True):
        status = "🟢 Ativa" if active else "🔴 Desconectada"
        st.subheader(f"{record.name}")
        st.caption(f"{status} · ID {record.station_id}")
        if record.location:
            st.caption(f"📍 {record.location}")
        if record.is_error:
            st.error(record.error)
            return
        st.caption(f"🕒 {format_reading_time(record.timestamp)}")

        columns = st.columns(5)
        for index, (field_name, label, unit, decimals) in enumerate(SENSOR_DISPLAY):
            value = format_sensor_value(getattr(record, field_name), decimals)
            columns[index % 5].metric(label, value if value == "—" else f"{value} {unit}")


def create_station_map(
    records: list[StationRecord],
    locations: dict[str, dict[str, Any]],
    active_ids: set[int],
) -> folium.Map | None:
    """Place every station with known coordinates on a folium map."""
    points = []
    for record in records:
        location = locations.get(str(record.station_id)) or {}
        lat = _coordinate(location.get("latitude"))
        lon = _coordinate(location.get("longitude"))
        if lat is None or lon is None:
            continue
        points.append((record, location, lat, lon))

    if not points:
        return None

    center = [
        sum(point[2] for point in points) / len(points),
        sum(point[3] for point in points) / len(points),
    ]
    m = folium.Map(location=center, zoom_start=12, tiles="OpenStreetMap")

    for record, location, lat, lon in points:
        color = "green" if record.station_id in active_ids else "red"
        temperature = format_sensor_value(record.temperature, 1)
        popup_html = f"""
        <div style="width: 220px;">
            <h4>{location.get("nome") or record.name}</h4>
            <p>{location.get("endereco", "")}</p>
            <hr>
            <p><strong>🌡️ Temperatura:</strong> {temperature}°C</p>
            <p><strong>🕒</strong> {format_reading_time(record.timestamp)}</p>
        </div>
        """
        folium.Marker(
            location=[lat, lon],
            icon=folium.Icon(color=color, icon="cloud", prefix="glyphicon"),
            popup=folium.Popup(popup_html, max_width=300),
            tooltip=record.name,
        ).add_to(m)
    return m


def render_history(records: list[StationRecord]) -> None:
    st.header("📈 Histórico")
    options = {f"{record.name} ({record.station_id})": record.station_id for record in records}
    if not options:
        st.info("Nenhuma estação disponível")
        return

    col1, col2, col3 = st.columns([2, 2, 1])
    with col1:
        choice = st.selectbox("Estação", list(options))
    with col2:
        field_labels = {label: field_name for field_name, label, _unit, _decimals in SENSOR_DISPLAY}
        label = st.selectbox("Sensor", list(field_labels))
    with col3:
        limit = st.number_input("Leituras", min_value=10, max_value=1000, value=100, step=10)

    frame = load_history(options[choice], int(limit))
    field_name = field_labels[label]
    if frame.empty or field_name not in frame.columns or "timestamp" not in frame.columns:
        st.info("Sem histórico para esta estação")
        return

    frame = frame.assign(timestamp=pd.to_datetime(frame["timestamp"], utc=True, errors="coerce"))
    frame = frame.dropna(subset=["timestamp"]).sort_values("timestamp")
    fig = px.line(frame, x="timestamp", y=field_name, title=label, labels={"timestamp": "Hora"})
    st.plotly_chart(fig, use_container_width=True)


def main() -> None:
    """Main Streamlit app."""
    st.markdown('<h1 class="main-header">🌦️ Estações Meteorológicas</h1>', unsafe_allow_html=True)
    st.markdown(
        '<p class="sub-header">Leituras em tempo real das estações ativas</p>',
        unsafe_allow_html=True,
    )

    with st.sidebar:
        st.header("⚙️ Configuração")
        st.caption(f"API: {API_URL}")
        window_minutes = st.number_input(
            "Janela de atividade (min)",
            min_value=1,
            max_value=120,
            value=int(DEFAULT_RECENCY_WINDOW.total_seconds() // 60),
        )
        if st.button("🔄 Atualizar", type="primary"):
            st.cache_data.clear()
            st.rerun()

    try:
        payload = load_station_data()
    except requests.RequestException as error:
        st.error(f"❌ Erro ao carregar dados: {error}")
        return

    records = [StationRecord.from_dict(item) for item in payload]
    if not records:
        st.warning("⚠️ Nenhuma estação encontrada")
        return

    active, disconnected = partition_by_status(records, window=timedelta(minutes=window_minutes))

    col1, col2, col3 = st.columns(3)
    col1.metric("📍 Estações", len(records))
    col2.metric("🟢 Ativas", len(active))
    col3.metric("🔴 Desconectadas", len(disconnected))

    st.divider()

    tab_active, tab_disconnected, tab_map = st.tabs(
        [f"🟢 Ativas ({len(active)})", f"🔴 Desconectadas ({len(disconnected)})", "🗺️ Mapa"]
    )
    with tab_active:
        if not active:
            st.info("Nenhuma estação ativa no momento")
        for record in active:
            render_station_card(record, active=True)
    with tab_disconnected:
        if not disconnected:
            st.info("Todas as estações estão ativas")
        for record in disconnected:
            render_station_card(record, active=False)
    with tab_map:
        station_map = create_station_map(
            records, load_locations(), {record.station_id for record in active}
        )
        if station_map is None:
            st.info("Nenhuma estação com coordenadas cadastradas")
        else:
            st_folium(station_map, width=1200, height=600)

    st.divider()
    render_history(records)


if __name__ == "__main__":
    main()
