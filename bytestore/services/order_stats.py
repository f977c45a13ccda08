# bytestore/services/order_stats.py
"""
Read-only aggregates over order and status-history rows.

Rows come from OrderRepository.order_rows / history_rows already scoped to
the caller; everything here is pure DataFrame work and never touches state.
"""
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from bytestore.core.state_machine import STATE_ORDER, STATE_RANK

ORDER_COLUMNS = ["order_id", "state", "total", "paid_at"]
HISTORY_COLUMNS = ["id", "order_id", "new_state", "changed_at"]
TREND_MONTHS = 6


def _orders_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(list(rows), columns=ORDER_COLUMNS)
    df["total"] = df["total"].astype(float)
    return df


def _history_frame(rows: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame(list(rows), columns=HISTORY_COLUMNS)


def state_summary(order_rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """count / sum / mean of totals per state, in STATE_ORDER."""
    df = _orders_frame(order_rows)
    if df.empty:
        return []
    grouped = df.groupby("state")["total"].agg(["count", "sum", "mean"])
    out = []
    for state in STATE_ORDER:
        if state.value not in grouped.index:
            continue
        row = grouped.loc[state.value]
        out.append({
            "estado": state.value,
            "cantidad": int(row["count"]),
            "valor_total": round(float(row["sum"]), 2),
            "valor_promedio": round(float(row["mean"]), 2),
        })
    return out


def monthly_trends(order_rows: Iterable[Dict[str, Any]], now: Optional[datetime] = None,
                   months: int = TREND_MONTHS) -> List[Dict[str, Any]]:
    """Order counts per (YYYY-MM of paid_at, state) for the last `months` months, newest first."""
    df = _orders_frame(order_rows)
    if df.empty:
        return []
    cutoff = pd.Timestamp(now or datetime.utcnow()) - pd.DateOffset(months=months)
    df["paid_at"] = pd.to_datetime(df["paid_at"])
    recent = df.dropna(subset=["paid_at"])
    recent = recent[recent["paid_at"] >= cutoff]
    if recent.empty:
        return []
    recent = recent.assign(mes=recent["paid_at"].dt.strftime("%Y-%m"))
    counts = recent.groupby(["mes", "state"]).size().reset_index(name="cantidad")
    counts["rank"] = counts["state"].map(dict(STATE_RANK))
    counts = counts.sort_values(["mes", "rank"], ascending=[False, True])
    return [
        {"mes": r.mes, "estado": r.state, "cantidad": int(r.cantidad)}
        for r in counts.itertuples(index=False)
    ]


def average_dwell_hours(history_rows: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Mean hours between consecutive history entries of the same order,
    grouped by the state entered by the later entry. A state whose entries
    never have a predecessor reports None.
    """
    h = _history_frame(history_rows)
    if h.empty:
        return []
    h["changed_at"] = pd.to_datetime(h["changed_at"])
    h = h.sort_values(["order_id", "changed_at", "id"])
    previous = h.groupby("order_id")["changed_at"].shift(1)
    h["hours"] = (h["changed_at"] - previous).dt.total_seconds() / 3600.0
    means = h.dropna(subset=["hours"]).groupby("new_state")["hours"].mean()
    present = set(h["new_state"])
    out = []
    for state in STATE_ORDER:
        if state.value not in present:
            continue
        value = means.get(state.value)
        out.append({
            "estado": state.value,
            "horas_promedio": None if value is None or pd.isna(value) else round(float(value), 2),
        })
    return out


def order_summary(order_rows: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """Totals for GET /orders/stats."""
    df = _orders_frame(order_rows)
    counts = df["state"].value_counts()
    out: Dict[str, Any] = {"total_ordenes": int(len(df))}
    for state in STATE_ORDER:
        out[state.value] = int(counts.get(state.value, 0))
    out["total_gastado"] = round(float(df["total"].sum()), 2) if not df.empty else 0.0
    out["promedio_orden"] = round(float(df["total"].mean()), 2) if not df.empty else 0.0
    return out
