# ui/app.py
from __future__ import annotations
import asyncio, logging, time
import streamlit as st
import pandas as pd
import altair as alt

from core.config import CFG
from core.schemas import TimeRange, Trend
from core.state import STORE, buy_ticker, sell_ticker, get_current_holdings, load_state_for_ui
from services.chart import build_render_model, coerce_series, time_axis_format
from services.order_entry import AmountInput, OrderSubmitter, format_holdings

logging.basicConfig(level=CFG.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")

RANGE_LABELS = {TimeRange.ALL: "All", TimeRange.LAST_24_HOURS: "24 hrs", TimeRange.LAST_HOUR: "1 hr"}

# ---------- page ----------
st.set_page_config(page_title=f"${CFG.TICKER_LABEL}", layout="wide")

# ---------- helpers ----------
def _notify(message: str) -> None:
    st.toast(message, icon="⚠️")

def _on_amount_change() -> None:
    # Streamlit commits text on enter/blur: run the edit, then the blur formatting
    inp: AmountInput = st.session_state.amount_input
    inp.edit(st.session_state.amount_text)
    st.session_state.amount_text = inp.blur()

def price_chart(model, time_range) -> alt.Chart:
    df = pd.DataFrame([p.model_dump() for p in model.filtered_series])
    df["ts"] = pd.to_datetime(df["date"], utc=True, errors="coerce", format="mixed")
    fmt = time_axis_format(time_range)
    y_min, y_max = model.axis_domain

    area = (
        alt.Chart(df)
        .mark_area(
            interpolate="monotone",
            line={"color": model.color_token},
            color=alt.Gradient(
                gradient="linear",
                stops=[alt.GradientStop(color=model.color_token, offset=0.05),
                       alt.GradientStop(color="rgba(255,255,255,0.1)", offset=0.95)],
                x1=1, x2=1, y1=0, y2=1,
            ),
        )
        .encode(
            x=alt.X("ts:T", title="", axis=alt.Axis(format=fmt, labelOverlap=True)),
            y=alt.Y("price:Q", title="", scale=alt.Scale(domain=[y_min, y_max], clamp=True),
                    axis=alt.Axis(format=".2f")),
            tooltip=[alt.Tooltip("ts:T", title="Date", format=fmt),
                     alt.Tooltip("price:Q", title="Price", format=",.3f")],
        )
    )
    if not model.delta_markers:
        return area.properties(height=250, width="container")

    dm = pd.DataFrame([{"date": m.date, "direction": m.direction.value} for m in model.delta_markers])
    dm["ts"] = pd.to_datetime(dm["date"], utc=True, errors="coerce", format="mixed")
    rules = (
        alt.Chart(dm)
        .mark_rule(strokeDash=[3, 3], opacity=0.4)
        .encode(
            x="ts:T",
            color=alt.Color("direction:N", legend=None,
                            scale=alt.Scale(domain=[Trend.UP.value, Trend.DOWN.value],
                                            range=["#22c55e", "#ef4444"])),
        )
    )
    return alt.layer(rules, area).properties(height=250, width="container")


# =========================================================
# Display parameters
# =========================================================
STORE.ensure_ticker(CFG.TICKER)
state = load_state_for_ui()
tickers = sorted((state.get("series") or {}).keys()) or [CFG.TICKER]

with st.sidebar:
    ticker = st.selectbox("Ticker", tickers,
                          index=tickers.index(CFG.TICKER) if CFG.TICKER in tickers else 0)
    default_range = TimeRange.parse(CFG.TIME_RANGE) or TimeRange.ALL
    ranges = list(RANGE_LABELS)
    time_range = st.radio("Range", ranges, index=ranges.index(default_range),
                          format_func=RANGE_LABELS.get, horizontal=True)
    show_markers = st.toggle("Show buy/sell lines", value=CFG.SHOW_DELTA_MARKERS)

label = CFG.TICKER_LABEL if ticker == CFG.TICKER else ticker
series = coerce_series((state.get("series") or {}).get(ticker, []))
model = build_render_model(series, time_range, show_markers)

# ---------- header ----------
left, right = st.columns([3, 1])
with left:
    st.title(f"${label}")
    if CFG.TEAM_MEMBERS:
        st.caption(CFG.TEAM_MEMBERS)
    if model.last_price is not None:
        tone = "red" if model.trend == Trend.DOWN else "green"
        st.markdown(f"### :{tone}[{model.last_price:.3f} BRDG] <small>per token</small>",
                    unsafe_allow_html=True)
with right:
    if CFG.TEAM_IMAGES:
        st.image(CFG.TEAM_IMAGES, width=32,
                 caption=[f"Team member {i + 1}" for i in range(len(CFG.TEAM_IMAGES))])

# ---------- chart ----------
if model.filtered_series:
    st.altair_chart(price_chart(model, time_range), width="stretch")
else:
    st.caption("No price points in this range.")

# ---------- order entry ----------
if "amount_input" not in st.session_state:
    st.session_state.amount_input = AmountInput()
    st.session_state.amount_text = ""

submitter = OrderSubmitter(buy=buy_ticker, sell=sell_ticker, notify=_notify)

c1, c2, c3, c4 = st.columns([2, 1, 1, 1])
with c1:
    st.text_input("Amount", key="amount_text", placeholder="$BRDG Coins",
                  on_change=_on_amount_change, label_visibility="collapsed")
amount = st.session_state.amount_input.value
with c2:
    if st.button("Buy", type="primary", width="stretch"):
        asyncio.run(submitter.buy(ticker, amount))
with c3:
    if st.button("Sell", width="stretch"):
        asyncio.run(submitter.sell(ticker, amount))
with c4:
    st.metric("Holdings", format_holdings(get_current_holdings(ticker)))

# ---------- controls ----------
if "auto_refresh" not in st.session_state:
    st.session_state.auto_refresh = True

st.session_state.auto_refresh = st.toggle("Auto-refresh every 2s", value=st.session_state.auto_refresh)

if st.session_state.auto_refresh:
    time.sleep(2)
    st.rerun()
