"""抄表与费率页面"""
import datetime
import streamlit as st
import pandas as pd
from models import SessionLocal
from services.electricity import ElectricityService, record_reading
from services.gate import AuthorizationGate
from services.room import RoomService
from services.utility_rate import UtilityRateRegistry, update_rates
from utils.helpers import format_money
from .common import run_action, load_actor


def page_electricity(user, role):
    st.title("⚡ 电表抄表")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not gate.has_permission('manage-utilities'):
            st.error("⛔️ 权限不足")
            return
        rooms = RoomService.list_rooms(s)
        if not rooms:
            st.warning("暂无房间")
            return

        t1, t2 = st.tabs(["📝 录入读数", "📜 读数记录"])
        with t1:
            r_map = {r.name: r for r in rooms}
            room = r_map[st.selectbox("房间", list(r_map.keys()))]
            latest = ElectricityService.get_latest_for_room(s, room.id)
            prev = latest.current_units if latest else 0
            st.caption(f"上次读数: {prev}" + (f"（{latest.reading_date}）" if latest else ""))
            with st.form("reading"):
                reading_date = st.date_input("抄表日期", value=datetime.date.today())
                current = st.number_input("本次读数", min_value=0, step=1, value=int(prev))
                if st.form_submit_button("✅ 保存", type="primary"):
                    run_action("抄表录入", record_reading, room.id, reading_date, int(current))

        with t2:
            billed = st.radio("计费状态", ["全部", "未计费", "已计费"], horizontal=True)
            flag = {"全部": None, "未计费": False, "已计费": True}[billed]
            usages = ElectricityService.query(s, billed=flag)
            rate = UtilityRateRegistry(s).get_electricity_rate()
            if usages:
                st.dataframe(pd.DataFrame([{
                    "房间": u.room.name, "日期": u.reading_date, "上次": u.previous_units,
                    "本次": u.current_units, "用量": u.units_used,
                    "电费(现价)": format_money(ElectricityService.calculate_charge(u, rate)),
                    "已计费": "是" if u.is_billed else "否",
                } for u in usages]), use_container_width=True, hide_index=True)
            else:
                st.info("暂无记录")
    finally:
        s.close()


def page_utility_settings(user, role):
    st.title("⚙️ 水电费率")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not gate.has_permission('manage-utilities'):
            st.error("⛔️ 权限不足")
            return
        registry = UtilityRateRegistry(s)
        c1, c2 = st.columns(2)
        c1.metric("电费单价 / 度", format_money(registry.get_electricity_rate()))
        c2.metric("水费 / 月", format_money(registry.get_water_rate()))
        s.commit()

        with st.form("rates"):
            electricity = st.number_input("电费单价", min_value=0.0, step=0.5,
                                          value=float(registry.get_electricity_rate()))
            water = st.number_input("水费包月", min_value=0.0, step=10.0,
                                    value=float(registry.get_water_rate()))
            if st.form_submit_button("💾 保存", type="primary"):
                run_action("更新费率", update_rates, {
                    "electricity_rate_per_unit": str(electricity),
                    "water_flat_rate": str(water),
                })
    finally:
        s.close()
