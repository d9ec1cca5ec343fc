"""房间档案页面"""
import streamlit as st
import pandas as pd
from models import SessionLocal
from models.entities import ROOM_STATUSES
from services.gate import AuthorizationGate
from services.room import RoomService, create_room, update_room
from utils.helpers import format_money
from .common import run_action, load_actor


def page_rooms(user, role):
    st.title("🏨 房间档案")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not gate.has_permission('view-rooms'):
            st.error("⛔️ 权限不足")
            return

        status = st.selectbox("状态筛选", ["全部"] + list(ROOM_STATUSES))
        rooms = RoomService.list_rooms(s, None if status == "全部" else status)
        if rooms:
            st.dataframe(pd.DataFrame([{
                "ID": r.id, "房间": r.name, "类型": r.type or "",
                "月租": format_money(r.price_per_month), "状态": r.status,
                "设施": ", ".join(r.amenities or []),
            } for r in rooms]), use_container_width=True, hide_index=True)
        else:
            st.info("暂无房间")

        if gate.has_permission('create-rooms'):
            with st.expander("➕ 新增房间"):
                with st.form("add_room"):
                    name = st.text_input("房间名", placeholder="必填，如 A101")
                    rtype = st.text_input("类型", placeholder="如 单人间")
                    price = st.number_input("月租", min_value=0.0, step=100.0)
                    description = st.text_area("描述")
                    amenities = st.text_input("设施", placeholder="逗号分隔，如 空调,热水器")
                    if st.form_submit_button("✅ 添加", use_container_width=True):
                        run_action("新增房间", create_room, {
                            "name": name, "type": rtype or None, "price_per_month": str(price),
                            "description": description or None,
                            "amenities": [a.strip() for a in amenities.split(",") if a.strip()],
                        })

        if rooms and gate.has_permission('edit-rooms'):
            with st.expander("✏️ 修改房间"):
                r_map = {r.name: r for r in rooms}
                curr = r_map[st.selectbox("选择房间", list(r_map.keys()))]
                with st.form("edit_room"):
                    price = st.number_input("月租", min_value=0.0, step=100.0, value=float(curr.price_per_month or 0))
                    new_status = st.selectbox("状态", list(ROOM_STATUSES), index=ROOM_STATUSES.index(curr.status))
                    if st.form_submit_button("💾 保存"):
                        run_action("修改房间", update_room, curr.id,
                                   {"price_per_month": str(price), "status": new_status})
    finally:
        s.close()
