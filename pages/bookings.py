"""预订与租约页面"""
import datetime
import streamlit as st
import pandas as pd
from models import SessionLocal
from models.entities import RENTAL_STATUSES, ROOM_AVAILABLE, PAYMENT_PENDING
from services.booking import (
    BookingService, create_booking, approve_booking, activate_booking,
    complete_booking, reject_booking, cancel_booking,
)
from services.gate import AuthorizationGate
from services.payment import submit_payment, confirm_payment, reject_payment
from services.room import RoomService
from utils.helpers import format_money, mask_phone
from .common import run_action, load_actor

PAY_METHODS = ["银行转账", "现金", "PromptPay"]


def _booking_rows(s, rentals, is_admin):
    rows = []
    for r in rentals:
        tenant = r.tenant_information
        rows.append({
            "ID": r.id, "合同号": r.contract_number, "房间": r.room.name if r.room else "",
            "租客": tenant.full_name if tenant else "",
            "电话": mask_phone(tenant.phone_number, is_admin) if tenant else "",
            "身份证": tenant.masked_id_card if tenant else "",
            "起租": r.start_date, "到期": r.end_date, "状态": r.status,
            "总价": format_money(r.total_price),
            "已付": format_money(BookingService.total_paid(s, r)),
            "待付": format_money(BookingService.remaining_balance(s, r)),
        })
    return pd.DataFrame(rows)


def page_bookings(user, role):
    """管理员预订审批"""
    st.title("📋 预订管理")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not (gate.has_permission('view-bookings') or gate.has_role('admin')):
            st.error("⛔️ 权限不足")
            return

        c1, c2 = st.columns(2)
        status = c1.selectbox("状态", ["全部"] + list(RENTAL_STATUSES))
        search = c2.text_input("搜索", placeholder="合同号 / 姓名 / 电话")
        rentals = BookingService.list_bookings(s, status=None if status == "全部" else status, search=search or None)
        if not rentals:
            st.info("暂无预订")
            return
        st.dataframe(_booking_rows(s, rentals, gate.has_role('admin')), use_container_width=True, hide_index=True)

        r_map = {f"{r.contract_number} ({r.status})": r for r in rentals}
        curr = r_map[st.selectbox("选择租约", list(r_map.keys()))]
        b1, b2, b3, b4, b5 = st.columns(5)
        if b1.button("✅ 批准", use_container_width=True):
            run_action("批准预订", approve_booking, curr.id)
        if b2.button("❌ 拒绝", use_container_width=True):
            run_action("拒绝预订", reject_booking, curr.id)
        if b3.button("🔑 入住生效", use_container_width=True):
            run_action("租约生效", activate_booking, curr.id)
        if b4.button("🏁 结束", use_container_width=True):
            run_action("结束租约", complete_booking, curr.id)
        if b5.button("🚫 取消", use_container_width=True):
            run_action("取消租约", cancel_booking, curr.id)

        st.markdown("### 💳 付款记录")
        if curr.payments:
            st.dataframe(pd.DataFrame([{
                "ID": p.id, "金额": format_money(p.amount), "日期": p.payment_date,
                "方式": p.payment_method, "状态": p.status,
            } for p in curr.payments]), use_container_width=True, hide_index=True)
            pending = [p for p in curr.payments if p.status == PAYMENT_PENDING]
            if pending and gate.has_permission('manage-invoices'):
                p_map = {f"#{p.id} {format_money(p.amount)}": p for p in pending}
                sel = p_map[st.selectbox("待确认付款", list(p_map.keys()))]
                p1, p2 = st.columns(2)
                if p1.button("确认到账"):
                    run_action("确认付款", confirm_payment, sel.id)
                if p2.button("驳回付款"):
                    run_action("驳回付款", reject_payment, sel.id)
        else:
            st.caption("暂无付款")
    finally:
        s.close()


def page_book_room(user, role):
    """租客提交预订"""
    st.title("🛏️ 预订房间")
    s = SessionLocal()
    try:
        rooms = RoomService.list_rooms(s, ROOM_AVAILABLE)
        if not rooms:
            st.info("暂无可预订房间")
            return
        r_map = {f"{r.name} - {format_money(r.price_per_month)}/月": r for r in rooms}
        room = r_map[st.selectbox("房间", list(r_map.keys()))]
        today = datetime.date.today()

        with st.form("book_room"):
            st.markdown("#### 租期")
            c1, c2 = st.columns(2)
            start_date = c1.date_input("起租日", value=today)
            end_date = c2.date_input("到期日", value=today + datetime.timedelta(days=30))
            c1, c2 = st.columns(2)
            deposit = c1.number_input("押金", min_value=0.0, step=500.0)
            advance = c2.number_input("预付租金", min_value=0.0, step=500.0)

            st.markdown("#### 租客信息")
            c1, c2 = st.columns(2)
            first_name = c1.text_input("名")
            last_name = c2.text_input("姓")
            id_card = c1.text_input("身份证号", max_chars=13)
            dob = c2.date_input("出生日期", value=datetime.date(1990, 1, 1), min_value=datetime.date(1900, 1, 1))
            address = st.text_input("现住址")
            c1, c2, c3, c4 = st.columns(4)
            province = c1.text_input("府")
            district = c2.text_input("县")
            sub_district = c3.text_input("区")
            postal_code = c4.text_input("邮编", max_chars=5)
            c1, c2, c3 = st.columns(3)
            phone = c1.text_input("电话", max_chars=10)
            email = c2.text_input("邮箱")
            line_id = c3.text_input("Line ID")
            c1, c2, c3 = st.columns(3)
            ec_name = c1.text_input("紧急联系人")
            ec_rel = c2.text_input("关系")
            ec_phone = c3.text_input("联系人电话", max_chars=10)
            c1, c2, c3 = st.columns(3)
            occupation = c1.text_input("职业")
            workplace = c2.text_input("工作单位")
            income = c3.number_input("月收入", min_value=0.0, step=1000.0)
            special = st.text_area("特别约定", max_chars=1000)
            notes = st.text_area("备注", max_chars=500)

            if st.form_submit_button("📨 提交预订", type="primary", use_container_width=True):
                run_action("提交预订", create_booking, {
                    "room_id": room.id, "start_date": start_date, "end_date": end_date,
                    "deposit_amount": str(deposit), "advance_payment": str(advance),
                    "special_conditions": special or None, "notes": notes or None,
                    "tenant": {
                        "first_name": first_name, "last_name": last_name,
                        "id_card_number": id_card, "date_of_birth": dob,
                        "current_address": address, "province": province, "district": district,
                        "sub_district": sub_district, "postal_code": postal_code,
                        "phone_number": phone, "email": email or None, "line_id": line_id or None,
                        "emergency_contact_name": ec_name, "emergency_contact_relationship": ec_rel,
                        "emergency_contact_phone": ec_phone, "occupation": occupation,
                        "workplace": workplace or None, "monthly_income": str(income) if income else None,
                    },
                })
    finally:
        s.close()


def page_my_bookings(user, role):
    """租客查看自己的预订、取消与付款"""
    st.title("🧾 我的预订")
    s = SessionLocal()
    try:
        actor = load_actor(s)
        rentals = BookingService.list_bookings(s, user_id=actor.id)
        if not rentals:
            st.info("暂无预订")
            return
        st.dataframe(_booking_rows(s, rentals, True), use_container_width=True, hide_index=True)

        r_map = {f"{r.contract_number} ({r.status})": r for r in rentals}
        curr = r_map[st.selectbox("选择预订", list(r_map.keys()))]
        if st.button("🚫 取消预订", disabled=curr.status != 'pending'):
            run_action("取消预订", cancel_booking, curr.id)

        with st.form("submit_payment"):
            st.markdown(f"#### 付款（待付 {format_money(BookingService.remaining_balance(s, curr))}）")
            amount = st.number_input("金额", min_value=0.0, step=100.0)
            method = st.selectbox("方式", PAY_METHODS)
            slip = st.text_input("转账凭证路径")
            if st.form_submit_button("提交付款"):
                run_action("提交付款", submit_payment, curr.id, str(amount), method,
                           slip_image_path=slip or None)
    finally:
        s.close()
