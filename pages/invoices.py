"""账单页面"""
import datetime
import streamlit as st
import pandas as pd
from models import SessionLocal
from models.entities import INVOICE_STATUSES, INVOICE_UNPAID
from services.booking import BookingService
from services.electricity import ElectricityService
from services.gate import AuthorizationGate
from services.invoice import (
    InvoiceGenerator, days_until_due, generate_monthly_invoices, create_manual_invoice,
    mark_invoice_paid, sweep_overdue,
)
from utils.helpers import format_money
from .common import run_action, load_actor


def _invoice_frame(invoices):
    return pd.DataFrame([{
        "ID": i.id, "账单号": i.invoice_number,
        "合同号": i.rental.contract_number if i.rental else "",
        "开具": i.issue_date, "到期": i.due_date,
        "房租": format_money(i.room_rent), "电费": format_money(i.electricity_charge),
        "水费": format_money(i.water_charge), "合计": format_money(i.total_amount),
        "状态": i.status,
        "剩余天数": days_until_due(i) if i.status == INVOICE_UNPAID else "",
    } for i in invoices])


def page_invoices(user, role):
    st.title("🧾 账单管理")
    s = SessionLocal()
    try:
        gate = AuthorizationGate(s, load_actor(s))
        if not (gate.has_permission('view-invoices') or gate.has_role('admin')):
            st.error("⛔️ 权限不足")
            return
        can_manage = gate.has_permission('manage-invoices') or gate.has_role('admin')
        generator = InvoiceGenerator(s)

        tabs = ["📋 账单列表"] + (["⚙️ 月度生成", "✍️ 手工开票"] if can_manage else [])
        t = st.tabs(tabs)
        with t[0]:
            status = st.selectbox("状态", ["全部"] + list(INVOICE_STATUSES))
            invoices = generator.query(status=None if status == "全部" else status)
            overdue = generator.get_overdue_invoices()
            if overdue:
                st.warning(f"⚠️ {len(overdue)} 张账单已过期未付")
            if invoices:
                st.dataframe(_invoice_frame(invoices), use_container_width=True, hide_index=True)
            else:
                st.info("暂无账单")
            if can_manage:
                unpaid = [i for i in invoices if i.status != 'paid']
                c1, c2 = st.columns(2)
                if unpaid:
                    i_map = {f"{i.invoice_number} {format_money(i.total_amount)}": i for i in unpaid}
                    sel = i_map[c1.selectbox("账单", list(i_map.keys()))]
                    if c1.button("✅ 标记已付"):
                        run_action("账单收款", mark_invoice_paid, sel.id)
                if c2.button("⏰ 逾期扫描"):
                    run_action("逾期扫描", sweep_overdue)

        if can_manage:
            with t[1]:
                today = datetime.date.today()
                c1, c2 = st.columns(2)
                year = c1.number_input("年", min_value=2000, max_value=2100, value=today.year, step=1)
                month = c2.number_input("月", min_value=1, max_value=12, value=today.month, step=1)
                if st.button("🚀 生成月度账单", type="primary"):
                    result = run_action("生成月度账单", generate_monthly_invoices, int(year), int(month), rerun=False)
                    if result:
                        st.write(f"共生成 {result['invoices_generated']} 张: {', '.join(result['invoice_numbers'])}")
                        for err in result["errors"]:
                            st.error(f"{err['room_name']} (租约 {err['rental_id']}): {err['error']}")

            with t[2]:
                rentals = BookingService.billable(s)
                if not rentals:
                    st.info("暂无可开票租约")
                else:
                    r_map = {f"{r.contract_number} - {r.room.name}": r for r in rentals}
                    rental = r_map[st.selectbox("租约", list(r_map.keys()))]
                    usages = ElectricityService.unbilled(s, rental.room_id)
                    u_map = {"不关联": None}
                    u_map.update({f"{u.reading_date} 用量 {u.units_used}": u for u in usages})
                    with st.form("manual_invoice"):
                        rent = st.number_input("房租", min_value=0.0, value=float(rental.monthly_rent or 0))
                        electricity = st.number_input("电费", min_value=0.0)
                        water = st.number_input("水费", min_value=0.0)
                        usage = u_map[st.selectbox("关联读数", list(u_map.keys()))]
                        if st.form_submit_button("✍️ 开具"):
                            run_action("手工开具账单", create_manual_invoice, rental.id, str(rent),
                                       str(electricity), str(water),
                                       electricity_usage_id=usage.id if usage else None)
    finally:
        s.close()


def page_my_invoices(user, role):
    st.title("💡 我的账单")
    s = SessionLocal()
    try:
        actor = load_actor(s)
        invoices = InvoiceGenerator(s).invoices_for_user(actor.id)
        if not invoices:
            st.info("暂无账单")
            return
        st.dataframe(_invoice_frame(invoices), use_container_width=True, hide_index=True)
        due = [i for i in invoices if i.status != 'paid']
        if due:
            total = sum(i.total_amount for i in due)
            st.markdown(f"#### 待付合计: :red[{format_money(total)}]")
    finally:
        s.close()
