# ui/quick_transaction.py
from __future__ import annotations

from datetime import date

import flet as ft

from services.errors import OfflineSyncError
from services.offline_mutation import OfflineMutation


class QuickTransactionEntry:
    """Minimal expense form; works the same online and offline."""

    def __init__(self, app):
        self.app = app
        self.mutation = OfflineMutation(
            app.context,
            mutation_fn=self._send,
            type="transaction",
            action="create",
            endpoint="/api/transactions",
            invalidate_keys=[("transactions",), ("dashboard",)],
            toast=app.show_toast_with_description,
        )

        self.amount = ft.TextField(label="Amount", width=140, keyboard_type=ft.KeyboardType.NUMBER)
        self.merchant = ft.TextField(label="Merchant", expand=True)
        self.category = ft.Dropdown(
            label="Category",
            width=180,
            options=[
                ft.dropdown.Option(name)
                for name in ("groceries", "dining", "transport", "shopping", "bills", "savings")
            ],
        )
        self.error_text = ft.Text("", color=ft.Colors.RED_400, visible=False)
        self.submit_btn = ft.ElevatedButton("Add", icon=ft.Icons.ADD, on_click=self.submit)

        self.view = ft.Column(
            [
                ft.Text("Quick transaction", size=18, weight=ft.FontWeight.W_600),
                ft.Row([self.amount, self.merchant, self.category], spacing=12),
                ft.Row([self.submit_btn, self.error_text], spacing=12),
            ],
            spacing=12,
        )

    def _send(self, variables):
        context = self.app.context
        context.replay_client.send(
            "transaction", "create", "/api/transactions", dict(variables), user_id=context.auth.user_id or ""
        )
        return variables

    def _read_form(self) -> dict | None:
        raw = (self.amount.value or "").replace(",", ".").strip()
        try:
            amount = float(raw)
        except ValueError:
            self._show_error("Enter an amount")
            return None
        if not self.category.value:
            self._show_error("Choose a category")
            return None
        payload = {
            "amount": amount,
            "category": self.category.value,
            "transaction_date": date.today().isoformat(),
        }
        if self.merchant.value:
            payload["merchant"] = self.merchant.value.strip()
        return payload

    def _show_error(self, text: str):
        self.error_text.value = text
        self.error_text.visible = True
        self.app.page.update()

    def submit(self, _):
        payload = self._read_form()
        if payload is None:
            return
        self.error_text.visible = False
        try:
            self.mutation.mutate_async(payload)
        except OfflineSyncError as e:
            self._show_error(str(e))
            return
        except Exception as e:
            self._show_error(f"Could not save: {e}")
            return
        self.amount.value = ""
        self.merchant.value = ""
        self.app.refresh_status()
