# ui/app_shell.py
from __future__ import annotations

import logging
import os

import flet as ft

from core.settings import UI
from services.auth_session import AuthSession
from services.offline_context import OfflineContext
from services.sync_log import get_sync_logger, read_sync_log
from storage.config import load_config

from .pages.settings import SettingsPage
from .quick_transaction import QuickTransactionEntry
from .sync_indicator import SyncIndicator


def restore_session(auth: AuthSession, config_path=None, env=None) -> AuthSession:
    """Sign in from SAVEPLUS_USER_ID / SAVEPLUS_ACCESS_TOKEN or the last known user."""

    env = env if env is not None else os.environ
    user_id = env.get("SAVEPLUS_USER_ID") or load_config(config_path).last_user_id
    if user_id:
        auth.sign_in(user_id, env.get("SAVEPLUS_ACCESS_TOKEN"))
    return auth


class AppShell:
    def __init__(self, page: ft.Page, context: OfflineContext | None = None):
        self.page = page
        self.logger: logging.Logger = get_sync_logger("ui")

        self.page.title = UI.app_title
        self.page.horizontal_alignment = ft.CrossAxisAlignment.STRETCH
        self.page.vertical_alignment = ft.MainAxisAlignment.START

        self.context = context or OfflineContext()
        restore_session(self.context.auth, self.context.config_path)
        self.context.init()
        self.context.notifier.subscribe(self._on_sync_complete)

        self._entry = QuickTransactionEntry(self)
        self._settings = SettingsPage(self)
        self.indicator = SyncIndicator(self)

        self.content = ft.Container(expand=True, padding=20)

        self.nav = ft.NavigationRail(
            selected_index=0,
            label_type=ft.NavigationRailLabelType.ALL,
            min_width=90,
            group_alignment=-0.9,
            on_change=self.on_nav_change,
            destinations=[
                ft.NavigationRailDestination(
                    icon=ft.Icons.ADD_CARD_OUTLINED,
                    selected_icon=ft.Icons.ADD_CARD,
                    label="Add",
                ),
                ft.NavigationRailDestination(
                    icon=ft.Icons.CLOUD_SYNC_OUTLINED,
                    selected_icon=ft.Icons.CLOUD_SYNC,
                    label="Sync",
                ),
            ],
        )

        self.root = ft.Row(
            controls=[
                ft.Container(self.nav, width=88),
                ft.VerticalDivider(width=1),
                ft.Column([ft.Container(self.indicator.view, padding=10), self.content], expand=True),
            ],
            expand=True,
            spacing=0,
        )

    # ---------- helpers ----------
    def show_toast(self, text: str):
        self.page.snack_bar = ft.SnackBar(ft.Text(text))
        self.page.snack_bar.open = True
        self.page.update()

    def show_toast_with_description(self, title: str, description: str):
        self.page.snack_bar = ft.SnackBar(
            ft.Column(
                [ft.Text(title, weight=ft.FontWeight.W_600), ft.Text(description, size=12)],
                tight=True,
                spacing=2,
            )
        )
        self.page.snack_bar.open = True
        self.page.update()

    def refresh_status(self):
        try:
            self.indicator.refresh()
        except Exception as e:
            self.logger.warning("Status refresh failed: %s", e)
        self.page.update()

    def read_sync_log(self, lines: int = 100) -> str:
        return read_sync_log(lines)

    def _on_sync_complete(self, success: bool, synced_count: int):
        # called from the worker thread
        self.refresh_status()

    # ---------- mount ----------
    def mount(self):
        self.page.controls.clear()
        self.page.add(self.root)
        self.content.content = self._entry.view
        self.indicator.refresh()
        self.page.update()
        self.indicator.start_polling()
        self.page.on_disconnect = lambda _: self.dispose()

    def dispose(self):
        self.indicator.stop_polling()
        self.context.dispose()

    def on_nav_change(self, e: ft.ControlEvent):
        idx = int(e.control.selected_index)
        if idx == 0:
            self.content.content = self._entry.view
        else:
            self.content.content = self._settings.view
            self._settings.load()
        self.page.update()
