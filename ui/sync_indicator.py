# ui/sync_indicator.py
from __future__ import annotations

import asyncio
from datetime import timezone

import flet as ft

from core.settings import OFFLINE, UI


class SyncIndicator:
    """Offline badge, pending counter and a "sync now" button."""

    def __init__(self, app):
        self.app = app
        self._task: asyncio.Task | None = None
        self._polling = False

        self.offline_badge = ft.Container(
            content=ft.Row(
                [
                    ft.Icon(ft.Icons.CLOUD_OFF, color=UI.theme.offline_text, size=16),
                    ft.Text("Offline", color=UI.theme.offline_text, weight=ft.FontWeight.W_600),
                ],
                spacing=6,
            ),
            bgcolor=UI.theme.offline_bg,
            padding=ft.padding.symmetric(horizontal=10, vertical=4),
            border_radius=12,
            visible=False,
        )
        self.pending_text = ft.Text("")
        self.last_sync_text = ft.Text("", size=12, color=ft.Colors.GREY_600)
        self.dead_letter_text = ft.Text("", size=12, color=UI.theme.dead_letter, visible=False)
        self.sync_btn = ft.TextButton("Sync now", icon=ft.Icons.SYNC, on_click=self.sync_now)

        self.view = ft.Row(
            controls=[
                self.offline_badge,
                ft.Column([self.pending_text, self.last_sync_text, self.dead_letter_text], spacing=2),
                self.sync_btn,
            ],
            alignment=ft.MainAxisAlignment.END,
            spacing=12,
        )

    def _format_dt(self, value) -> str:
        if not value:
            return "never"
        if getattr(value, "tzinfo", None) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone().strftime("%Y-%m-%d %H:%M:%S")

    def refresh(self):
        context = self.app.context
        status = context.queue_status()
        self.offline_badge.visible = not context.is_online()
        if status.pending_count:
            plural = "s" if status.pending_count > 1 else ""
            self.pending_text.value = f"{status.pending_count} change{plural} waiting to sync"
        else:
            self.pending_text.value = "All changes synced"
        self.pending_text.color = UI.theme.synced if not status.pending_count else None
        self.last_sync_text.value = "Last sync: " + self._format_dt(status.last_sync_at)
        self.dead_letter_text.visible = status.dead_letter_count > 0
        self.dead_letter_text.value = f"{status.dead_letter_count} change(s) need attention"
        self.sync_btn.disabled = status.is_syncing or status.pending_count == 0

    async def poll_once(self):
        # the probe is a blocking HTTP call and going online may drain the queue
        await asyncio.to_thread(self.app.context.monitor.poll)
        self.refresh()
        self.app.page.update()

    def start_polling(self):
        if self._polling:
            return
        self._polling = True

        async def _loop():
            while self._polling:
                try:
                    await self.poll_once()
                except Exception as e:
                    self.app.logger.warning("Sync indicator refresh failed: %s", e)
                await asyncio.sleep(OFFLINE.status_poll_interval_sec)

        self._task = self.app.page.run_task(_loop)

    def stop_polling(self):
        self._polling = False
        if self._task:
            self._task.cancel()
        self._task = None

    def sync_now(self, _):
        self.app.context.manual_sync()
        self.app.show_toast("Sync started")
