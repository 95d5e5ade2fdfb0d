# ui/pages/settings.py
from datetime import timezone
import flet as ft

from core.settings import UI
from storage.config import load_config


class SettingsPage:
    """Backend connection, queued changes and the sync log."""

    def __init__(self, app):
        self.app = app

        saved = load_config(app.context.config_path)
        self.url_field = ft.TextField(label="Supabase URL", value=saved.supabase_url or "", expand=True)
        self.key_field = ft.TextField(
            label="Anon key", value=saved.supabase_key or "", password=True, can_reveal_password=True, expand=True
        )
        self.save_btn = ft.ElevatedButton("Save connection", icon=ft.Icons.LINK, on_click=self.save_backend)

        self.status_text = ft.Text()
        self.last_attempt = ft.Text()
        self.last_success = ft.Text()
        self.queue_list = ft.Column(spacing=4)

        self.sync_btn = ft.OutlinedButton("Sync now", icon=ft.Icons.SYNC, on_click=self.sync_now)
        self.refresh_log_btn = ft.TextButton("Refresh log", icon=ft.Icons.ARTICLE, on_click=self.refresh_log)
        self.log_view = ft.Text("", selectable=True, size=12)

        content = ft.Column(
            controls=[
                ft.Text("Sync", size=24, weight=ft.FontWeight.BOLD),
                ft.Row([self.url_field, self.key_field], spacing=12),
                self.save_btn,
                self.status_text,
                self.last_attempt,
                self.last_success,
                self.sync_btn,
                ft.Text("Queued changes", size=18, weight=ft.FontWeight.W_600),
                self.queue_list,
                ft.Column([
                    ft.Text("Sync log", size=18, weight=ft.FontWeight.W_600),
                    ft.Container(self.log_view, height=200, padding=10, bgcolor=ft.Colors.GREY_100),
                    self.refresh_log_btn,
                ], spacing=8),
            ],
            expand=True,
            spacing=16,
            scroll=ft.ScrollMode.AUTO,
        )

        self.view = ft.Container(content=content, expand=True, padding=20)

    def _format_dt(self, value) -> str:
        if not value:
            return "never"
        if getattr(value, "tzinfo", None) is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone().strftime("%Y-%m-%d %H:%M:%S %Z")

    def _queue_row(self, mutation) -> ft.Control:
        label = f"{mutation.type} {mutation.action}  {mutation.endpoint}"
        if not mutation.is_dead_letter:
            detail = f"attempts {mutation.attempts}/{mutation.max_attempts}"
            return ft.Row([ft.Icon(ft.Icons.SCHEDULE, size=16), ft.Text(label), ft.Text(detail, size=12)])
        return ft.Row(
            [
                ft.Icon(ft.Icons.ERROR_OUTLINE, size=16, color=UI.theme.dead_letter),
                ft.Text(label),
                ft.Text(mutation.last_error or "", size=12, color=UI.theme.dead_letter, expand=True),
                ft.IconButton(ft.Icons.REPLAY, tooltip="Retry", on_click=lambda _, m=mutation.id: self.retry(m)),
                ft.IconButton(
                    ft.Icons.DELETE_OUTLINE, tooltip="Discard", on_click=lambda _, m=mutation.id: self.discard(m)
                ),
            ]
        )

    def load(self):
        context = self.app.context
        status = context.queue_status()
        backend = "connected" if context.replay_client.configured else "not configured"
        network = "online" if context.is_online() else "offline"
        self.status_text.value = f"Backend {backend}, {network}, {status.pending_count} queued"
        self.last_attempt.value = "Last attempt: " + self._format_dt(status.last_sync_attempt)
        self.last_success.value = "Last success: " + self._format_dt(status.last_sync_at)

        mutations = context.queued_mutations()
        self.queue_list.controls = [self._queue_row(m) for m in mutations] or [ft.Text("Nothing queued")]
        self.log_view.value = self.app.read_sync_log()

    def activate_from_menu(self):
        self.load()
        self.app.page.update()

    def save_backend(self, _):
        self.app.context.set_backend(self.url_field.value.strip(), self.key_field.value.strip())
        self.app.show_toast("Connection saved")

    def sync_now(self, _):
        self.app.context.manual_sync()
        self.app.show_toast("Sync started")

    def retry(self, mutation_id: str):
        self.app.context.retry_dead_letter(mutation_id)
        self.activate_from_menu()

    def discard(self, mutation_id: str):
        self.app.context.discard_dead_letter(mutation_id)
        self.activate_from_menu()

    def refresh_log(self, _):
        self.log_view.value = self.app.read_sync_log()
        self.app.page.update()
