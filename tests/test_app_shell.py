from services.auth_session import AuthSession
from storage.config import update_config
from ui.app_shell import restore_session


def test_restore_session_prefers_environment(tmp_path):
    path = tmp_path / "config.json"
    update_config(path, last_user_id="remembered")

    auth = restore_session(AuthSession(), path, env={"SAVEPLUS_USER_ID": "env-user", "SAVEPLUS_ACCESS_TOKEN": "jwt"})

    assert auth.user_id == "env-user"
    assert auth.access_token() == "jwt"


def test_restore_session_falls_back_to_last_user(tmp_path):
    path = tmp_path / "config.json"
    update_config(path, last_user_id="remembered")

    assert restore_session(AuthSession(), path, env={}).user_id == "remembered"
    assert restore_session(AuthSession(), tmp_path / "missing.json", env={}).user_id is None
