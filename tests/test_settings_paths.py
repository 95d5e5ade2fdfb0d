from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from core import settings
from storage.config import AppConfig, load_config, save_config, update_config
from storage.device import get_device_id, lease_holder_id


def test_linux_data_dir_with_xdg():
    env = {"XDG_DATA_HOME": "/tmp/xdg"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env=env,
        home=Path("/home/test"),
    )
    assert result == Path("/tmp/xdg") / settings.APP_NAME


def test_linux_data_dir_default_home():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={},
        home=Path("/home/test"),
    )
    assert result == Path("/home/test/.local/share") / settings.APP_NAME


def test_macos_data_dir():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="darwin",
        env={},
        home=Path("/Users/test"),
    )
    expected = Path("/Users/test/Library/Application Support") / settings.APP_NAME
    assert result == expected


def test_windows_data_dir_appdata():
    env = {"APPDATA": "C:/Users/test/AppData/Roaming"}
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="win32",
        env=env,
        home=Path("C:/Users/test"),
    )
    expected = Path(env["APPDATA"]) / settings.APP_NAME
    assert result == expected


def test_data_dir_override():
    result = settings.get_default_data_dir(
        settings.APP_NAME,
        platform="linux",
        env={"SAVEPLUS_DATA_DIR": "/srv/saveplus", "XDG_DATA_HOME": "/tmp/xdg"},
        home=Path("/home/test"),
    )
    assert result == Path("/srv/saveplus")


def test_runtime_paths_inside_data_dir():
    assert settings.DB_PATH.parent == settings.DATA_DIR
    assert settings.CONFIG_PATH.parent == settings.DATA_DIR
    assert settings.SYNC_STATE_PATH.parent == settings.STORAGE_DIR
    assert settings.SYNC_LOG_PATH.parent == settings.LOG_DIR


def test_offline_defaults():
    assert settings.OFFLINE.max_attempts == 5
    assert settings.OFFLINE.storage_key == "mutation_queue"
    assert "transaction" in settings.OFFLINE.mutation_types


def test_config_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.json"
    assert load_config(path) == AppConfig()

    save_config(AppConfig(supabase_url="https://demo.supabase.co"), path)
    update_config(path, last_user_id="user-1", unknown="ignored")

    cfg = load_config(path)
    assert cfg.supabase_url == "https://demo.supabase.co"
    assert cfg.last_user_id == "user-1"
    assert not path.with_suffix(".tmp").exists()


def test_corrupt_config_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path) == AppConfig()


def test_device_id_is_stable(tmp_path):
    path = tmp_path / "device_id.txt"
    first = get_device_id(path)
    assert get_device_id(path) == first

    holder = lease_holder_id(first)
    assert holder.startswith(first + ":")
    assert holder != lease_holder_id(first)
