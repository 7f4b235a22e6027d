from .settings import settings, load_settings, SETTINGS_PATH
