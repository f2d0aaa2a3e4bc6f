"""
Run the ReelProxy API with uvicorn.
Usage:
  python run_server.py
"""
from uvicorn import run

from reelproxy.core.logging_config import configure_logging, get_uvicorn_log_config
from reelproxy.core.settings_manager import SettingsManager

if __name__ == "__main__":
    settings = SettingsManager()
    log_level = str(settings.get("log_level", "INFO"))
    # Startup messages logged while the app module imports, before uvicorn applies its config.
    configure_logging(log_level)
    run(
        "reelproxy.web.app:app",
        host=str(settings.get("host", "0.0.0.0")),
        port=int(settings.get("port", 3000)),
        log_config=get_uvicorn_log_config(log_level),
        log_level=log_level.lower(),
        access_log=True,
    )
