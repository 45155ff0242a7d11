# run_server.py
import os
import sys

from cashbox.config import settings as app_settings


def _prepare_workdir_for_pyinstaller():
    """
    Started as a PyInstaller bundle the sources are unpacked under _MEIPASS.
    Switch there so the relative sqlite path (./db/) resolves next to them.
    """
    base = getattr(sys, "_MEIPASS", None)
    if base and os.path.isdir(base):
        os.chdir(base)


def main():
    _prepare_workdir_for_pyinstaller()

    import uvicorn
    uvicorn.run(
        "main:app",
        host=app_settings.HOST,
        port=app_settings.PORT,
        reload=False,
        log_level=app_settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
