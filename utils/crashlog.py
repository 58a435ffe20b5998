# ========================= utils/crashlog.py =========================
import asyncio
import datetime
import os
import sys
import threading
import traceback

def log_dir() -> str:
    d = os.path.join(os.getcwd(), "logs")
    os.makedirs(d, exist_ok=True)
    return d

def _new_log_path(prefix: str = "crash") -> str:
    stamp = datetime.datetime.now().strftime("%Y%m%d-%H%M%S")
    return os.path.join(log_dir(), f"{prefix}-{stamp}.txt")

def _write_report(prefix: str, title: str, exc: BaseException = None, message: str = "") -> str:
    path = _new_log_path(prefix)
    with open(path, "w", encoding="utf-8") as out:
        out.write(title + "\n")
        out.write("=" * 60 + "\n")
        if exc is not None:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=out)
        else:
            out.write(message + "\n")
    return path

def setup_crashlog():
    """Write a crash report for any uncaught exception (main thread or workers)."""
    def _hook(exc_type, exc, tb):
        try:
            _write_report("crash", "UNCAUGHT EXCEPTION", exc)
        finally:
            sys.__excepthook__(exc_type, exc, tb)
    sys.excepthook = _hook

    def _thread_hook(args):
        _hook(args.exc_type, args.exc_value, args.exc_traceback)
    threading.excepthook = _thread_hook

def install_async_handler(loop: asyncio.AbstractEventLoop):
    """Report exceptions from playback tasks nobody awaited (e.g. ``start()`` from a callback)."""
    def _handler(loop, context):
        try:
            _write_report("async", "ASYNCIO EXCEPTION", context.get("exception"), str(context.get("message")))
        finally:
            loop.default_exception_handler(context)
    loop.set_exception_handler(_handler)

def log_exception(title: str, exc: BaseException) -> str:
    return _write_report("error", f"[{title}] {type(exc).__name__}: {exc}", exc)
