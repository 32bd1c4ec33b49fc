"""Host resource sampling (CPU, memory, disk, uptime) via psutil."""

import logging
import platform
import time

import psutil

logger = logging.getLogger("resources")

CPU_SAMPLE_SECONDS = 0.1


def get_cpu_metrics() -> dict:
    """CPU utilisation as a 0..1 fraction over a short sampling interval."""
    try:
        usage = psutil.cpu_percent(interval=CPU_SAMPLE_SECONDS) / 100
        return {
            "current": max(0.0, min(1.0, usage)),
            "cores": psutil.cpu_count() or 0,
            "model": platform.processor() or platform.machine() or "Unknown",
        }
    except Exception as exc:
        logger.error("Error getting CPU metrics: %s", exc)
        return {"current": 0, "cores": 0, "model": "Unknown"}


def get_memory_metrics() -> dict:
    try:
        memory = psutil.virtual_memory()
        used = memory.total - memory.available
        return {
            "total": memory.total,
            "used": used,
            "free": memory.available,
            "usage_percentage": round(used / memory.total * 100) if memory.total else 0,
        }
    except Exception as exc:
        logger.error("Error getting memory metrics: %s", exc)
        return {"total": 0, "used": 0, "free": 0, "usage_percentage": 0}


def get_disk_metrics(path: str = "/") -> dict:
    try:
        disk = psutil.disk_usage(path)
        return {
            "total": disk.total,
            "used": disk.used,
            "free": disk.free,
            "usage_percentage": round(disk.used / disk.total * 100) if disk.total else 0,
        }
    except Exception as exc:
        logger.error("Error getting disk metrics: %s", exc)
        return {
            "total": 0,
            "used": 0,
            "free": 0,
            "usage_percentage": 0,
            "error": "Could not determine disk usage",
        }


def format_uptime(seconds: float) -> str:
    seconds = int(max(seconds, 0))
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def get_system_uptime() -> str:
    try:
        return format_uptime(time.time() - psutil.boot_time())
    except Exception as exc:
        logger.warning("Could not read host uptime: %s", exc)
        return format_uptime(0)
