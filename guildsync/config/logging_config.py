# =============================================================================
# File: guildsync/config/logging_config.py
# Description: Logging configuration using the Rich framework, with a JSON
#              formatter for production and a plain formatter for pipes/files
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from typing import Optional, Dict, Any

from rich.box import DOUBLE, MINIMAL
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.theme import Theme


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean value from environment variable."""
    value = os.getenv(key, '').lower()
    return value in ('true', '1', 'yes', 'on') if value else default


def get_env_int(key: str, default: int) -> int:
    """Get integer value from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


GUILDSYNC_THEME = Theme({
    "debug": "magenta dim",
    "info": "green",
    "warning": "dark_goldenrod",
    "error": "red",
    "critical": "bold red",
    "success": "green3",
    "timestamp": "grey70",
    "logger_name": "grey35",
    "message": "grey85",
    "dim": "bright_black",
    "frame": "bright_blue",
    "header": "bold cyan",
})

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-40s] %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Third-party and internal loggers with quieter defaults.
# Override any of them with LOGLEVEL_<NAME>, e.g. LOGLEVEL_DISCORD_GATEWAY=DEBUG
DEFAULT_NOISE_CONFIG: Dict[str, int] = {
    "discord": logging.WARNING,
    "discord.gateway": logging.WARNING,
    "discord.http": logging.WARNING,
    "asyncio": logging.WARNING,
    "redis": logging.WARNING,
    "asyncpg": logging.WARNING,
    "prometheus_client": logging.WARNING,
    "guildsync.circuit_breaker": logging.INFO,
    "guildsync.retry": logging.WARNING,
}


class ProductionFormatter(logging.Formatter):
    """JSON formatter for production environments"""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON"""
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if get_env_bool('LOG_JSON_INCLUDE_EXTRAS', True):
            for extra in ("topic", "entity_key", "tenant_id", "guild_id"):
                if hasattr(record, extra):
                    log_obj[extra] = getattr(record, extra)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def get_logger_level_from_env(logger_name: str, default_level: int) -> int:
    """Get logger level from LOGLEVEL_<NAME> environment variable."""
    env_name = f"LOGLEVEL_{logger_name.replace('.', '_').upper()}"

    level_str = os.getenv(env_name, '').upper()
    if level_str:
        level_map = {
            'DEBUG': logging.DEBUG,
            'INFO': logging.INFO,
            'WARNING': logging.WARNING,
            'WARN': logging.WARNING,
            'ERROR': logging.ERROR,
            'CRITICAL': logging.CRITICAL,
        }
        return level_map.get(level_str, default_level)

    return default_level


def setup_logging(
        service_name: str = "guildsync",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: Optional[bool] = None,
        rich_tracebacks: bool = True,
) -> None:
    """
    Configure logging for a GuildSync process.

    Args:
        service_name: Name of the service (e.g., "worker.sync")
        log_level: Override log level (defaults to LOG_LEVEL env, then INFO)
        log_file: Optional rotating log file path
        enable_json: Enable JSON formatting for production
        rich_tracebacks: Enable rich tracebacks on the console handler
    """
    level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_file = log_file or os.getenv("LOG_FILE")

    if enable_json is None:
        enable_json = get_env_bool('LOG_JSON_FORMAT', False)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    use_rich = not enable_json and (sys.stdout.isatty() or get_env_bool("FORCE_COLOR", False))

    if use_rich:
        console = Console(
            theme=GUILDSYNC_THEME,
            force_terminal=get_env_bool("FORCE_COLOR", False),
            width=get_env_int('LOG_CONSOLE_WIDTH', 0) or None,
        )
        rich_handler = RichHandler(
            console=console,
            show_path=False,
            markup=False,
            rich_tracebacks=rich_tracebacks,
            tracebacks_show_locals=False,
        )
        root_logger.addHandler(rich_handler)

    elif enable_json:
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(ProductionFormatter())
        root_logger.addHandler(json_handler)

    else:
        plain_handler = logging.StreamHandler(sys.stdout)
        plain_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(plain_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=get_env_int('LOG_MAX_SIZE_MB', 100) * 1024 * 1024,
            backupCount=get_env_int('LOG_BACKUP_COUNT', 5),
            encoding=os.getenv('LOG_FILE_ENCODING', 'utf-8'),
        )
        # Always use plain formatter for files
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(file_handler)

    for logger_name, default_level in DEFAULT_NOISE_CONFIG.items():
        logging.getLogger(logger_name).setLevel(
            get_logger_level_from_env(logger_name, default_level)
        )

    # Explicit LOGLEVEL_* overrides for loggers outside the noise table
    for key, value in os.environ.items():
        if not key.startswith('LOGLEVEL_'):
            continue
        logger_name = key[len('LOGLEVEL_'):].lower().replace('_', '.')
        level_value = logging.getLevelName(value.upper())
        if isinstance(level_value, int):
            logging.getLogger(logger_name).setLevel(level_value)

    logging.getLogger(f"{service_name}.startup").info(
        f"Logging configured for {service_name} service"
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name, conventionally "guildsync.<area>"

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def _console_enabled() -> bool:
    return not get_env_bool('LOG_JSON_FORMAT', False) and (
        sys.stdout.isatty() or get_env_bool("FORCE_COLOR", False)
    )


def log_worker_banner(logger: logging.Logger, worker_name: str, instance_id: str,
                      version: Optional[str] = None) -> None:
    """Log a banner for worker startup"""
    if version is None:
        from guildsync import __version__
        version = __version__

    if not _console_enabled():
        logger.info(f"{worker_name} v{version} starting (instance={instance_id}, pid={os.getpid()})")
        return

    console = Console(theme=GUILDSYNC_THEME)
    banner_text = (
        f"[bold cyan]{worker_name.upper()}[/bold cyan]\n"
        f"[dim]Version {version}[/dim]\n\n"
        f"[bold]Instance:[/bold] {instance_id}\n"
        f"[bold]PID:[/bold] {os.getpid()}\n"
        f"[bold]Started:[/bold] {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"
    )
    console.print()
    console.print(Panel(
        banner_text,
        title="[bold]WORKER STARTUP[/bold]",
        title_align="center",
        border_style="magenta",
        box=DOUBLE,
        padding=(1, 2),
        width=min(console.width - 2, 60),
    ))
    console.print()


def log_status_update(logger: logging.Logger, status: str,
                      details: Optional[Dict[str, Any]] = None) -> None:
    """Log a status update with optional details"""
    if not _console_enabled():
        suffix = ""
        if details:
            suffix = " | " + ", ".join(f"{k}={v}" for k, v in details.items())
        logger.info(f"Status: {status}{suffix}")
        return

    console = Console(theme=GUILDSYNC_THEME)
    status_text = f"[bold]Status:[/bold] [info]{status}[/info]"
    if details:
        status_text += "\n\n[bold]Details:[/bold]\n"
        for key, value in details.items():
            status_text += f"  • {key.replace('_', ' ').title()}: {value}\n"

    console.print()
    console.print(Panel(
        status_text.strip(),
        border_style="magenta",
        box=MINIMAL,
        padding=(1, 2),
        width=min(console.width - 2, 90),
    ))
