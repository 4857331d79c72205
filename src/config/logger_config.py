import sys
from pathlib import Path

from loguru import logger

logger.remove()

_configured = False


def configure_logging(log_dir: str | Path = "logs", level: str = "INFO") -> None:
    global _configured
    if _configured:
        return

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    logger.add(sys.stderr, level=level)
    logger.add(
        log_path / "wiki_import_{time}.log",
        rotation="256 MB",  # 每個檔案滿 256MB 就切分
        retention="10 days",  # 只保留最近 10 天的日誌
        compression="zip",
        encoding="utf-8",
        level=level,
        enqueue=True,
    )
    _configured = True
