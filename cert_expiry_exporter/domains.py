"""
Domain list loading for Certificate Expiry Exporter.
"""

from pathlib import Path
from typing import List, Union

from cert_expiry_exporter.errors import UnreadableConfigError
from cert_expiry_exporter.logger import get_logger

logger = get_logger("domains")


def load_domains(path: Union[str, Path]) -> List[str]:
    """
    Read the list of domains to monitor.

    One domain per line. Surrounding whitespace is stripped; blank lines and
    lines starting with ``#`` are skipped. File order and duplicates are kept.

    Args:
        path: Path to the domain list

    Returns:
        Domains in file order

    Raises:
        UnreadableConfigError: If the file cannot be opened or read
    """
    domains: List[str] = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#"):
                    domains.append(line)
    except (OSError, UnicodeDecodeError) as e:
        raise UnreadableConfigError(f"Failed to read domains from config file {path}: {e}") from e

    if not domains:
        logger.warning(f"No domains configured in {path}")
    else:
        logger.info(f"Loaded {len(domains)} domains from {path}")

    return domains
