import os
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

# Setup logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class BaseService:
    """
    Base class for keyservice components. Provides:
    - Named logger
    - Structured event logging
    - Structured error logging
    """
    def __init__(self, service_name: str = "keyservice"):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)

    def log_event(self, event: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Log a structured event and return the logged record."""
        record = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "event": event,
            "data": details or {},
        }
        self.logger.info(f"EVENT: {json.dumps(record, default=str)}")
        return record

    def log_error(self, error: Exception, context: str = "") -> Dict[str, Any]:
        """Log an error with optional context and return the logged record."""
        record = {
            "timestamp": datetime.utcnow().isoformat(),
            "service": self.service_name,
            "error": str(error),
            "error_type": error.__class__.__name__,
            "context": context or "unknown",
        }
        self.logger.error(f"ERROR: {json.dumps(record, default=str)}")
        return record
