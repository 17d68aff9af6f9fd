"""
Logging configuration for banklink.

Provides structured JSON logging and the packet audit trail. Audit
records are emitted on three loggers so each lifecycle event can be
enabled separately:

    banklink.audit.sign      STRING, SIGNATURE
    banklink.audit.verify    STRING, RESULTCODE, RECODEDFROM
    banklink.audit.forward   STRING, CHANNEL, DESTINATION

Every record also carries all packet parameters in store order. The
severity depends on the packet's descriptor; the content never does.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Iterable, Optional, TextIO

from .parameters import Parameter

# Context variable for request ID tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')

SIGN_LOGGER = "banklink.audit.sign"
VERIFY_LOGGER = "banklink.audit.verify"
FORWARD_LOGGER = "banklink.audit.forward"


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


def audit_fields(parameters: Iterable[Parameter], **fixed: Optional[str]) -> Dict[str, Optional[str]]:
    """Packet parameters in order, followed by the fixed audit fields."""
    fields: Dict[str, Optional[str]] = {p.name: p.value for p in parameters}
    fields.update(fixed)
    return fields


class PacketAuditLogger:
    """
    Audit trail for packet sign, verify and forward events.

    Nothing is formatted unless the target logger is enabled for the
    requested level.
    """

    def _log(self, logger_name: str, level: int, event_type: str, packet_id: str,
             fields: Dict[str, Any]) -> None:
        logger = logging.getLogger(logger_name)
        if not logger.isEnabledFor(level):
            return
        extra = {
            "event_type": event_type,
            "packet_id": packet_id,
            "request_id": request_id_var.get(),
            "audit": fields,
        }
        record = logger.makeRecord(
            logger.name,
            level,
            "",
            0,
            f"{event_type}: packet {packet_id}",
            (),
            None
        )
        record.extra_fields = extra
        logger.handle(record)

    def packet_signed(self, packet_id: str, parameters: Iterable[Parameter],
                      canonical: str, signature: str, level: int = logging.DEBUG) -> None:
        self._log(SIGN_LOGGER, level, "PACKET_SIGN", packet_id,
                  audit_fields(parameters, STRING=canonical, SIGNATURE=signature))

    def packet_verified(self, packet_id: str, parameters: Iterable[Parameter], canonical: str,
                        result: bool, recoded_from: Optional[str] = None,
                        level: int = logging.DEBUG) -> None:
        self._log(VERIFY_LOGGER, level, "PACKET_VERIFY", packet_id,
                  audit_fields(parameters, RECODEDFROM=recoded_from, STRING=canonical,
                               RESULTCODE=str(result).lower()))

    def packet_forwarded(self, packet_id: str, parameters: Iterable[Parameter], canonical: str,
                         channel: str, destination: str, level: int = logging.DEBUG) -> None:
        self._log(FORWARD_LOGGER, level, "PACKET_FORWARD", packet_id,
                  audit_fields(parameters, STRING=canonical, CHANNEL=channel, DESTINATION=destination))


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None,
    stream: Optional[TextIO] = None
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Use JSON formatting (recommended for production)
        log_file: Optional file path for log output
        stream: Console stream (the CLI passes stderr to keep stdout clean)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Set the request ID for the current context.

    Returns:
        The request ID that was set
    """
    if request_id is None:
        request_id = str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


# Global audit logger instance
audit_log = PacketAuditLogger()
