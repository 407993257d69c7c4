"""Logging filters for enriching log records with checkout context.

This module provides a logging filter that injects the current request id and
order id into log records using the ContextVars from ``gateway.context``.
Adding the filter to your logging configuration enables per-checkout
correlation in logs without modifying individual log statements.
"""

from logging import Filter, LogRecord

from .context import ORDER_ID_CTX, REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` and ``order_id`` attributes to log records.

    Values passed explicitly through ``extra=`` win over the context. When no
    value is present a hyphen ("-") is used as a placeholder so formatters can
    reliably reference ``%(request_id)s`` and ``%(order_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        """Populate the correlation attributes and allow the record.

        Args:
            record: The log record to enrich.

        Returns:
            bool: Always True to indicate the record should be processed.
        """
        if not hasattr(record, "request_id"):
            record.request_id = REQUEST_ID_CTX.get()
        if not hasattr(record, "order_id"):
            record.order_id = ORDER_ID_CTX.get()
        return True
