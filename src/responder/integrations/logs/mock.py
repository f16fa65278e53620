"""Mock log source returning canned payment-service errors, for demos and tests."""

from datetime import UTC, datetime

from responder.integrations.logs.base import LogQuery, LogResult, LogSource

_STACK_TRACES = [
    """NullPointerException: Cannot read property 'billingAddress' of undefined
    at PaymentProcessor.processPayment (src/processors/PaymentProcessor.ts:142:23)
    at PaymentProcessor.validateBilling (src/processors/PaymentProcessor.ts:98:12)
    at OrderService.checkout (src/services/OrderService.ts:89:15)
    at OrderController.handleCheckout (src/controllers/OrderController.ts:45:22)""",
    """TypeError: Cannot destructure property 'street' of 'customer.billingAddress' as it is undefined
    at formatBillingAddress (src/utils/billing.ts:23:10)
    at PaymentProcessor.processPayment (src/processors/PaymentProcessor.ts:145:18)
    at OrderService.checkout (src/services/OrderService.ts:89:15)""",
]


class MockLogSource(LogSource):
    """Log source that returns realistic-looking errors without any backend."""

    name = "mock"

    async def fetch_logs(self, query: LogQuery) -> LogResult:
        timestamp = datetime.now(UTC).isoformat()
        lines = [
            f"[{timestamp}] ERROR [{query.service}] Request processing failed",
            f"[{timestamp}] ERROR [{query.service}] NullPointerException: Cannot read property 'billingAddress' of undefined",
            f"[{timestamp}] ERROR [{query.service}] at PaymentProcessor.processPayment (src/processors/PaymentProcessor.ts:142:23)",
            f"[{timestamp}] ERROR [{query.service}] at OrderService.checkout (src/services/OrderService.ts:89:15)",
            f"[{timestamp}] FATAL [{query.service}] Service health check failed - downstream payment errors exceeding threshold",
            f"[{timestamp}] ERROR [{query.service}] Rate of 5xx responses: 45% (threshold: 5%)",
            f"[{timestamp}] ERROR [{query.service}] Affected endpoint: POST /api/v1/orders/checkout",
            f"[{timestamp}] ERROR [{query.service}] Suspect commit: abc123f \"Add billing address validation\"",
        ]
        lines = lines[: query.max_lines]

        return LogResult(
            logs="\n".join(lines),
            stack_traces=list(_STACK_TRACES),
            raw_lines=len(lines),
            truncated=False,
        )
