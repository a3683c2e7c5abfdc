"""Prometheus metrics shared by the detector, broadcast bus and API."""

from prometheus_client import Counter, Gauge

EVENTS_DETECTED = Counter(
    "cosmic_events_detected_total",
    "Total number of space-weather events detected",
    ["type"],
)

DETECTOR_RULE_ERRORS = Counter(
    "cosmic_detector_rule_errors_total",
    "Detector rules that failed on a malformed snapshot",
    ["rule"],
)

BROADCASTS_ADMITTED = Counter(
    "cosmic_broadcasts_admitted_total",
    "Broadcast messages admitted to the queue",
    ["type"],
)

BROADCASTS_REJECTED = Counter(
    "cosmic_broadcasts_rejected_total",
    "Broadcast messages rejected at admission",
    ["reason"],
)

LISTENER_ERRORS = Counter(
    "cosmic_broadcast_listener_errors_total",
    "Exceptions raised by broadcast subscribers",
)

POLL_REQUESTS = Counter(
    "cosmic_poll_requests_total",
    "Incremental poll requests served",
)

HISTORY_SIZE = Gauge(
    "cosmic_broadcast_history_size",
    "Number of entries currently held in broadcast history",
)

TRACKED_CLIENTS = Gauge(
    "cosmic_tracked_poll_clients",
    "Number of polling clients with a stored cursor",
)
