from prometheus_client import Counter


reminders_created_total = Counter(
    "dosewatch_reminders_created_total",
    "Total reminders created via API",
)

scanner_scans_total = Counter(
    "dosewatch_scanner_scans_total",
    "Total due-window scan cycles",
)

reminders_sent_total = Counter(
    "dosewatch_reminders_sent_total",
    "Total reminder notifications delivered",
    ["source"],
)

reminders_delivery_failed_total = Counter(
    "dosewatch_reminders_delivery_failed_total",
    "Total reminder notifications the gateway failed to deliver",
)

reminders_skipped_total = Counter(
    "dosewatch_reminders_skipped_total",
    "Total reminders skipped during processing",
    ["reason"],
)

jobs_scheduled_total = Counter(
    "dosewatch_jobs_scheduled_total",
    "Total durable jobs scheduled",
)

jobs_cancelled_total = Counter(
    "dosewatch_jobs_cancelled_total",
    "Total durable jobs cancelled",
)

jobs_executed_total = Counter(
    "dosewatch_jobs_executed_total",
    "Total durable jobs executed",
    ["outcome"],
)

jobs_purged_total = Counter(
    "dosewatch_jobs_purged_total",
    "Total finished durable jobs deleted after the retention window",
)
