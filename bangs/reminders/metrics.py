from prometheus_client import Counter, Gauge


scheduler_sweeps_total = Counter(
    "reminder_scheduler_sweeps_total",
    "Total sweep cycles started",
)

scheduler_sweeps_aborted_total = Counter(
    "reminder_scheduler_sweeps_aborted_total",
    "Sweep cycles aborted because the store was unavailable",
)

reminders_claimed_total = Counter(
    "reminders_claimed_total",
    "Due occurrences claimed by this worker",
)

reminders_claim_conflicts_total = Counter(
    "reminder_claim_conflicts_total",
    "Claims lost to a concurrent sweep",
)

reminders_fired_total = Counter(
    "reminders_fired_total",
    "Occurrences whose transition was committed",
    ["kind"],
)

reminders_commit_conflicts_total = Counter(
    "reminder_commit_conflicts_total",
    "Transitions rejected because the row changed while claimed",
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Total successful dispatches",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Total failed dispatches",
)

reminders_flagged_total = Counter(
    "reminders_flagged_total",
    "Claimed reminders flagged as unprocessable",
)

reminders_stuck = Gauge(
    "reminders_stuck",
    "Claimed reminders older than the stuck threshold at the last sweep",
)
