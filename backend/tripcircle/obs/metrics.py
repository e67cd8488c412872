"""Central registry for Prometheus metrics used across the backend."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

MEMBERSHIP_TRANSITIONS = Counter(
	"tripcircle_membership_transitions_total",
	"Membership state machine transitions",
	["operation", "result"],
)

VERSION_CONFLICTS = Counter(
	"tripcircle_version_conflicts_total",
	"Optimistic concurrency conflicts detected on document writes",
	["entity"],
)

LINK_SYNC_NOOPS = Counter(
	"tripcircle_link_sync_noops_total",
	"Linked-chat synchronisations skipped because the chat or group is gone",
	["reason"],
)

DELETIONS = Counter(
	"tripcircle_cascading_deletions_total",
	"Cascading deletions executed per root kind",
	["kind", "result"],
)

DELETED_DEPENDENTS = Counter(
	"tripcircle_deleted_dependents_total",
	"Dependent records removed by cascading deletions",
	["kind"],
)

BLOB_DELETES = Counter(
	"tripcircle_blob_deletes_total",
	"Media blob deletion attempts",
	["result"],
)

SAGA_STEPS = Counter(
	"tripcircle_saga_steps_total",
	"Saga steps by outcome",
	["saga", "outcome"],
)

SOCKET_CLIENTS = Gauge(
	"tripcircle_socketio_clients",
	"Active Socket.IO clients per namespace",
	["namespace"],
)

SOCKET_EVENTS = Counter(
	"tripcircle_socketio_events_total",
	"Socket.IO events emitted per namespace",
	["namespace", "event"],
)

REALTIME_EMIT_FAILURES = Counter(
	"tripcircle_realtime_emit_failures_total",
	"Realtime notifications that could not be emitted",
	["event"],
)

BACKGROUND_RUNS = Counter(
	"tripcircle_jobs_runs_total",
	"Background job executions",
	["name", "result"],
)

BACKGROUND_DURATION = Histogram(
	"tripcircle_jobs_duration_seconds",
	"Background job duration",
	["name"],
	buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 15.0, 30.0, 60.0),
)

LINK_REPAIRS = Counter(
	"tripcircle_link_repairs_total",
	"Group/chat inconsistencies reconciled by the repair pass",
	["kind"],
)


def membership_transition(operation: str, result: str) -> None:
	MEMBERSHIP_TRANSITIONS.labels(operation=operation, result=result).inc()


def version_conflict(entity: str) -> None:
	VERSION_CONFLICTS.labels(entity=entity).inc()


def link_sync_noop(reason: str) -> None:
	LINK_SYNC_NOOPS.labels(reason=reason).inc()


def deletion(kind: str, result: str) -> None:
	DELETIONS.labels(kind=kind, result=result).inc()


def deleted_dependents(kind: str, count: int) -> None:
	if count > 0:
		DELETED_DEPENDENTS.labels(kind=kind).inc(count)


def blob_delete(result: str) -> None:
	BLOB_DELETES.labels(result=result).inc()


def saga_step(saga: str, outcome: str) -> None:
	SAGA_STEPS.labels(saga=saga, outcome=outcome).inc()


def socket_connected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).inc()


def socket_disconnected(namespace: str) -> None:
	SOCKET_CLIENTS.labels(namespace=namespace).dec()


def socket_event(namespace: str, event: str) -> None:
	SOCKET_EVENTS.labels(namespace=namespace, event=event).inc()


def realtime_emit_failed(event: str) -> None:
	REALTIME_EMIT_FAILURES.labels(event=event).inc()


def link_repaired(kind: str) -> None:
	LINK_REPAIRS.labels(kind=kind).inc()
