"""In-process metrics collector with Prometheus text exposition."""

from __future__ import annotations

from collections import defaultdict
from threading import Lock
import time
from typing import Dict, Tuple


_lock = Lock()
_started_at = time.time()

_http_requests_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_http_request_duration_sum: Dict[Tuple[str, str], float] = defaultdict(float)
_http_request_duration_count: Dict[Tuple[str, str], int] = defaultdict(int)
_adapter_outcomes_total: Dict[Tuple[str, str, str], int] = defaultdict(int)
_workflow_transitions_total: Dict[Tuple[str, str], int] = defaultdict(int)
_messages_total: Dict[Tuple[str, str], int] = defaultdict(int)
_content_items_saved_total: Dict[str, int] = defaultdict(int)
_workflows_expired_total = 0


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _normalize_label(value: str, *, fallback: str = "unknown") -> str:
    normalized = (value or "").strip()
    return normalized or fallback


def record_http_request(*, method: str, path: str, status_code: int, duration_seconds: float) -> None:
    status = str(status_code)
    method_label = method.upper()
    path_label = path or "unknown"
    duration = max(duration_seconds, 0.0)

    with _lock:
        _http_requests_total[(method_label, path_label, status)] += 1
        _http_request_duration_sum[(method_label, path_label)] += duration
        _http_request_duration_count[(method_label, path_label)] += 1


def record_adapter_outcome(*, stage: str, outcome: str, reason: str | None = None) -> None:
    with _lock:
        key = (_normalize_label(stage), _normalize_label(outcome), _normalize_label(reason or "", fallback="none"))
        _adapter_outcomes_total[key] += 1


def record_workflow_transition(*, workflow_type: str, outcome: str) -> None:
    with _lock:
        _workflow_transitions_total[(_normalize_label(workflow_type), _normalize_label(outcome))] += 1


def record_message(*, direction: str, status: str) -> None:
    with _lock:
        _messages_total[(_normalize_label(direction), _normalize_label(status))] += 1


def record_content_items_saved(*, platform: str, count: int = 1) -> None:
    if count <= 0:
        return
    with _lock:
        _content_items_saved_total[_normalize_label(platform)] += int(count)


def record_workflows_expired(*, count: int) -> None:
    global _workflows_expired_total
    if count <= 0:
        return
    with _lock:
        _workflows_expired_total += int(count)


def render_prometheus_metrics(*, app_name: str, app_version: str, env: str) -> str:
    uptime = max(time.time() - _started_at, 0.0)

    with _lock:
        http_total = dict(_http_requests_total)
        duration_sum = dict(_http_request_duration_sum)
        duration_count = dict(_http_request_duration_count)
        adapter_outcomes_total = dict(_adapter_outcomes_total)
        workflow_transitions_total = dict(_workflow_transitions_total)
        messages_total = dict(_messages_total)
        content_items_saved_total = dict(_content_items_saved_total)
        workflows_expired_total = _workflows_expired_total

    lines = [
        "# HELP chefsocial_build_info Build metadata.",
        "# TYPE chefsocial_build_info gauge",
        (
            f'chefsocial_build_info{{app_name="{_escape_label(app_name)}",'
            f'version="{_escape_label(app_version)}",env="{_escape_label(env)}"}} 1'
        ),
        "# HELP chefsocial_process_uptime_seconds Process uptime in seconds.",
        "# TYPE chefsocial_process_uptime_seconds gauge",
        f"chefsocial_process_uptime_seconds {uptime:.6f}",
        "# HELP chefsocial_http_requests_total Total HTTP requests.",
        "# TYPE chefsocial_http_requests_total counter",
    ]

    for (method, path, status), value in sorted(http_total.items()):
        lines.append(
            (
                f'chefsocial_http_requests_total{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}",status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP chefsocial_http_request_duration_seconds Request duration summary.",
            "# TYPE chefsocial_http_request_duration_seconds summary",
        ]
    )
    for (method, path), value in sorted(duration_sum.items()):
        lines.append(
            (
                f'chefsocial_http_request_duration_seconds_sum{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value:.6f}'
            )
        )
    for (method, path), value in sorted(duration_count.items()):
        lines.append(
            (
                f'chefsocial_http_request_duration_seconds_count{{method="{_escape_label(method)}",'
                f'path="{_escape_label(path)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP chefsocial_adapter_outcomes_total Adapter stage outcomes (success/fallback).",
            "# TYPE chefsocial_adapter_outcomes_total counter",
        ]
    )
    for (stage, outcome, reason), value in sorted(adapter_outcomes_total.items()):
        lines.append(
            (
                f'chefsocial_adapter_outcomes_total{{stage="{_escape_label(stage)}",'
                f'outcome="{_escape_label(outcome)}",reason="{_escape_label(reason)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP chefsocial_workflow_transitions_total Workflow transition outcomes.",
            "# TYPE chefsocial_workflow_transitions_total counter",
        ]
    )
    for (workflow_type, outcome), value in sorted(workflow_transitions_total.items()):
        lines.append(
            (
                f'chefsocial_workflow_transitions_total{{workflow_type="{_escape_label(workflow_type)}",'
                f'outcome="{_escape_label(outcome)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP chefsocial_messages_total Text messages by direction and status.",
            "# TYPE chefsocial_messages_total counter",
        ]
    )
    for (direction, status), value in sorted(messages_total.items()):
        lines.append(
            (
                f'chefsocial_messages_total{{direction="{_escape_label(direction)}",'
                f'status="{_escape_label(status)}"}} {value}'
            )
        )

    lines.extend(
        [
            "# HELP chefsocial_content_items_saved_total Generated content items persisted.",
            "# TYPE chefsocial_content_items_saved_total counter",
        ]
    )
    for platform, value in sorted(content_items_saved_total.items()):
        lines.append(
            f'chefsocial_content_items_saved_total{{platform="{_escape_label(platform)}"}} {value}'
        )

    lines.extend(
        [
            "# HELP chefsocial_workflows_expired_total Workflows expired by the cleanup sweep.",
            "# TYPE chefsocial_workflows_expired_total counter",
            f"chefsocial_workflows_expired_total {workflows_expired_total}",
        ]
    )

    lines.append("")
    return "\n".join(lines)


def reset_metrics_for_tests() -> None:
    global _started_at, _workflows_expired_total
    with _lock:
        _http_requests_total.clear()
        _http_request_duration_sum.clear()
        _http_request_duration_count.clear()
        _adapter_outcomes_total.clear()
        _workflow_transitions_total.clear()
        _messages_total.clear()
        _content_items_saved_total.clear()
        _workflows_expired_total = 0
    _started_at = time.time()
