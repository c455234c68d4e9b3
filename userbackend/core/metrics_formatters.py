from datetime import datetime, timezone
from typing import Any, Dict, Optional

from userbackend.core.metrics_core import Histogram, MetricsStorage


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_json(storage: MetricsStorage) -> Dict[str, Any]:
    """
    Format metrics as nested JSON for humans.

    Histograms are reduced to averages and requests are grouped by method,
    status and route. Sections without data are left out.
    """
    if not storage.enabled:
        return {"enabled": False, "timestamp": _now()}

    result: Dict[str, Any] = {"enabled": True, "timestamp": _now()}

    system = _system_metrics(storage)
    if system:
        result["system"] = system

    http = _http_metrics(storage)
    if http:
        result["http"] = http

    repositories = _repository_metrics(storage)
    if repositories:
        result["repositories"] = repositories

    return result


def _avg_ms(histogram: Optional[Histogram], labels: Dict[str, str]) -> Optional[float]:
    if histogram is None:
        return None
    count = histogram.get_count(labels)
    if not count:
        return None
    return round(histogram.get_sum(labels) / count * 1000, 2)


def _system_metrics(storage: MetricsStorage) -> Dict[str, Any]:
    memory = storage.gauges.get("system_memory_bytes")
    if memory is None:
        return {}

    cpu = storage.gauges.get("system_cpu_percent")
    rss = memory.get({"type": "rss"})
    vms = memory.get({"type": "vms"})

    return {
        "memory": {
            "rss_bytes": int(rss),
            "rss_mb": round(rss / (1024 * 1024), 2),
            "vms_bytes": int(vms),
            "vms_mb": round(vms / (1024 * 1024), 2),
        },
        "cpu": {"percent": round(cpu.get(), 2) if cpu else 0.0},
    }


def _http_metrics(storage: MetricsStorage) -> Dict[str, Any]:
    requests = storage.counters.get("http_requests_total")
    if requests is None:
        return {}

    durations = storage.histograms.get("http_request_duration_seconds")

    by_method: Dict[str, int] = {}
    by_status: Dict[str, int] = {}
    by_route: Dict[str, Dict[str, Any]] = {}

    for sample in requests.samples():
        method = sample.labels.get("method", "UNKNOWN")
        status = sample.labels.get("status", "unknown")
        route = f"{method} {sample.labels.get('path', '')}"
        count = int(sample.value)

        by_method[method] = by_method.get(method, 0) + count
        by_status[status] = by_status.get(status, 0) + count
        by_route.setdefault(route, {"requests": 0})["requests"] += count

    for route, stats in by_route.items():
        method, path = route.split(" ", 1)
        stats["avg_duration_ms"] = _avg_ms(durations, {"method": method, "path": path})

    latency = {}
    if durations is not None:
        samples = durations.samples()
        total_sum = sum(s.sum for s in samples)
        total_count = sum(s.count for s in samples)
        if total_count:
            latency = {
                "avg_ms": round(total_sum / total_count * 1000, 2),
                "total_seconds": round(total_sum, 4),
            }

    return {
        "total_requests": sum(by_method.values()),
        "requests_by_method": by_method,
        "responses_by_status": by_status,
        "routes": dict(sorted(by_route.items())),
        "latency": latency,
    }


def _repository_metrics(storage: MetricsStorage) -> Dict[str, Any]:
    calls = storage.counters.get("repository_calls_total")
    if calls is None:
        return {}

    durations = storage.histograms.get("repository_call_duration_seconds")

    stats: Dict[str, Dict[str, Any]] = {}
    for sample in calls.samples():
        name = sample.labels.get("repository", "unknown")
        method = sample.labels.get("method", "unknown")
        entry = stats.setdefault(name, {"calls": 0, "failures": 0, "methods": {}})

        count = int(sample.value)
        entry["calls"] += count
        if sample.labels.get("status") == "failure":
            entry["failures"] += count

        method_entry = entry["methods"].setdefault(method, {"calls": 0})
        method_entry["calls"] += count

    for name, entry in stats.items():
        for method, method_entry in entry["methods"].items():
            method_entry["avg_duration_ms"] = _avg_ms(
                durations, {"repository": name, "method": method}
            )

    return dict(sorted(stats.items()))


def format_prometheus(storage: MetricsStorage) -> str:
    """Format metrics in the Prometheus text exposition format."""
    if not storage.enabled:
        return "# Metrics disabled\n"

    lines = []

    for instruments in (storage.counters, storage.gauges):
        for name, instrument in instruments.items():
            lines.append(f"# HELP {name} {instrument.help_text}")
            lines.append(f"# TYPE {name} {instrument.kind}")
            for sample in instrument.samples():
                lines.append(f"{name}{_format_labels(sample.labels)} {sample.value}")

    for name, histogram in storage.histograms.items():
        lines.append(f"# HELP {name} {histogram.help_text}")
        lines.append(f"# TYPE {name} histogram")

        for sample in histogram.samples():
            for upper_bound, count in sample.buckets:
                bucket_labels = {**sample.labels, "le": str(upper_bound)}
                lines.append(f"{name}_bucket{_format_labels(bucket_labels)} {count}")
            inf_labels = {**sample.labels, "le": "+Inf"}
            lines.append(f"{name}_bucket{_format_labels(inf_labels)} {sample.count}")
            lines.append(f"{name}_sum{_format_labels(sample.labels)} {sample.sum}")
            lines.append(f"{name}_count{_format_labels(sample.labels)} {sample.count}")

    return "\n".join(lines) + "\n"


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _format_labels(labels: Dict[str, str]) -> str:
    if not labels:
        return ""
    pairs = [f'{k}="{_escape(str(v))}"' for k, v in sorted(labels.items())]
    return "{" + ",".join(pairs) + "}"
