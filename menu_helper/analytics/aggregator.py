from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    api_calls = [e for e in events if e["type"] == "api_call"]

    # Per-API call volume, failures and latency
    per_api: dict[str, dict[str, Any]] = defaultdict(
        lambda: {"calls": 0, "failures": 0, "_times": []}
    )
    for call in api_calls:
        stats = per_api[call.get("api", "unknown")]
        stats["calls"] += 1
        if not call.get("success"):
            stats["failures"] += 1
        if call.get("response_time_ms") is not None:
            stats["_times"].append(call["response_time_ms"])

    apis: dict[str, dict[str, Any]] = {}
    for name, stats in per_api.items():
        times = stats.pop("_times")
        calls = stats["calls"]
        apis[name] = {
            **stats,
            "success_rate": round((calls - stats["failures"]) / calls * 100, 1) if calls else 0.0,
            "avg_response_time_ms": round(sum(times) / len(times), 1) if times else 0.0,
        }

    # Rate-limit denials
    limit_counter: Counter[str] = Counter()
    for e in events:
        if e["type"] == "rate_limit_hit":
            limit_counter[f"{e.get('api', 'unknown')}:{e.get('scope', '?')}"] += 1

    # Cache effectiveness per tier
    cache_stats: dict[str, dict[str, Any]] = {}
    for e in events:
        if e["type"] != "cache":
            continue
        tier = cache_stats.setdefault(e.get("tier", "unknown"), {"hits": 0, "misses": 0})
        tier["hits" if e.get("hit") else "misses"] += 1
    for tier in cache_stats.values():
        total = tier["hits"] + tier["misses"]
        tier["hit_rate"] = round(tier["hits"] / total * 100, 1) if total else 0.0

    return {
        "total_api_calls": len(api_calls),
        "apis": apis,
        "rate_limit_hits": dict(limit_counter),
        "cache_stats": cache_stats,
        "errors": sum(1 for e in events if e["type"] == "error"),
    }
